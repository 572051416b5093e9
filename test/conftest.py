"""
Pytest configuration and fixtures for testing.

Each test gets a fresh application on an in-memory SQLite database with
one seeded user per role. Fixtures hand out ids rather than ORM objects
so tests can open their own app context (service tests) or go through
the HTTP client (API tests) without sharing a session.
"""
import os

import pytest
from flask import has_app_context

# Set test environment variables BEFORE creating app
os.environ['FLASK_ENV'] = 'testing'
os.environ['SECRET_KEY'] = 'test-secret-key-for-quizhub'
os.environ['MIN_PASSWORD_LENGTH'] = '8'
os.environ['LOG_LEVEL'] = 'WARNING'

from quizhub import create_app, db
from quizhub.auth.models import User
from quizhub.auth.utils import hash_password
from quizhub.quiz.validation import build_quiz
from quizhub.security.access_policy import Actor
from quizhub.security.rate_limiter import get_rate_limiter

PASSWORD = 'password123'
# bcrypt is slow on purpose; hash once per session
PASSWORD_HASH = hash_password(PASSWORD)

SEED_USERS = {
    'admin': ('admin@test.com', 'Ada Admin', 'admin'),
    'teacher': ('teacher@test.com', 'Tess Teacher', 'teacher'),
    'other_teacher': ('other.teacher@test.com', 'Otto Teacher', 'teacher'),
    'student': ('student@test.com', 'Sam Student', 'student'),
    'other_student': ('other.student@test.com', 'Olga Student', 'student'),
}

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'RATELIMIT_ENABLED': False,
    'DB_RETRY_BACKOFF_SECONDS': 0.01,
}


def quiz_payload(**overrides) -> dict:
    """Two one-point questions: a single choice and a short answer."""
    payload = {
        'title': 'European Capitals',
        'description': 'Warm-up quiz',
        'category': 'geography',
        'tags': ['capitals'],
        'status': 'published',
        'settings': {'attempts_allowed': 3, 'passing_score': 60},
        'questions': [
            {
                'question_type': 'single_choice',
                'prompt': 'What is the capital of France?',
                'points': 1,
                'difficulty': 'easy',
                'options': [
                    {'text': 'Lyon'},
                    {'text': 'Paris', 'is_correct': True},
                    {'text': 'Nice'},
                ],
            },
            {
                'question_type': 'short_answer',
                'prompt': 'What is the capital of Italy?',
                'points': 1,
                'correct_answer': 'Rome',
            },
        ],
    }
    payload.update(overrides)
    return payload


def _seed_users() -> dict:
    created = {}
    for key, (email, full_name, role) in SEED_USERS.items():
        user = User(email=email, full_name=full_name, role=role, password_hash=PASSWORD_HASH)
        db.session.add(user)
        created[key] = user
    db.session.commit()
    return {key: user.id for key, user in created.items()}


@pytest.fixture
def app():
    """Create application for testing."""
    get_rate_limiter().reset()
    app = create_app(dict(TEST_CONFIG))
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def users(app):
    """Seeded user ids keyed by admin, teacher, other_teacher, student, other_student."""
    with app.app_context():
        return _seed_users()


@pytest.fixture
def actors(users):
    return {key: Actor(id=user_id, role=SEED_USERS[key][2]) for key, user_id in users.items()}


@pytest.fixture
def ctx(app):
    """Push an app context for tests that call services directly."""
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def make_quiz(app, users):
    """
    Factory creating a quiz from ``quiz_payload`` and returning its id.

    Usage: make_quiz(owner='teacher', settings={...}, questions=[...])
    """
    def _make(owner: str = 'teacher', **overrides) -> int:
        def _create() -> int:
            quiz = build_quiz(quiz_payload(**overrides), owner_id=users[owner])
            db.session.add(quiz)
            db.session.commit()
            return quiz.id

        if has_app_context():
            return _create()
        with app.app_context():
            return _create()
    return _make


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def login_as(app, users):
    """Return a fresh test client logged in as the given seeded user."""
    def _login(key: str):
        client = app.test_client()
        response = client.post('/api/auth/login', json={
            'email': SEED_USERS[key][0],
            'password': PASSWORD,
        })
        assert response.status_code == 200, response.get_json()
        return client
    return _login
