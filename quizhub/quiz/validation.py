"""
Quiz authoring payload validation.

Turns create/update request bodies into Quiz, Question and QuestionOption
rows, raising ValidationError with a message naming the offending field.

Question payloads:

    {"question_type": "single_choice", "prompt": "2 + 2 = ?", "points": 1,
     "options": [{"text": "3"}, {"text": "4", "is_correct": true}]}

    {"question_type": "true_false", "prompt": "Python is typed.", "correct_answer": "true"}

    {"question_type": "short_answer", "prompt": "Capital of France?", "correct_answer": "Paris"}

    {"question_type": "essay", "prompt": "Discuss.", "points": 5}
"""
from quizhub import db
from quizhub.auth.models import User
from quizhub.common.errors import ValidationError
from quizhub.quiz.models import CHOICE_TYPES, DIFFICULTIES, QUESTION_TYPES, QUIZ_STATUSES, Question, QuestionOption, Quiz


SETTING_FIELDS = ('time_limit_minutes', 'randomize_questions', 'randomize_options', 'passing_score', 'attempts_allowed')


def _require_text(data: dict, key: str, label: str | None = None) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label or key} is required")
    return value.strip()


def _int_field(value, label: str, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{label} must be at least {minimum}")
    return value


def _bool_field(value, label: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{label} must be true or false")
    return value


def validate_settings(data: dict) -> dict:
    """Validate the settings present in ``data``; absent keys are left out."""
    settings = dict(data.get('settings') or {})
    for key in SETTING_FIELDS:
        if key in data:
            settings[key] = data[key]

    clean = {}
    if 'time_limit_minutes' in settings:
        value = settings['time_limit_minutes']
        clean['time_limit_minutes'] = None if value in (None, 0) else _int_field(value, 'time_limit_minutes', 1)
    if 'attempts_allowed' in settings:
        clean['attempts_allowed'] = _int_field(settings['attempts_allowed'], 'attempts_allowed', 1)
    if 'passing_score' in settings:
        value = settings['passing_score']
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError("passing_score must be a number")
        if not 0 <= value <= 100:
            raise ValidationError("passing_score must be between 0 and 100")
        clean['passing_score'] = float(value)
    for key in ('randomize_questions', 'randomize_options'):
        if key in settings:
            clean[key] = _bool_field(settings[key], key)
    return clean


def validate_tags(value) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
        raise ValidationError("tags must be a list of strings")
    return [tag.strip() for tag in value if tag.strip()]


def _build_options(question_type: str, data: dict, position: str) -> list[QuestionOption]:
    raw_options = data.get('options')

    if question_type == 'true_false' and not raw_options:
        answer = str(data.get('correct_answer', '')).strip().lower()
        if answer not in ('true', 'false'):
            raise ValidationError(f"{position}: true_false needs options or correct_answer 'true'/'false'")
        return [
            QuestionOption(text='True', is_correct=answer == 'true', order_index=0),
            QuestionOption(text='False', is_correct=answer == 'false', order_index=1),
        ]

    if not isinstance(raw_options, list) or len(raw_options) < 2:
        raise ValidationError(f"{position}: choice questions need at least 2 options")
    if question_type == 'true_false' and len(raw_options) != 2:
        raise ValidationError(f"{position}: true_false questions need exactly 2 options")

    options = []
    for index, raw in enumerate(raw_options):
        if not isinstance(raw, dict):
            raise ValidationError(f"{position}: option {index + 1} must be an object")
        options.append(QuestionOption(
            text=_require_text(raw, 'text', f"{position}: option {index + 1} text"),
            is_correct=bool(raw.get('is_correct', False)),
            order_index=index,
        ))

    if sum(1 for opt in options if opt.is_correct) != 1:
        raise ValidationError(f"{position}: exactly one option must be marked correct")
    return options


def build_question(data: dict, index: int) -> Question:
    position = f"Question {index + 1}"
    if not isinstance(data, dict):
        raise ValidationError(f"{position} must be an object")

    question_type = data.get('question_type')
    if question_type not in QUESTION_TYPES:
        raise ValidationError(f"{position}: question_type must be one of {', '.join(QUESTION_TYPES)}")

    difficulty = data.get('difficulty', 'medium')
    if difficulty not in DIFFICULTIES:
        raise ValidationError(f"{position}: difficulty must be one of {', '.join(DIFFICULTIES)}")

    question = Question(
        question_type=question_type,
        prompt=_require_text(data, 'prompt', f"{position}: prompt"),
        points=_int_field(data.get('points', 1), f"{position}: points", 1),
        difficulty=difficulty,
        order_index=index,
    )

    if question_type in CHOICE_TYPES:
        question.options = _build_options(question_type, data, position)
    elif question_type == 'short_answer':
        if data.get('options'):
            raise ValidationError(f"{position}: short_answer questions have no options")
        question.correct_answer = _require_text(data, 'correct_answer', f"{position}: correct_answer")
    else:
        if data.get('options') or data.get('correct_answer'):
            raise ValidationError(f"{position}: essay questions have no options or correct answer")
    return question


def build_questions(raw_questions) -> list[Question]:
    if not isinstance(raw_questions, list) or not raw_questions:
        raise ValidationError("A quiz needs at least one question")
    return [build_question(raw, index) for index, raw in enumerate(raw_questions)]


def resolve_users(user_ids, label: str, role: str | None = None) -> list[User]:
    """Load the users named by ``user_ids``; every id must exist (and have ``role``)."""
    if user_ids is None:
        return []
    if not isinstance(user_ids, list) or not all(isinstance(uid, int) and not isinstance(uid, bool) for uid in user_ids):
        raise ValidationError(f"{label} must be a list of user ids")

    users = []
    for user_id in dict.fromkeys(user_ids):
        user = db.session.get(User, user_id)
        if user is None or (role is not None and user.role != role):
            raise ValidationError(f"{label}: user {user_id} is not a valid {role or 'user'}")
        users.append(user)
    return users


def build_quiz(data: dict, owner_id: int) -> Quiz:
    """Build an unsaved Quiz from a create payload."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    status = data.get('status', 'draft')
    if status not in QUIZ_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(QUIZ_STATUSES)}")

    quiz = Quiz(
        title=_require_text(data, 'title'),
        description=(data.get('description') or '').strip() or None,
        category=(data.get('category') or '').strip() or None,
        tags=validate_tags(data.get('tags')),
        status=status,
        owner_id=owner_id,
        time_limit_minutes=None,
        randomize_questions=False,
        randomize_options=False,
        passing_score=60.0,
        attempts_allowed=1,
    )
    for key, value in validate_settings(data).items():
        setattr(quiz, key, value)

    quiz.questions = build_questions(data.get('questions'))
    quiz.collaborators = [u for u in resolve_users(data.get('collaborators'), 'collaborators', 'teacher')
                          if u.id != owner_id]
    quiz.assigned_to = resolve_users(data.get('assigned_to'), 'assigned_to', 'student')
    return quiz


def apply_quiz_update(quiz: Quiz, data: dict, questions_locked: bool) -> list[str]:
    """
    Apply an update payload to ``quiz`` in place.

    Returns the names of the fields changed. Replacing questions is refused
    with ValidationError when ``questions_locked`` is set; the caller raises
    QuizInUse before getting here in that case.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    changed = []
    if 'title' in data:
        quiz.title = _require_text(data, 'title')
        changed.append('title')
    for key in ('description', 'category'):
        if key in data:
            setattr(quiz, key, (data.get(key) or '').strip() or None)
            changed.append(key)
    if 'tags' in data:
        quiz.tags = validate_tags(data['tags'])
        changed.append('tags')
    if 'status' in data:
        if data['status'] not in QUIZ_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(QUIZ_STATUSES)}")
        quiz.status = data['status']
        changed.append('status')

    for key, value in validate_settings(data).items():
        setattr(quiz, key, value)
        changed.append(key)

    if 'questions' in data:
        if questions_locked:
            raise ValidationError("Questions cannot be changed once the quiz has attempts")
        quiz.questions = build_questions(data['questions'])
        changed.append('questions')
    if 'collaborators' in data:
        quiz.collaborators = [u for u in resolve_users(data['collaborators'], 'collaborators', 'teacher')
                              if u.id != quiz.owner_id]
        changed.append('collaborators')
    if 'assigned_to' in data:
        quiz.assigned_to = resolve_users(data['assigned_to'], 'assigned_to', 'student')
        changed.append('assigned_to')
    return changed
