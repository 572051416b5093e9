"""
Quiz and attempt API routes.

Students can:
- List and view published quizzes available to them
- Start, resume, submit and abandon their own attempts

Teachers can:
- Create quizzes and manage the ones they own or collaborate on
- View every attempt of those quizzes and grade essay answers

Admins can do all of the above on every quiz.
"""
from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from quizhub.config import config
from quizhub.common.errors import ValidationError
from quizhub.quiz import service
from quizhub.security.access_policy import Action, Actor, is_allowed
from quizhub.security.rate_limiter import rate_limit

quiz_bp = Blueprint("quiz", __name__, url_prefix=config.API_PREFIX)


def _actor() -> Actor:
    return Actor.from_user(current_user)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _quiz_dict(actor: Actor, quiz) -> dict:
    # Staff see the full definition; students only see it through an attempt
    if is_allowed(actor, Action.UPDATE, quiz):
        return quiz.to_dict(include_questions=True, reveal_answers=True)
    return quiz.to_dict()


@quiz_bp.route('/quizzes', methods=['GET'])
@login_required
def list_quizzes():
    """
    List quizzes visible to the current user.

    Query params: status, category, mine=true (only quizzes the user manages)
    """
    actor = _actor()
    quizzes = service.list_quizzes(
        actor,
        status=request.args.get('status'),
        category=request.args.get('category'),
        owned_only=request.args.get('mine', '').lower() == 'true',
    )
    return jsonify({
        'success': True,
        'quizzes': [quiz.to_dict() for quiz in quizzes],
        'count': len(quizzes),
    }), 200


@quiz_bp.route('/quizzes', methods=['POST'])
@login_required
def create_quiz():
    """
    Create a quiz with its questions.

    Request body:
    {
        "title": "Quiz Title",
        "description": "Optional description",
        "category": "math",
        "tags": ["algebra"],
        "settings": {"time_limit_minutes": 30, "passing_score": 60,
                     "attempts_allowed": 2, "randomize_questions": false,
                     "randomize_options": false},
        "status": "draft",
        "collaborators": [12],
        "assigned_to": [40, 41],
        "questions": [...]
    }
    """
    actor = _actor()
    quiz = service.create_quiz(actor, _json_body())
    return jsonify({
        'success': True,
        'message': 'Quiz created successfully',
        'quiz': quiz.to_dict(include_questions=True, reveal_answers=True),
    }), 201


@quiz_bp.route('/quizzes/<int:quiz_id>', methods=['GET'])
@login_required
def get_quiz(quiz_id):
    actor = _actor()
    quiz = service.load_quiz(actor, quiz_id)
    return jsonify({'success': True, 'quiz': _quiz_dict(actor, quiz)}), 200


@quiz_bp.route('/quizzes/<int:quiz_id>', methods=['PUT', 'PATCH'])
@login_required
def update_quiz(quiz_id):
    actor = _actor()
    quiz = service.update_quiz(actor, quiz_id, _json_body())
    return jsonify({
        'success': True,
        'message': 'Quiz updated successfully',
        'quiz': quiz.to_dict(include_questions=True, reveal_answers=True),
    }), 200


@quiz_bp.route('/quizzes/<int:quiz_id>', methods=['DELETE'])
@login_required
def delete_quiz(quiz_id):
    service.delete_quiz(_actor(), quiz_id)
    return jsonify({'success': True, 'message': 'Quiz deleted successfully'}), 200


@quiz_bp.route('/quizzes/<int:quiz_id>/attempts', methods=['POST'])
@login_required
def start_attempt(quiz_id):
    """Start a new attempt, or resume the caller's in-progress one (200)."""
    actor = _actor()
    attempt, created = service.start_attempt(actor, quiz_id)
    return jsonify({
        'success': True,
        'resumed': not created,
        'attempt': service.attempt_payload(actor, attempt),
    }), 201 if created else 200


@quiz_bp.route('/quizzes/<int:quiz_id>/attempts', methods=['GET'])
@login_required
def list_attempts(quiz_id):
    attempts = service.list_attempts(_actor(), quiz_id)
    return jsonify({
        'success': True,
        'attempts': [attempt.to_dict() for attempt in attempts],
        'count': len(attempts),
    }), 200


@quiz_bp.route('/attempts/<int:attempt_id>', methods=['GET'])
@login_required
def get_attempt(attempt_id):
    actor = _actor()
    attempt = service.load_attempt(actor, attempt_id)
    return jsonify({'success': True, 'attempt': service.attempt_payload(actor, attempt)}), 200


@quiz_bp.route('/attempts/<int:attempt_id>/submit', methods=['POST'])
@login_required
@rate_limit('SUBMIT_RATE_LIMIT', per='user', error_message='Too many submissions. Please slow down.')
def submit_attempt(attempt_id):
    """
    Submit answers for an attempt.

    Request body:
    {
        "answers": [
            {"question_id": 1, "option_id": 3},
            {"question_id": 2, "answer_text": "Paris"},
            {"question_id": 3, "skipped": true}
        ]
    }
    or {"answers": {"1": 3, "2": "Paris", "3": null}}
    """
    actor = _actor()
    data = _json_body()
    attempt = service.submit_attempt(actor, attempt_id, data.get('answers'))
    return jsonify({
        'success': True,
        'message': 'Quiz submitted successfully',
        'attempt': service.attempt_payload(actor, attempt),
    }), 200


@quiz_bp.route('/attempts/<int:attempt_id>/abandon', methods=['POST'])
@login_required
def abandon_attempt(attempt_id):
    attempt = service.abandon_attempt(_actor(), attempt_id)
    return jsonify({'success': True, 'attempt': attempt.to_dict()}), 200


@quiz_bp.route('/attempts/<int:attempt_id>/answers/<int:question_id>/grade', methods=['POST'])
@login_required
def grade_answer(attempt_id, question_id):
    """Grade an essay answer. Request body: {"points": 4}"""
    actor = _actor()
    data = _json_body()
    attempt = service.grade_essay(actor, attempt_id, question_id, data.get('points'))
    return jsonify({
        'success': True,
        'message': 'Answer graded',
        'attempt': service.attempt_payload(actor, attempt),
    }), 200
