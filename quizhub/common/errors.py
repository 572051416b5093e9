"""
Error taxonomy for quiz operations.

Every error carries a stable machine-readable code and an HTTP status so
the API layer can report it without inspecting the message text.
"""
from flask import Flask, jsonify


class QuizError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "quiz_error"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {'success': False, 'error': self.message, 'code': self.code}


class NotFound(QuizError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class Forbidden(QuizError):
    code = "forbidden"
    status_code = 403
    default_message = "You do not have permission to perform this action"


class InvalidQuestionReference(QuizError):
    code = "invalid_question_reference"
    status_code = 400
    default_message = "Answer references a question that is not part of this quiz"


class MalformedAnswer(QuizError):
    code = "malformed_answer"
    status_code = 400
    default_message = "Answer does not match the question type"


class ValidationError(QuizError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid quiz definition"


class AttemptLimitExceeded(QuizError):
    code = "attempt_limit_exceeded"
    status_code = 409
    default_message = "Maximum attempts reached for this quiz"


class AttemptExpired(QuizError):
    code = "attempt_expired"
    status_code = 409
    default_message = "The time limit for this attempt has passed"


class AlreadyCompleted(QuizError):
    code = "already_completed"
    status_code = 409
    default_message = "This quiz attempt is already completed"


class QuizInUse(QuizError):
    code = "quiz_in_use"
    status_code = 409
    default_message = "Quiz already has attempts"


class ServiceUnavailable(QuizError):
    code = "service_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable, please try again"


CLIENT_DATA_ERRORS = (InvalidQuestionReference, MalformedAnswer, ValidationError)


def register_error_handlers(app: Flask) -> None:
    """Map QuizError subclasses and unexpected failures to JSON responses."""

    @app.errorhandler(QuizError)
    def handle_quiz_error(error: QuizError):
        if isinstance(error, CLIENT_DATA_ERRORS):
            app.logger.warning(f"Rejected client data ({error.code}): {error.message}")
        elif isinstance(error, ServiceUnavailable):
            app.logger.error(f"Service unavailable: {error.message}")
        else:
            app.logger.info(f"Request failed ({error.code}): {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(500)
    def handle_500(error):
        original = getattr(error, "original_exception", None) or error
        app.logger.error(f"Unhandled error: {original}")
        from quizhub import db
        db.session.rollback()
        return jsonify({'success': False, 'error': 'Internal server error', 'code': 'internal_error'}), 500
