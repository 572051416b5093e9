"""
Quiz and attempt operations.

Every operation receives an explicit Actor and checks the access policy
before reading or mutating anything. A quiz or attempt the actor may not
even read is reported exactly like a missing one.
"""
from datetime import datetime
import random

from flask import current_app
from sqlalchemy.exc import IntegrityError

from quizhub import db
from quizhub.analytics import aggregator
from quizhub.common.errors import (
    AlreadyCompleted, AttemptExpired, Forbidden, NotFound, QuizInUse, ServiceUnavailable, ValidationError,
)
from quizhub.common.locks import analytics_locks
from quizhub.common.retry import retry_on_transient
from quizhub.common.store import QuizStore
from quizhub.quiz.grader import parse_answers
from quizhub.quiz.models import Answer, Quiz, QuizAttempt
from quizhub.quiz.scoring import attempt_deadline, compute_totals, is_expired, score_attempt
from quizhub.quiz.validation import apply_quiz_update, build_quiz
from quizhub.security.access_policy import Action, Actor, is_allowed
from quizhub.security.security_logger import SecurityLogger

QUIZ_NOT_FOUND = "Quiz not found"
ATTEMPT_NOT_FOUND = "Attempt not found"

# Concurrent first inserts of analytics rows surface as IntegrityError
SUBMIT_INTEGRITY_RETRIES = 3


def _grace_seconds() -> int:
    return current_app.config.get("ATTEMPT_GRACE_SECONDS", 30)


def _deny(actor: Actor, action: Action, resource: str, message: str):
    SecurityLogger.log_access_denied(actor.id, actor.role, action.value, resource)
    raise Forbidden(message)


def _conceal(actor: Actor, action: Action, resource: str, message: str):
    SecurityLogger.log_access_denied(actor.id, actor.role, action.value, resource)
    raise NotFound(message)


def load_quiz(actor: Actor, quiz_id: int, action: Action = Action.READ) -> Quiz:
    """Fetch a quiz the actor may see and perform ``action`` on."""
    quiz = QuizStore.get_quiz(quiz_id)
    if quiz is None:
        raise NotFound(QUIZ_NOT_FOUND)
    if not is_allowed(actor, Action.READ, quiz):
        _conceal(actor, action, f"quiz {quiz_id}", QUIZ_NOT_FOUND)
    if action != Action.READ and not is_allowed(actor, action, quiz):
        _deny(actor, action, f"quiz {quiz_id}", f"You are not allowed to {action.value.replace('_', ' ')} this quiz")
    return quiz


def load_attempt(actor: Actor, attempt_id: int, action: Action = Action.READ) -> QuizAttempt:
    """Fetch an attempt the actor may see and perform ``action`` on."""
    attempt = QuizStore.get_attempt(attempt_id)
    if attempt is None:
        raise NotFound(ATTEMPT_NOT_FOUND)
    if not is_allowed(actor, Action.READ, attempt):
        _conceal(actor, action, f"attempt {attempt_id}", ATTEMPT_NOT_FOUND)
    if action != Action.READ and not is_allowed(actor, action, attempt):
        _deny(actor, action, f"attempt {attempt_id}",
              f"You are not allowed to {action.value.replace('_', ' ')} this attempt")
    return attempt


# ---- quiz authoring ----------------------------------------------------


def list_quizzes(actor: Actor, status: str | None = None, category: str | None = None,
                 owned_only: bool = False) -> list[Quiz]:
    """Quizzes visible to ``actor``, newest first."""
    query = Quiz.query
    if status:
        query = query.filter_by(status=status)
    if category:
        query = query.filter_by(category=category)
    quizzes = query.order_by(Quiz.created_at.desc(), Quiz.id.desc()).all()

    visible = [quiz for quiz in quizzes if is_allowed(actor, Action.READ, quiz)]
    if owned_only:
        visible = [quiz for quiz in visible if is_allowed(actor, Action.UPDATE, quiz)]
    return visible


@retry_on_transient
def create_quiz(actor: Actor, data: dict) -> Quiz:
    if not is_allowed(actor, Action.CREATE, None):
        _deny(actor, Action.CREATE, "quiz", "Only teachers and admins can create quizzes")

    quiz = build_quiz(data, owner_id=actor.id)
    db.session.add(quiz)
    db.session.commit()
    current_app.logger.info(f"Quiz {quiz.id} '{quiz.title}' created by user {actor.id} "
                            f"with {len(quiz.questions)} questions")
    return quiz


@retry_on_transient
def update_quiz(actor: Actor, quiz_id: int, data: dict) -> Quiz:
    """
    Update quiz fields, settings, collaborators or assignments.

    Raises:
        QuizInUse: the payload replaces questions of a quiz that has attempts
    """
    quiz = load_quiz(actor, quiz_id, Action.UPDATE)
    if isinstance(data, dict) and 'questions' in data and QuizStore.has_attempts(quiz.id):
        raise QuizInUse("Questions cannot be changed once the quiz has attempts")

    changed = apply_quiz_update(quiz, data, questions_locked=False)
    quiz.updated_at = datetime.utcnow()
    db.session.commit()
    current_app.logger.info(f"Quiz {quiz.id} updated by user {actor.id}: {', '.join(changed) or 'no changes'}")
    return quiz


@retry_on_transient
def delete_quiz(actor: Actor, quiz_id: int) -> None:
    quiz = load_quiz(actor, quiz_id, Action.DELETE)
    if QuizStore.has_attempts(quiz.id):
        raise QuizInUse("Quizzes with attempts cannot be deleted; archive them instead")
    db.session.delete(quiz)
    db.session.commit()
    current_app.logger.info(f"Quiz {quiz_id} deleted by user {actor.id}")


# ---- attempts ----------------------------------------------------------


def _abandon(attempt: QuizAttempt, now: datetime, reason: str) -> bool:
    """Mark an in-progress attempt abandoned and free its slot. Commits."""
    quiz_id, user_id, attempt_id = attempt.quiz_id, attempt.user_id, attempt.id
    if not QuizStore.update_attempt(attempt, 'in_progress', status='abandoned', submitted_at=now):
        db.session.rollback()
        return False
    QuizStore.release_attempt_slot(quiz_id, user_id)
    db.session.commit()
    current_app.logger.info(f"Attempt {attempt_id} (user {user_id}, quiz {quiz_id}) abandoned: {reason}")
    return True


@retry_on_transient
def start_attempt(actor: Actor, quiz_id: int, now: datetime | None = None) -> tuple[QuizAttempt, bool]:
    """
    Start an attempt, or resume the actor's live in-progress one.

    Returns:
        (attempt, created) where ``created`` is False for a resumed attempt

    Raises:
        NotFound: quiz missing or invisible to the actor
        Forbidden: the actor may see the quiz but not take it
        AttemptLimitExceeded: every attempt slot is used
    """
    now = now or datetime.utcnow()
    quiz = load_quiz(actor, quiz_id, Action.START_ATTEMPT)
    grace = _grace_seconds()

    with analytics_locks.hold((actor.id, quiz.id)):
        existing = QuizStore.find_in_progress_attempt(quiz.id, actor.id)
        if existing is not None:
            if not is_expired(quiz, existing.started_at, now, grace):
                current_app.logger.info(f"Resuming attempt {existing.id} for user {actor.id} on quiz {quiz.id}")
                return existing, False
            _abandon(existing, now, "time limit passed before resume")

        attempt = QuizStore.create_attempt(quiz, actor.id, now)
        current_app.logger.info(f"Attempt {attempt.id} started by user {actor.id} on quiz {quiz.id}")
        return attempt, True


def _complete(attempt_id: int, answers: dict, now: datetime, grace: int) -> QuizAttempt:
    attempt = QuizStore.get_attempt(attempt_id)
    if attempt is None:
        raise NotFound(ATTEMPT_NOT_FOUND)
    if attempt.status != 'in_progress':
        raise AlreadyCompleted(f"Attempt {attempt_id} is already {attempt.status}")

    quiz = attempt.quiz
    try:
        scored = score_attempt(quiz, attempt.started_at, answers, now, grace)
    except AttemptExpired:
        _abandon(attempt, now, "submitted after the time limit")
        raise

    completed = QuizStore.update_attempt(
        attempt, 'in_progress',
        status='completed',
        submitted_at=scored.submitted_at,
        time_spent=scored.time_spent,
        total_points=scored.total_points,
        max_points=scored.max_points,
        score=scored.score,
        pending_review=scored.pending_review,
    )
    if not completed:
        db.session.rollback()
        raise AlreadyCompleted(f"Attempt {attempt_id} is already completed")

    for result in scored.answers:
        db.session.add(Answer(
            attempt_id=attempt_id,
            question_id=result.question_id,
            option_id=result.option_id,
            answer_text=result.answer_text,
            skipped=result.skipped,
            is_correct=result.is_correct,
            points_earned=result.points_earned,
        ))
    db.session.flush()

    aggregator.record(attempt, now)
    db.session.commit()
    return attempt


@retry_on_transient
def submit_attempt(actor: Actor, attempt_id: int, raw_answers, now: datetime | None = None) -> QuizAttempt:
    """
    Grade and complete an attempt, then fold it into analytics.

    Completion, answer rows and analytics are written in one transaction.

    Raises:
        NotFound / Forbidden: per the access policy
        InvalidQuestionReference / MalformedAnswer: bad submission payload
        AttemptExpired: submitted after the time limit plus grace
        AlreadyCompleted: the attempt is no longer in progress
    """
    now = now or datetime.utcnow()
    attempt = load_attempt(actor, attempt_id, Action.SUBMIT_ATTEMPT)
    if attempt.status != 'in_progress':
        raise AlreadyCompleted(f"Attempt {attempt_id} is already {attempt.status}")

    answers = parse_answers(attempt.quiz, raw_answers)
    grace = _grace_seconds()

    with analytics_locks.hold((attempt.user_id, attempt.quiz_id)):
        for tries in range(1, SUBMIT_INTEGRITY_RETRIES + 1):
            try:
                attempt = _complete(attempt_id, answers, now, grace)
                break
            except IntegrityError as e:
                db.session.rollback()
                if tries == SUBMIT_INTEGRITY_RETRIES:
                    current_app.logger.error(f"Submitting attempt {attempt_id} kept conflicting: {e}")
                    raise ServiceUnavailable() from e
                current_app.logger.warning(f"Conflict while submitting attempt {attempt_id}, retrying ({tries})")

    current_app.logger.info(
        f"Attempt {attempt.id} submitted by user {actor.id}: "
        f"{attempt.total_points}/{attempt.max_points} ({attempt.score:.1f}%)"
        f"{' pending review' if attempt.pending_review else ''}"
    )
    return attempt


@retry_on_transient
def abandon_attempt(actor: Actor, attempt_id: int, now: datetime | None = None) -> QuizAttempt:
    """Abandon an in-progress attempt and release its slot."""
    now = now or datetime.utcnow()
    attempt = load_attempt(actor, attempt_id, Action.ABANDON_ATTEMPT)

    with analytics_locks.hold((attempt.user_id, attempt.quiz_id)):
        if attempt.status != 'in_progress' or not _abandon(attempt, now, f"requested by user {actor.id}"):
            db.session.refresh(attempt)
            raise AlreadyCompleted(f"Attempt {attempt_id} is already {attempt.status}")
    return attempt


@retry_on_transient
def grade_essay(actor: Actor, attempt_id: int, question_id: int, points, now: datetime | None = None) -> QuizAttempt:
    """
    Record a manual grade for an essay answer and propagate the new score.

    Raises:
        ValidationError: not an essay, attempt not completed, or points out of range
    """
    now = now or datetime.utcnow()
    attempt = load_attempt(actor, attempt_id, Action.GRADE)
    if attempt.status != 'completed':
        raise ValidationError("Only completed attempts can be graded")

    question = attempt.quiz.get_question(question_id)
    if question is None:
        raise NotFound("Question not found")
    if question.question_type != 'essay':
        raise ValidationError("Only essay answers are graded manually")
    if isinstance(points, bool) or not isinstance(points, int) or not 0 <= points <= question.points:
        raise ValidationError(f"points must be an integer between 0 and {question.points}")

    with analytics_locks.hold((attempt.user_id, attempt.quiz_id)):
        answer = attempt.get_answer(question_id)
        if answer is None:
            raise NotFound("Answer not found")

        old_score = attempt.score or 0.0
        was_correct = answer.is_correct
        answer.points_earned = points
        answer.is_correct = points == question.points
        answer.graded_by = actor.id
        db.session.flush()

        question_points = {q.id: q.points for q in attempt.quiz.questions}
        total, maximum, score, pending = compute_totals(attempt.answers, question_points)
        if not QuizStore.update_attempt(attempt, 'completed', total_points=total, max_points=maximum,
                                        score=score, pending_review=pending):
            db.session.rollback()
            raise NotFound(ATTEMPT_NOT_FOUND)

        aggregator.apply_correction(attempt, old_score, question_id, was_correct, now)
        db.session.commit()

    current_app.logger.info(
        f"Essay {question_id} of attempt {attempt_id} graded {points}/{question.points} by user {actor.id}; "
        f"score {old_score:.1f}% -> {attempt.score:.1f}%"
    )
    return attempt


def list_attempts(actor: Actor, quiz_id: int) -> list[QuizAttempt]:
    """Quiz staff see every attempt; everyone else sees their own."""
    quiz = load_quiz(actor, quiz_id)
    if is_allowed(actor, Action.READ_ANALYTICS, quiz):
        return QuizStore.list_attempts(quiz.id)
    return QuizStore.list_attempts(quiz.id, user_id=actor.id)


def attempt_payload(actor: Actor, attempt: QuizAttempt) -> dict:
    """
    Serialise an attempt with its questions for the actor.

    Question and option order are shuffled per attempt when the quiz asks
    for it; seeding with the attempt id keeps the order stable on reload.
    Correct answers are only revealed to quiz staff.
    """
    quiz = attempt.quiz
    reveal = is_allowed(actor, Action.GRADE, attempt)

    data = attempt.to_dict(include_answers=attempt.status == 'completed', reveal_answers=reveal)
    deadline = attempt_deadline(quiz, attempt.started_at, 0)
    data['quiz'] = {
        'id': quiz.id,
        'title': quiz.title,
        'time_limit_minutes': quiz.time_limit_minutes,
        'passing_score': quiz.passing_score,
    }
    data['deadline'] = deadline.isoformat() if deadline else None

    rng = random.Random(attempt.id)
    questions = list(quiz.questions)
    if quiz.randomize_questions:
        rng.shuffle(questions)
    serialized = []
    for question in questions:
        entry = question.to_dict(reveal_answers=reveal)
        if quiz.randomize_options and 'options' in entry:
            rng.shuffle(entry['options'])
        serialized.append(entry)
    data['questions'] = serialized
    return data
