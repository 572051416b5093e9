"""
Analytics reporting.

Read-only views over the rows maintained by the aggregator. Every entry
point authorises an AnalyticsScope against the access policy first; a
scope naming another user is refused before anything is looked up.
"""
import csv
from datetime import datetime
import io
import json

from flask import current_app
from sqlalchemy import func, select

from quizhub import db
from quizhub.common.errors import Forbidden, ValidationError
from quizhub.common.store import QuizStore
from quizhub.analytics.models import AnalyticsRecord, CategoryPerformance, QuestionStat, QuizRollup
from quizhub.quiz.service import load_quiz
from quizhub.security.access_policy import Action, Actor, AnalyticsScope, is_allowed
from quizhub.security.security_logger import SecurityLogger

EXPORT_FORMATS = ('csv', 'json')
EXPORT_COLUMNS = ('quiz_id', 'quiz_title', 'category', 'attempts_count', 'average_score',
                  'highest_score', 'last_score', 'total_time_spent', 'last_updated')

# Roles whose analytics reads depend on the quiz in scope
QUIZ_SCOPED_ROLES = ('teacher', 'admin')


def _authorize(actor: Actor, scope: AnalyticsScope) -> None:
    if not is_allowed(actor, Action.READ_ANALYTICS, scope):
        SecurityLogger.log_access_denied(actor.id, actor.role, Action.READ_ANALYTICS.value, scope.describe())
        raise Forbidden("You are not allowed to view these analytics")


def _precheck_user(actor: Actor, user_id: int | None) -> None:
    """Refuse another user's analytics before any quiz or record is fetched."""
    if user_id == actor.id or actor.role in QUIZ_SCOPED_ROLES:
        return
    SecurityLogger.log_access_denied(actor.id, actor.role, Action.READ_ANALYTICS.value,
                                     AnalyticsScope(user_id).describe())
    raise Forbidden("You are not allowed to view these analytics")


def empty_record(user_id: int, quiz) -> dict:
    return {
        'user_id': user_id,
        'quiz_id': quiz.id,
        'quiz_title': quiz.title,
        'category': quiz.category,
        'attempts_count': 0,
        'average_score': 0.0,
        'highest_score': 0.0,
        'last_score': None,
        'total_time_spent': 0.0,
        'last_updated': None,
        'question_stats': [],
    }


def get_analytics(actor: Actor, user_id: int, quiz_id: int) -> dict:
    """
    Analytics of one user on one quiz.

    Returns a zeroed record when the user has no completed attempt yet.

    Raises:
        Forbidden: the scope names another user and the actor is not quiz staff
        NotFound: the quiz is missing or invisible to the actor
    """
    _precheck_user(actor, user_id)
    quiz = load_quiz(actor, quiz_id)
    _authorize(actor, AnalyticsScope(user_id, quiz))

    record = QuizStore.get_analytics_record(user_id, quiz.id)
    return record.to_dict() if record is not None else empty_record(user_id, quiz)


def user_overview(actor: Actor, user_id: int | None = None) -> list[AnalyticsRecord]:
    user_id = actor.id if user_id is None else user_id
    _authorize(actor, AnalyticsScope(user_id))
    return list(db.session.execute(
        select(AnalyticsRecord).filter_by(user_id=user_id).order_by(AnalyticsRecord.last_updated.desc())
    ).scalars())


def quiz_analytics(actor: Actor, quiz_id: int) -> dict:
    """Every user's record on a quiz, best average first, plus the quiz rollup."""
    quiz = load_quiz(actor, quiz_id)
    _authorize(actor, AnalyticsScope(None, quiz))

    records = db.session.execute(
        select(AnalyticsRecord).filter_by(quiz_id=quiz.id).order_by(AnalyticsRecord.average_score.desc())
    ).scalars()
    rollup = db.session.get(QuizRollup, quiz.id)
    return {
        'quiz': quiz.to_dict(),
        'summary': rollup.to_dict() if rollup else QuizRollup(
            quiz_id=quiz.id, attempts_count=0, average_score=0.0, highest_score=0.0,
            pass_count=0, total_time_spent=0.0,
        ).to_dict(),
        'records': [
            dict(record.to_dict(include_questions=False),
                 user_name=record.user.full_name if record.user else None)
            for record in records
        ],
    }


def question_difficulty(actor: Actor, quiz_id: int) -> list[dict]:
    """
    Per-question totals across every user of a quiz.

    ``correct_rate`` is a percentage; ``average_time_spent`` is weighted by
    each record's attempt count.
    """
    quiz = load_quiz(actor, quiz_id)
    _authorize(actor, AnalyticsScope(None, quiz))

    rows = db.session.execute(
        select(
            QuestionStat.question_id,
            func.sum(QuestionStat.total_attempts),
            func.sum(QuestionStat.correct_attempts),
            func.sum(QuestionStat.average_time_spent * QuestionStat.total_attempts),
        )
        .join(AnalyticsRecord, AnalyticsRecord.id == QuestionStat.record_id)
        .where(AnalyticsRecord.quiz_id == quiz.id)
        .group_by(QuestionStat.question_id)
    ).all()
    totals = {row[0]: (int(row[1] or 0), int(row[2] or 0), float(row[3] or 0.0)) for row in rows}

    stats = []
    for question in quiz.questions:
        attempts, correct, time_spent = totals.get(question.id, (0, 0, 0.0))
        stats.append({
            'question_id': question.id,
            'prompt': question.prompt,
            'question_type': question.question_type,
            'difficulty': question.difficulty,
            'total_attempts': attempts,
            'correct_attempts': correct,
            'correct_rate': (correct / attempts * 100) if attempts else 0.0,
            'average_time_spent': (time_spent / attempts) if attempts else 0.0,
        })
    return stats


def category_performance(actor: Actor, user_id: int | None = None) -> list[CategoryPerformance]:
    user_id = actor.id if user_id is None else user_id
    _authorize(actor, AnalyticsScope(user_id))
    return list(db.session.execute(
        select(CategoryPerformance).filter_by(user_id=user_id).order_by(CategoryPerformance.category)
    ).scalars())


def _parse_date(value: str | None, label: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{label} must be an ISO 8601 date")


def export_analytics(actor: Actor, fmt: str, start: str | None = None, end: str | None = None,
                     user_id: int | None = None) -> tuple[str, str, str]:
    """
    Export a user's records.

    ``start``/``end`` filter on the record's last update, inclusive.

    Returns:
        (body, mimetype, filename)
    """
    fmt = (fmt or '').lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"format must be one of: {', '.join(EXPORT_FORMATS)}")
    start_at = _parse_date(start, 'start_date')
    end_at = _parse_date(end, 'end_date')

    user_id = actor.id if user_id is None else user_id
    _authorize(actor, AnalyticsScope(user_id))

    query = select(AnalyticsRecord).filter_by(user_id=user_id)
    if start_at is not None:
        query = query.where(AnalyticsRecord.last_updated >= start_at)
    if end_at is not None:
        query = query.where(AnalyticsRecord.last_updated <= end_at)
    records = list(db.session.execute(query.order_by(AnalyticsRecord.last_updated.desc())).scalars())

    current_app.logger.info(f"User {actor.id} exported {len(records)} analytics records of user {user_id} as {fmt}")

    if fmt == 'json':
        body = json.dumps([record.to_dict() for record in records], indent=2)
        return body, 'application/json', 'analytics.json'

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, extrasaction='ignore')
    writer.writeheader()
    for record in records:
        writer.writerow(record.to_dict(include_questions=False))
    return buffer.getvalue(), 'text/csv', 'analytics.csv'
