"""
Persistence interface for quizzes, attempts and analytics.

All writes that must be serialised per (user, quiz) are expressed as
conditional statements (compare-and-swap style) or row-locked reads, never
as a plain read followed by an unconditional write.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from quizhub import db
from quizhub.common.errors import AttemptLimitExceeded
from quizhub.quiz.models import AttemptCounter, Quiz, QuizAttempt
from quizhub.analytics.models import AnalyticsRecord


class QuizStore:
    """Thin data-access layer over the SQLAlchemy session."""

    # ---- quizzes -------------------------------------------------------

    @staticmethod
    def get_quiz(quiz_id: int) -> Quiz | None:
        return db.session.get(Quiz, quiz_id)

    # ---- attempts ------------------------------------------------------

    @staticmethod
    def get_attempt(attempt_id: int) -> QuizAttempt | None:
        return db.session.get(QuizAttempt, attempt_id)

    @staticmethod
    def find_in_progress_attempt(quiz_id: int, user_id: int) -> QuizAttempt | None:
        return db.session.execute(
            select(QuizAttempt)
            .filter_by(quiz_id=quiz_id, user_id=user_id, status='in_progress')
            .order_by(QuizAttempt.started_at.desc())
        ).scalars().first()

    @staticmethod
    def list_attempts(quiz_id: int, user_id: int | None = None) -> list[QuizAttempt]:
        query = select(QuizAttempt).filter_by(quiz_id=quiz_id)
        if user_id is not None:
            query = query.filter_by(user_id=user_id)
        query = query.order_by(QuizAttempt.started_at.desc(), QuizAttempt.id.desc())
        return list(db.session.execute(query).scalars())

    @staticmethod
    def count_completed_attempts(quiz_id: int, user_id: int) -> int:
        return db.session.query(QuizAttempt).filter_by(
            quiz_id=quiz_id, user_id=user_id, status='completed'
        ).count()

    @staticmethod
    def has_attempts(quiz_id: int) -> bool:
        return db.session.execute(
            select(QuizAttempt.id).filter_by(quiz_id=quiz_id).limit(1)
        ).first() is not None

    @staticmethod
    def _ensure_counter(quiz_id: int, user_id: int) -> None:
        exists = db.session.execute(
            select(AttemptCounter.id).filter_by(quiz_id=quiz_id, user_id=user_id)
        ).first()
        if exists:
            return
        db.session.add(AttemptCounter(quiz_id=quiz_id, user_id=user_id, used=0))
        try:
            db.session.commit()
        except IntegrityError:
            # Another request created the row first
            db.session.rollback()

    @classmethod
    def create_attempt(cls, quiz: Quiz, user_id: int, started_at: datetime) -> QuizAttempt:
        """
        Reserve an attempt slot and insert a new in-progress attempt.

        The reservation is a single conditional UPDATE
        (``used = used + 1 WHERE used < attempts_allowed``), so concurrent
        starts can never hand out more slots than the quiz allows.

        Raises:
            AttemptLimitExceeded: every slot is already used
        """
        cls._ensure_counter(quiz.id, user_id)

        result = db.session.execute(
            update(AttemptCounter)
            .where(
                AttemptCounter.quiz_id == quiz.id,
                AttemptCounter.user_id == user_id,
                AttemptCounter.used < quiz.attempts_allowed,
            )
            .values(used=AttemptCounter.used + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise AttemptLimitExceeded(
                f"Maximum attempts ({quiz.attempts_allowed}) reached for this quiz"
            )

        attempt = QuizAttempt(quiz_id=quiz.id, user_id=user_id, status='in_progress', started_at=started_at)
        db.session.add(attempt)
        db.session.commit()
        return attempt

    @staticmethod
    def release_attempt_slot(quiz_id: int, user_id: int) -> None:
        """Give back the slot held by an attempt that will never complete."""
        db.session.execute(
            update(AttemptCounter)
            .where(
                AttemptCounter.quiz_id == quiz_id,
                AttemptCounter.user_id == user_id,
                AttemptCounter.used > 0,
            )
            .values(used=AttemptCounter.used - 1)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def update_attempt(attempt: QuizAttempt, expected_status: str, **values) -> bool:
        """
        Update ``attempt`` only if its stored status is still ``expected_status``.

        Returns False when another request changed the attempt first. The
        caller owns the transaction and commits or rolls back.
        """
        result = db.session.execute(
            update(QuizAttempt)
            .where(QuizAttempt.id == attempt.id, QuizAttempt.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        db.session.expire(attempt)
        return True

    @staticmethod
    def claim_for_analytics(attempt: QuizAttempt, now: datetime) -> bool:
        """Mark a completed attempt as recorded; False if it already was."""
        result = db.session.execute(
            update(QuizAttempt)
            .where(
                QuizAttempt.id == attempt.id,
                QuizAttempt.status == 'completed',
                QuizAttempt.analytics_recorded_at.is_(None),
            )
            .values(analytics_recorded_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        db.session.expire(attempt, ['analytics_recorded_at'])
        return True

    # ---- analytics -----------------------------------------------------

    @staticmethod
    def get_analytics_record(user_id: int, quiz_id: int, for_update: bool = False) -> AnalyticsRecord | None:
        query = select(AnalyticsRecord).filter_by(user_id=user_id, quiz_id=quiz_id)
        if for_update:
            query = query.with_for_update()
        return db.session.execute(query).scalars().first()

    @classmethod
    def upsert_analytics_record(cls, user_id: int, quiz_id: int) -> AnalyticsRecord:
        """
        Return the row-locked record for (user, quiz), creating it if needed.

        A concurrent first insert surfaces as IntegrityError on flush; the
        caller retries its transaction.
        """
        record = cls.get_analytics_record(user_id, quiz_id, for_update=True)
        if record is None:
            record = AnalyticsRecord(user_id=user_id, quiz_id=quiz_id, attempts_count=0,
                                     average_score=0.0, highest_score=0.0, total_time_spent=0.0)
            db.session.add(record)
            db.session.flush()
            current_app.logger.debug(f"Created analytics record for user {user_id}, quiz {quiz_id}")
        return record

    @staticmethod
    def locked_row(model, **keys):
        """Row-locked fetch of ``model`` by ``keys``; None when absent."""
        return db.session.execute(
            select(model).filter_by(**keys).with_for_update()
        ).scalars().first()
