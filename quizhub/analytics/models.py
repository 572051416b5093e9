"""
Database models for quiz analytics.

Rows are created and updated by the aggregator only; nothing here is
ever deleted.
"""
from datetime import datetime
from quizhub import db


class AnalyticsRecord(db.Model):
    """Running performance of one user on one quiz."""
    __tablename__ = "analytics_records"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete='CASCADE'), nullable=False)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id", ondelete='CASCADE'), nullable=False)
    attempts_count = db.Column(db.Integer, nullable=False, default=0)
    average_score = db.Column(db.Float, nullable=False, default=0.0)
    highest_score = db.Column(db.Float, nullable=False, default=0.0)
    last_score = db.Column(db.Float, nullable=True)
    total_time_spent = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_updated = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    quiz = db.relationship("Quiz")
    user = db.relationship("User")
    question_stats = db.relationship("QuestionStat", backref="record", lazy="selectin",
                                     cascade="all, delete-orphan", order_by="QuestionStat.question_id")

    __table_args__ = (
        db.UniqueConstraint('user_id', 'quiz_id', name='uq_analytics_user_quiz'),
        db.Index('ix_analytics_records_quiz_avg', 'quiz_id', 'average_score'),
    )

    def __repr__(self) -> str:
        return f"<AnalyticsRecord user={self.user_id} quiz={self.quiz_id} n={self.attempts_count}>"

    def get_question_stat(self, question_id: int):
        for stat in self.question_stats:
            if stat.question_id == question_id:
                return stat
        return None

    def to_dict(self, include_questions: bool = True) -> dict:
        data = {
            'user_id': self.user_id,
            'quiz_id': self.quiz_id,
            'quiz_title': self.quiz.title if self.quiz else None,
            'category': self.quiz.category if self.quiz else None,
            'attempts_count': self.attempts_count,
            'average_score': self.average_score,
            'highest_score': self.highest_score,
            'last_score': self.last_score,
            'total_time_spent': self.total_time_spent,
            'last_updated': self.last_updated.isoformat() if self.last_updated else None,
        }
        if include_questions:
            data['question_stats'] = [stat.to_dict() for stat in self.question_stats]
        return data


class QuestionStat(db.Model):
    """Per-question counters within an AnalyticsRecord."""
    __tablename__ = "analytics_question_stats"

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey("analytics_records.id", ondelete='CASCADE'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey("quiz_questions.id", ondelete='CASCADE'), nullable=False, index=True)
    total_attempts = db.Column(db.Integer, nullable=False, default=0)
    correct_attempts = db.Column(db.Integer, nullable=False, default=0)
    # Approximated as attempt.time_spent / number of questions
    average_time_spent = db.Column(db.Float, nullable=False, default=0.0)

    __table_args__ = (
        db.UniqueConstraint('record_id', 'question_id', name='uq_question_stat_record_question'),
    )

    def to_dict(self) -> dict:
        return {
            'question_id': self.question_id,
            'total_attempts': self.total_attempts,
            'correct_attempts': self.correct_attempts,
            'average_time_spent': self.average_time_spent,
        }


class QuizRollup(db.Model):
    """Quiz-level aggregate across every user."""
    __tablename__ = "analytics_quiz_rollups"

    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id", ondelete='CASCADE'), primary_key=True)
    attempts_count = db.Column(db.Integer, nullable=False, default=0)
    average_score = db.Column(db.Float, nullable=False, default=0.0)
    highest_score = db.Column(db.Float, nullable=False, default=0.0)
    pass_count = db.Column(db.Integer, nullable=False, default=0)
    total_time_spent = db.Column(db.Float, nullable=False, default=0.0)
    last_updated = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            'quiz_id': self.quiz_id,
            'attempts_count': self.attempts_count,
            'average_score': self.average_score,
            'highest_score': self.highest_score,
            'pass_count': self.pass_count,
            'pass_rate': (self.pass_count / self.attempts_count * 100) if self.attempts_count else 0.0,
            'total_time_spent': self.total_time_spent,
            'last_updated': self.last_updated.isoformat() if self.last_updated else None,
        }


class CategoryPerformance(db.Model):
    """Attempt-weighted performance of one user across a category."""
    __tablename__ = "analytics_category_performance"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete='CASCADE'), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    total_attempts = db.Column(db.Integer, nullable=False, default=0)
    average_score = db.Column(db.Float, nullable=False, default=0.0)
    last_updated = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'category', name='uq_category_performance_user_category'),
    )

    def to_dict(self) -> dict:
        return {
            'category': self.category,
            'total_attempts': self.total_attempts,
            'average_score': self.average_score,
        }
