"""
Database models for quiz functionality.

Supports four question types:
- single_choice: options, exactly one correct
- true_false: two options, exactly one correct
- short_answer: one canonical answer, compared case-insensitively
- essay: no automatic correctness, graded manually
"""
from datetime import datetime
from quizhub import db


QUESTION_TYPES = ('single_choice', 'true_false', 'short_answer', 'essay')
CHOICE_TYPES = ('single_choice', 'true_false')
DIFFICULTIES = ('easy', 'medium', 'hard')
QUIZ_STATUSES = ('draft', 'published', 'archived')
ATTEMPT_STATUSES = ('in_progress', 'completed', 'abandoned')


quiz_collaborators = db.Table(
    "quiz_collaborators",
    db.Column("quiz_id", db.Integer, db.ForeignKey("quizzes.id", ondelete='CASCADE'), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete='CASCADE'), primary_key=True),
)

quiz_assignments = db.Table(
    "quiz_assignments",
    db.Column("quiz_id", db.Integer, db.ForeignKey("quizzes.id", ondelete='CASCADE'), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete='CASCADE'), primary_key=True),
)


class Quiz(db.Model):
    """
    A quiz owned by a teacher (or admin).

    Students may see it once published; when the assignment list is
    non-empty only the assigned students may see it.
    """
    __tablename__ = "quizzes"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True, index=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    time_limit_minutes = db.Column(db.Integer, nullable=True)  # None means untimed
    randomize_questions = db.Column(db.Boolean, nullable=False, default=False)
    randomize_options = db.Column(db.Boolean, nullable=False, default=False)
    passing_score = db.Column(db.Float, nullable=False, default=60.0)  # Passing percentage
    attempts_allowed = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(20), nullable=False, default='draft', index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete='SET NULL'), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    owner = db.relationship("User", foreign_keys=[owner_id])
    collaborators = db.relationship("User", secondary=quiz_collaborators, lazy="selectin")
    assigned_to = db.relationship("User", secondary=quiz_assignments, lazy="selectin")
    questions = db.relationship("Question", backref="quiz", lazy="selectin", cascade="all, delete-orphan",
                                order_by="Question.order_index")

    def __repr__(self) -> str:
        return f"<Quiz {self.id}: {self.title}>"

    @property
    def collaborator_ids(self) -> set[int]:
        return {user.id for user in self.collaborators}

    @property
    def assigned_ids(self) -> set[int]:
        return {user.id for user in self.assigned_to}

    def get_total_points(self) -> int:
        """Calculate total points for all questions."""
        return sum(q.points for q in self.questions)

    def get_question(self, question_id: int):
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def to_dict(self, include_questions: bool = False, reveal_answers: bool = False) -> dict:
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'tags': list(self.tags or []),
            'status': self.status,
            'owner_id': self.owner_id,
            'collaborators': sorted(self.collaborator_ids),
            'assigned_to': sorted(self.assigned_ids),
            'settings': {
                'time_limit_minutes': self.time_limit_minutes,
                'randomize_questions': self.randomize_questions,
                'randomize_options': self.randomize_options,
                'passing_score': self.passing_score,
                'attempts_allowed': self.attempts_allowed,
            },
            'question_count': len(self.questions),
            'total_points': self.get_total_points(),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_questions:
            data['questions'] = [q.to_dict(reveal_answers=reveal_answers) for q in self.questions]
        return data


class Question(db.Model):
    """Model for quiz questions."""
    __tablename__ = "quiz_questions"

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id", ondelete='CASCADE'), nullable=False, index=True)
    question_type = db.Column(db.String(50), nullable=False)
    prompt = db.Column(db.Text, nullable=False)
    # Only used by short_answer; choice types use QuestionOption.is_correct
    correct_answer = db.Column(db.Text, nullable=True)
    points = db.Column(db.Integer, nullable=False, default=1)
    difficulty = db.Column(db.String(20), nullable=False, default='medium')
    order_index = db.Column(db.Integer, nullable=False, default=0)

    options = db.relationship("QuestionOption", backref="question", lazy="selectin", cascade="all, delete-orphan",
                              order_by="QuestionOption.order_index")

    __table_args__ = (
        db.Index('ix_quiz_questions_quiz_order', 'quiz_id', 'order_index'),
    )

    def __repr__(self) -> str:
        return f"<Question {self.id}: {self.question_type}>"

    @property
    def is_choice(self) -> bool:
        return self.question_type in CHOICE_TYPES

    def get_correct_option(self):
        for option in self.options:
            if option.is_correct:
                return option
        return None

    def get_correct_answer(self) -> str | None:
        """Get the correct answer as a string for display."""
        if self.is_choice:
            correct_option = self.get_correct_option()
            return correct_option.text if correct_option else None
        return self.correct_answer

    def to_dict(self, reveal_answers: bool = False) -> dict:
        data = {
            'id': self.id,
            'question_type': self.question_type,
            'prompt': self.prompt,
            'points': self.points,
            'difficulty': self.difficulty,
            'order_index': self.order_index,
        }
        if self.is_choice:
            data['options'] = [opt.to_dict(reveal_answers=reveal_answers) for opt in self.options]
        if reveal_answers:
            data['correct_answer'] = self.get_correct_answer()
        return data


class QuestionOption(db.Model):
    """Option of a single_choice or true_false question."""
    __tablename__ = "quiz_question_options"

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey("quiz_questions.id", ondelete='CASCADE'), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, default=False, nullable=False)
    order_index = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<QuestionOption {self.id}: {self.text[:50]}>"

    def to_dict(self, reveal_answers: bool = False) -> dict:
        data = {'id': self.id, 'text': self.text, 'order_index': self.order_index}
        if reveal_answers:
            data['is_correct'] = self.is_correct
        return data


class AttemptCounter(db.Model):
    """
    Attempt slots consumed by a user on a quiz.

    Incremented with a conditional UPDATE when an attempt starts and
    decremented when an attempt is abandoned, so the limit check and the
    reservation are a single atomic statement.
    """
    __tablename__ = "quiz_attempt_counters"

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id", ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete='CASCADE'), nullable=False)
    used = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint('quiz_id', 'user_id', name='uq_attempt_counter_quiz_user'),
    )


class QuizAttempt(db.Model):
    """Model for tracking quiz attempts."""
    __tablename__ = "quiz_attempts"

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id", ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete='CASCADE'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='in_progress', index=True)
    started_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    submitted_at = db.Column(db.DateTime, nullable=True)
    time_spent = db.Column(db.Float, nullable=True)  # Seconds between start and submission
    total_points = db.Column(db.Integer, nullable=True)  # Points earned on graded questions
    max_points = db.Column(db.Integer, nullable=True)  # Points available on graded questions
    score = db.Column(db.Float, nullable=True)  # Percentage of max_points
    pending_review = db.Column(db.Boolean, nullable=False, default=False)
    analytics_recorded_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    quiz = db.relationship("Quiz")
    user = db.relationship("User", foreign_keys=[user_id])
    answers = db.relationship("Answer", backref="attempt", lazy="selectin", cascade="all, delete-orphan",
                              order_by="Answer.id")

    __table_args__ = (
        db.Index('ix_quiz_attempts_quiz_user', 'quiz_id', 'user_id'),
        db.Index('ix_quiz_attempts_user_status', 'user_id', 'status'),
    )

    def __repr__(self) -> str:
        return f"<QuizAttempt {self.id}: User {self.user_id}, Quiz {self.quiz_id}>"

    def is_passing(self) -> bool | None:
        """Check if the attempt meets the passing score."""
        if self.status != 'completed' or self.score is None:
            return None
        return self.score >= self.quiz.passing_score

    def get_answer(self, question_id: int):
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    def to_dict(self, include_answers: bool = False, reveal_answers: bool = False) -> dict:
        data = {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'user_id': self.user_id,
            'status': self.status,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
            'time_spent': self.time_spent,
            'total_points': self.total_points,
            'max_points': self.max_points,
            'score': self.score,
            'is_passing': self.is_passing(),
            'pending_review': self.pending_review,
        }
        if include_answers:
            data['answers'] = [a.to_dict(reveal_answers=reveal_answers) for a in self.answers]
        return data


class Answer(db.Model):
    """Graded answer to one question within an attempt."""
    __tablename__ = "quiz_answers"

    id = db.Column(db.Integer, primary_key=True)
    attempt_id = db.Column(db.Integer, db.ForeignKey("quiz_attempts.id", ondelete='CASCADE'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey("quiz_questions.id", ondelete='CASCADE'), nullable=False, index=True)
    option_id = db.Column(db.Integer, db.ForeignKey("quiz_question_options.id", ondelete='SET NULL'), nullable=True)
    answer_text = db.Column(db.Text, nullable=True)
    skipped = db.Column(db.Boolean, nullable=False, default=False)
    is_correct = db.Column(db.Boolean, nullable=True)  # None while ungraded
    points_earned = db.Column(db.Integer, nullable=True)  # None while ungraded
    graded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete='SET NULL'), nullable=True)

    question = db.relationship("Question")

    __table_args__ = (
        db.UniqueConstraint('attempt_id', 'question_id', name='uq_attempt_question'),
    )

    def __repr__(self) -> str:
        return f"<Answer {self.id}: Question {self.question_id}>"

    def to_dict(self, reveal_answers: bool = False) -> dict:
        data = {
            'question_id': self.question_id,
            'option_id': self.option_id,
            'answer_text': self.answer_text,
            'skipped': self.skipped,
            'is_correct': self.is_correct,
            'points_earned': self.points_earned,
        }
        if reveal_answers:
            data['correct_answer'] = self.question.get_correct_answer()
        return data
