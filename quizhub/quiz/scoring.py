"""
Attempt scoring.

Turns parsed answers into per-question results and attempt totals.
Nothing here touches the database; the service persists the result.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from quizhub.common.errors import AttemptExpired
from quizhub.quiz.grader import ChoiceAnswer, Grade, SkippedAnswer, SubmittedAnswer, TextAnswer, grade
from quizhub.quiz.models import Quiz


@dataclass
class ScoredAnswer:
    question_id: int
    grade: Grade
    points_earned: int | None
    option_id: int | None = None
    answer_text: str | None = None
    skipped: bool = False

    @property
    def is_correct(self) -> bool | None:
        if self.grade is Grade.UNGRADED:
            return None
        return self.grade is Grade.CORRECT


@dataclass
class ScoredAttempt:
    answers: list[ScoredAnswer] = field(default_factory=list)
    submitted_at: datetime | None = None
    time_spent: float = 0.0
    total_points: int = 0
    max_points: int = 0
    score: float = 0.0
    pending_review: bool = False


def attempt_deadline(quiz: Quiz, started_at: datetime, grace_seconds: int) -> datetime | None:
    """Latest accepted submission time, or None for untimed quizzes."""
    if not quiz.time_limit_minutes:
        return None
    return started_at + timedelta(minutes=quiz.time_limit_minutes, seconds=grace_seconds)


def is_expired(quiz: Quiz, started_at: datetime, now: datetime, grace_seconds: int) -> bool:
    deadline = attempt_deadline(quiz, started_at, grace_seconds)
    return deadline is not None and now > deadline


def compute_totals(answers, question_points: dict[int, int]) -> tuple[int, int, float, bool]:
    """
    Sum earned and available points over graded answers.

    Ungraded answers (points_earned is None) count toward neither total,
    so essays stay out of the denominator until a grade is recorded.

    Returns:
        (total_points, max_points, percentage, pending_review)
    """
    total_points = 0
    max_points = 0
    pending_review = False
    for answer in answers:
        if answer.points_earned is None:
            pending_review = True
            continue
        total_points += answer.points_earned
        max_points += question_points[answer.question_id]
    score = (total_points / max_points * 100) if max_points > 0 else 0.0
    return total_points, max_points, score, pending_review


def score_attempt(quiz: Quiz, started_at: datetime, answers: dict[int, SubmittedAnswer],
                  now: datetime, grace_seconds: int = 30) -> ScoredAttempt:
    """
    Grade every question of ``quiz`` and total the attempt.

    Questions without an entry in ``answers`` are treated as unanswered and
    earn 0 points (essays stay ungraded).

    Raises:
        AttemptExpired: the submission arrived after the time limit plus grace
    """
    if is_expired(quiz, started_at, now, grace_seconds):
        raise AttemptExpired(
            f"Time limit of {quiz.time_limit_minutes} minutes (plus {grace_seconds}s grace) has passed"
        )

    scored = ScoredAttempt(submitted_at=now, time_spent=max(0.0, (now - started_at).total_seconds()))
    for question in quiz.questions:
        answer = answers.get(question.id)
        result = grade(question, answer)
        if result is Grade.CORRECT:
            points = question.points
        elif result is Grade.INCORRECT:
            points = 0
        else:
            points = None

        scored.answers.append(ScoredAnswer(
            question_id=question.id,
            grade=result,
            points_earned=points,
            option_id=answer.option_id if isinstance(answer, ChoiceAnswer) else None,
            answer_text=answer.text.strip() if isinstance(answer, TextAnswer) else None,
            skipped=answer is None or isinstance(answer, SkippedAnswer),
        ))

    question_points = {q.id: q.points for q in quiz.questions}
    (scored.total_points, scored.max_points,
     scored.score, scored.pending_review) = compute_totals(scored.answers, question_points)
    return scored
