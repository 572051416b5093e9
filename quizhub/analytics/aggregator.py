"""
Analytics aggregation.

Folds completed attempts into running statistics:

- per user x quiz (AnalyticsRecord) with per-question counters
- per quiz (QuizRollup)
- per user x category (CategoryPerformance)

Every running average uses the incremental mean
``avg' = avg + (x - avg) / (n + 1)`` so no raw sums are stored.

Per-question timing is not captured by the client, so each question of an
attempt is credited with ``attempt.time_spent / number_of_questions``.

The caller owns the transaction; these functions only flush.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import func, select

from quizhub import db
from quizhub.common.store import QuizStore
from quizhub.analytics.models import AnalyticsRecord, CategoryPerformance, QuestionStat, QuizRollup
from quizhub.quiz.models import QuizAttempt


def incremental_mean(average: float, count: int, sample: float) -> float:
    """Mean of ``count`` samples averaging ``average`` plus one more sample."""
    return average + (sample - average) / (count + 1)


def shift_mean(average: float, count: int, old_sample: float, new_sample: float) -> float:
    """Replace one of ``count`` samples in a mean without re-summing."""
    if count <= 0:
        return average
    return average + (new_sample - old_sample) / count


def _question_stat(record: AnalyticsRecord, question_id: int) -> QuestionStat:
    stat = record.get_question_stat(question_id)
    if stat is None:
        stat = QuestionStat(question_id=question_id, total_attempts=0, correct_attempts=0, average_time_spent=0.0)
        record.question_stats.append(stat)
    return stat


def _quiz_rollup(quiz_id: int) -> QuizRollup:
    rollup = QuizStore.locked_row(QuizRollup, quiz_id=quiz_id)
    if rollup is None:
        rollup = QuizRollup(quiz_id=quiz_id, attempts_count=0, average_score=0.0,
                            highest_score=0.0, pass_count=0, total_time_spent=0.0)
        db.session.add(rollup)
        db.session.flush()
    return rollup


def _category_performance(user_id: int, category: str) -> CategoryPerformance:
    performance = QuizStore.locked_row(CategoryPerformance, user_id=user_id, category=category)
    if performance is None:
        performance = CategoryPerformance(user_id=user_id, category=category, total_attempts=0, average_score=0.0)
        db.session.add(performance)
        db.session.flush()
    return performance


def record(attempt: QuizAttempt, now: datetime | None = None) -> AnalyticsRecord:
    """
    Fold a completed attempt into analytics exactly once.

    The attempt is claimed through a conditional update of
    ``analytics_recorded_at``; a second call for the same attempt returns
    the current record without counting anything again.
    """
    now = now or datetime.utcnow()
    quiz = attempt.quiz

    if not QuizStore.claim_for_analytics(attempt, now):
        current_app.logger.info(f"Attempt {attempt.id} already recorded in analytics, skipping")
        existing = QuizStore.get_analytics_record(attempt.user_id, attempt.quiz_id)
        if existing is None:
            raise ValueError(f"Attempt {attempt.id} cannot be recorded: it is not completed")
        return existing

    score = attempt.score or 0.0
    time_spent = attempt.time_spent or 0.0

    analytics = QuizStore.upsert_analytics_record(attempt.user_id, attempt.quiz_id)
    analytics.average_score = incremental_mean(analytics.average_score, analytics.attempts_count, score)
    analytics.attempts_count += 1
    analytics.highest_score = max(analytics.highest_score, score)
    analytics.last_score = score
    analytics.total_time_spent += time_spent
    analytics.last_updated = now

    question_count = len(quiz.questions)
    time_per_question = time_spent / question_count if question_count else 0.0
    for answer in attempt.answers:
        stat = _question_stat(analytics, answer.question_id)
        stat.average_time_spent = incremental_mean(stat.average_time_spent, stat.total_attempts, time_per_question)
        stat.total_attempts += 1
        if answer.is_correct:
            stat.correct_attempts += 1

    rollup = _quiz_rollup(quiz.id)
    rollup.average_score = incremental_mean(rollup.average_score, rollup.attempts_count, score)
    rollup.attempts_count += 1
    rollup.highest_score = max(rollup.highest_score, score)
    rollup.total_time_spent += time_spent
    if score >= quiz.passing_score:
        rollup.pass_count += 1
    rollup.last_updated = now

    if quiz.category:
        performance = _category_performance(attempt.user_id, quiz.category)
        performance.average_score = incremental_mean(performance.average_score, performance.total_attempts, score)
        performance.total_attempts += 1
        performance.last_updated = now

    db.session.flush()
    current_app.logger.info(
        f"Analytics updated for user {attempt.user_id}, quiz {quiz.id}: "
        f"n={analytics.attempts_count}, avg={analytics.average_score:.2f}"
    )
    return analytics


def _highest_completed_score(model_filter) -> float:
    value = db.session.execute(
        select(func.max(QuizAttempt.score)).where(QuizAttempt.status == 'completed', *model_filter)
    ).scalar()
    return float(value or 0.0)


def apply_correction(attempt: QuizAttempt, old_score: float, question_id: int,
                     was_correct: bool | None, now: datetime | None = None) -> AnalyticsRecord | None:
    """
    Move recorded analytics after a manual grade changed an attempt's score.

    Each running mean is shifted by ``(new - old) / n``. Highest scores are
    recomputed from stored attempts since a correction may lower them.
    Attempts not yet recorded are left alone; they are counted with their
    corrected score when recorded.
    """
    if attempt.analytics_recorded_at is None:
        return None

    now = now or datetime.utcnow()
    quiz = attempt.quiz
    new_score = attempt.score or 0.0

    analytics = QuizStore.get_analytics_record(attempt.user_id, attempt.quiz_id, for_update=True)
    if analytics is None:
        return None

    analytics.average_score = shift_mean(analytics.average_score, analytics.attempts_count, old_score, new_score)
    analytics.highest_score = _highest_completed_score(
        (QuizAttempt.user_id == attempt.user_id, QuizAttempt.quiz_id == attempt.quiz_id)
    )
    if analytics.last_score == old_score:
        analytics.last_score = new_score
    analytics.last_updated = now

    answer = attempt.get_answer(question_id)
    stat = analytics.get_question_stat(question_id)
    if stat is not None and answer is not None and bool(was_correct) != bool(answer.is_correct):
        stat.correct_attempts += 1 if answer.is_correct else -1

    rollup = QuizStore.locked_row(QuizRollup, quiz_id=quiz.id)
    if rollup is not None:
        rollup.average_score = shift_mean(rollup.average_score, rollup.attempts_count, old_score, new_score)
        rollup.highest_score = _highest_completed_score((QuizAttempt.quiz_id == quiz.id,))
        passed_before = old_score >= quiz.passing_score
        passed_now = new_score >= quiz.passing_score
        if passed_before != passed_now:
            rollup.pass_count += 1 if passed_now else -1
        rollup.last_updated = now

    if quiz.category:
        performance = QuizStore.locked_row(CategoryPerformance, user_id=attempt.user_id, category=quiz.category)
        if performance is not None:
            performance.average_score = shift_mean(performance.average_score, performance.total_attempts,
                                                   old_score, new_score)
            performance.last_updated = now

    db.session.flush()
    current_app.logger.info(
        f"Analytics corrected for attempt {attempt.id}: score {old_score:.2f} -> {new_score:.2f}"
    )
    return analytics
