"""
Test cases for the attempt lifecycle: start, submit, abandon, essay grading.
"""
from datetime import datetime, timedelta
import threading

import pytest

from quizhub import create_app, db
from quizhub.analytics.models import AnalyticsRecord, QuizRollup
from quizhub.common.errors import (
    AlreadyCompleted, AttemptExpired, AttemptLimitExceeded, Forbidden, MalformedAnswer, NotFound,
    QuizInUse, ValidationError,
)
from quizhub.common.store import QuizStore
from quizhub.quiz import service
from quizhub.quiz.models import AttemptCounter, Quiz, QuizAttempt
from quizhub.quiz.validation import build_quiz
from quizhub.security.access_policy import Actor

from conftest import TEST_CONFIG, _seed_users, quiz_payload

T0 = datetime(2026, 5, 4, 10, 0, 0)


def _answers(quiz_id: int, correct: bool = True) -> list[dict]:
    """Answer both questions of the default quiz; the second one wrong unless ``correct``."""
    quiz = db.session.get(Quiz, quiz_id)
    choice, short = quiz.questions
    return [
        {'question_id': choice.id, 'option_id': choice.get_correct_option().id},
        {'question_id': short.id, 'answer_text': 'rome' if correct else 'Milan'},
    ]


class TestStartAttempt:
    """Starting, resuming and limiting attempts."""

    def test_start_creates_in_progress_attempt(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        attempt, created = service.start_attempt(actors['student'], quiz_id, now=T0)
        assert created
        assert attempt.status == 'in_progress'
        assert attempt.started_at == T0

    def test_start_resumes_live_attempt(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        first, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        second, created = service.start_attempt(actors['student'], quiz_id, now=T0 + timedelta(minutes=1))
        assert not created
        assert second.id == first.id
        counter = AttemptCounter.query.filter_by(quiz_id=quiz_id).one()
        assert counter.used == 1

    def test_limit_reached_exactly_at_attempts_allowed(self, ctx, actors, make_quiz):
        quiz_id = make_quiz(settings={'attempts_allowed': 2})
        student = actors['student']
        for i in range(2):
            attempt, _ = service.start_attempt(student, quiz_id, now=T0 + timedelta(hours=i))
            service.submit_attempt(student, attempt.id, _answers(quiz_id), now=T0 + timedelta(hours=i, minutes=1))

        with pytest.raises(AttemptLimitExceeded):
            service.start_attempt(student, quiz_id, now=T0 + timedelta(hours=5))
        assert QuizStore.count_completed_attempts(quiz_id, student.id) == 2

    def test_limit_is_per_user(self, ctx, actors, make_quiz):
        quiz_id = make_quiz(settings={'attempts_allowed': 1})
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        service.submit_attempt(actors['student'], attempt.id, _answers(quiz_id), now=T0)

        _, created = service.start_attempt(actors['other_student'], quiz_id, now=T0)
        assert created

    def test_expired_in_progress_attempt_is_replaced(self, ctx, actors, make_quiz):
        quiz_id = make_quiz(settings={'attempts_allowed': 1, 'time_limit_minutes': 10})
        first, _ = service.start_attempt(actors['student'], quiz_id, now=T0)

        second, created = service.start_attempt(actors['student'], quiz_id, now=T0 + timedelta(hours=1))
        assert created
        assert second.id != first.id
        assert db.session.get(QuizAttempt, first.id).status == 'abandoned'

    def test_unpublished_quiz_is_concealed_from_students(self, ctx, actors, make_quiz):
        quiz_id = make_quiz(status='draft')
        with pytest.raises(NotFound) as missing:
            service.start_attempt(actors['student'], 999_999, now=T0)
        with pytest.raises(NotFound) as hidden:
            service.start_attempt(actors['student'], quiz_id, now=T0)
        assert hidden.value.message == missing.value.message

    def test_teacher_cannot_take_quiz(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        with pytest.raises(Forbidden):
            service.start_attempt(actors['teacher'], quiz_id, now=T0)

    def test_unassigned_student_cannot_see_quiz(self, ctx, users, actors, make_quiz):
        quiz_id = make_quiz(assigned_to=[users['other_student']])
        with pytest.raises(NotFound):
            service.start_attempt(actors['student'], quiz_id, now=T0)
        _, created = service.start_attempt(actors['other_student'], quiz_id, now=T0)
        assert created


class TestSubmitAttempt:
    """Grading and completing an attempt."""

    def test_two_question_scenario(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        student = actors['student']

        attempt, _ = service.start_attempt(student, quiz_id, now=T0)
        result = service.submit_attempt(student, attempt.id, _answers(quiz_id), now=T0 + timedelta(seconds=90))
        assert result.status == 'completed'
        assert result.total_points == 2
        assert result.score == pytest.approx(100.0)
        assert result.time_spent == pytest.approx(90.0)
        assert result.submitted_at == T0 + timedelta(seconds=90)
        assert result.is_passing()

        attempt, _ = service.start_attempt(student, quiz_id, now=T0 + timedelta(hours=1))
        result = service.submit_attempt(student, attempt.id, _answers(quiz_id, correct=False),
                                        now=T0 + timedelta(hours=1, seconds=30))
        assert result.total_points == 1
        assert result.score == pytest.approx(50.0)
        assert not result.is_passing()

    def test_every_question_gets_an_answer_row(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        result = service.submit_attempt(actors['student'], attempt.id, [], now=T0)
        assert len(result.answers) == 2
        assert all(answer.skipped and answer.points_earned == 0 for answer in result.answers)
        assert result.score == 0.0

    def test_resubmission_fails(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        service.submit_attempt(actors['student'], attempt.id, _answers(quiz_id), now=T0)
        with pytest.raises(AlreadyCompleted):
            service.submit_attempt(actors['student'], attempt.id, _answers(quiz_id), now=T0)

    def test_malformed_submission_leaves_attempt_open(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        with pytest.raises(MalformedAnswer):
            service.submit_attempt(actors['student'], attempt.id, 'Paris', now=T0)
        assert db.session.get(QuizAttempt, attempt.id).status == 'in_progress'

    def test_late_submission_expires_and_frees_slot(self, ctx, actors, make_quiz):
        quiz_id = make_quiz(settings={'attempts_allowed': 1, 'time_limit_minutes': 5})
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)

        with pytest.raises(AttemptExpired):
            service.submit_attempt(actors['student'], attempt.id, _answers(quiz_id),
                                   now=T0 + timedelta(minutes=5, seconds=31))
        assert db.session.get(QuizAttempt, attempt.id).status == 'abandoned'
        assert AttemptCounter.query.filter_by(quiz_id=quiz_id).one().used == 0

    def test_submission_within_grace_is_accepted(self, ctx, actors, make_quiz):
        quiz_id = make_quiz(settings={'time_limit_minutes': 5})
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        result = service.submit_attempt(actors['student'], attempt.id, _answers(quiz_id),
                                        now=T0 + timedelta(minutes=5, seconds=20))
        assert result.status == 'completed'

    def test_other_students_attempt_is_concealed(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        with pytest.raises(NotFound):
            service.submit_attempt(actors['other_student'], attempt.id, [], now=T0)

    def test_quiz_owner_cannot_submit_for_student(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        with pytest.raises(Forbidden):
            service.submit_attempt(actors['teacher'], attempt.id, [], now=T0)


class TestAbandonAttempt:

    def test_abandon_releases_slot(self, ctx, actors, make_quiz):
        quiz_id = make_quiz(settings={'attempts_allowed': 1})
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        abandoned = service.abandon_attempt(actors['student'], attempt.id, now=T0)
        assert abandoned.status == 'abandoned'

        _, created = service.start_attempt(actors['student'], quiz_id, now=T0 + timedelta(minutes=1))
        assert created

    def test_completed_attempt_cannot_be_abandoned(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        service.submit_attempt(actors['student'], attempt.id, _answers(quiz_id), now=T0)
        with pytest.raises(AlreadyCompleted):
            service.abandon_attempt(actors['student'], attempt.id, now=T0)


class TestEssayGrading:
    """Manual grading of essays after submission."""

    def _essay_quiz(self, make_quiz):
        questions = quiz_payload()['questions'] + [
            {'question_type': 'essay', 'prompt': 'Why do capitals move?', 'points': 4},
        ]
        return make_quiz(questions=questions)

    def test_grade_updates_score_and_clears_review(self, ctx, actors, make_quiz):
        quiz_id = self._essay_quiz(make_quiz)
        quiz = db.session.get(Quiz, quiz_id)
        essay_id = quiz.questions[2].id

        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        answers = _answers(quiz_id) + [{'question_id': essay_id, 'answer_text': 'Politics.'}]
        result = service.submit_attempt(actors['student'], attempt.id, answers, now=T0)
        assert result.pending_review
        assert result.max_points == 2
        assert result.score == pytest.approx(100.0)

        graded = service.grade_essay(actors['teacher'], attempt.id, essay_id, 2, now=T0)
        assert not graded.pending_review
        assert graded.total_points == 4
        assert graded.max_points == 6
        assert graded.score == pytest.approx(4 / 6 * 100)
        assert graded.get_answer(essay_id).graded_by == actors['teacher'].id

    def test_points_out_of_range(self, ctx, actors, make_quiz):
        quiz_id = self._essay_quiz(make_quiz)
        essay_id = db.session.get(Quiz, quiz_id).questions[2].id
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        service.submit_attempt(actors['student'], attempt.id, [], now=T0)
        with pytest.raises(ValidationError):
            service.grade_essay(actors['teacher'], attempt.id, essay_id, 5, now=T0)

    def test_only_essays_are_graded_manually(self, ctx, actors, make_quiz):
        quiz_id = self._essay_quiz(make_quiz)
        choice_id = db.session.get(Quiz, quiz_id).questions[0].id
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        service.submit_attempt(actors['student'], attempt.id, [], now=T0)
        with pytest.raises(ValidationError):
            service.grade_essay(actors['teacher'], attempt.id, choice_id, 1, now=T0)

    def test_outsider_teacher_cannot_grade(self, ctx, actors, make_quiz):
        quiz_id = self._essay_quiz(make_quiz)
        essay_id = db.session.get(Quiz, quiz_id).questions[2].id
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        service.submit_attempt(actors['student'], attempt.id, [], now=T0)
        with pytest.raises(NotFound):
            service.grade_essay(actors['other_teacher'], attempt.id, essay_id, 1, now=T0)

    def test_student_cannot_grade_own_attempt(self, ctx, actors, make_quiz):
        quiz_id = self._essay_quiz(make_quiz)
        essay_id = db.session.get(Quiz, quiz_id).questions[2].id
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        service.submit_attempt(actors['student'], attempt.id, [], now=T0)
        with pytest.raises(Forbidden):
            service.grade_essay(actors['student'], attempt.id, essay_id, 4, now=T0)


class TestQuizAuthoring:

    def test_quiz_with_attempts_cannot_be_deleted(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        service.start_attempt(actors['student'], quiz_id, now=T0)
        with pytest.raises(QuizInUse):
            service.delete_quiz(actors['teacher'], quiz_id)

    def test_questions_locked_once_attempted(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        service.start_attempt(actors['student'], quiz_id, now=T0)
        with pytest.raises(QuizInUse):
            service.update_quiz(actors['teacher'], quiz_id, {'questions': quiz_payload()['questions'][:1]})

        quiz = service.update_quiz(actors['teacher'], quiz_id, {'title': 'Renamed', 'settings': {'attempts_allowed': 5}})
        assert quiz.title == 'Renamed'
        assert quiz.attempts_allowed == 5

    def test_collaborator_can_update(self, ctx, users, actors, make_quiz):
        quiz_id = make_quiz(collaborators=[users['other_teacher']])
        quiz = service.update_quiz(actors['other_teacher'], quiz_id, {'status': 'archived'})
        assert quiz.status == 'archived'

    def test_outsider_cannot_delete(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        with pytest.raises(Forbidden):
            service.delete_quiz(actors['other_teacher'], quiz_id)

    def test_student_cannot_create(self, ctx, actors):
        with pytest.raises(Forbidden):
            service.create_quiz(actors['student'], quiz_payload())

    @pytest.mark.parametrize('change', [
        {'questions': []},
        {'settings': {'attempts_allowed': 0}},
        {'settings': {'passing_score': 120}},
        {'questions': [{'question_type': 'single_choice', 'prompt': 'Pick', 'options': [
            {'text': 'a', 'is_correct': True}, {'text': 'b', 'is_correct': True}]}]},
        {'questions': [{'question_type': 'short_answer', 'prompt': 'Name it'}]},
        {'questions': [{'question_type': 'essay', 'prompt': 'Discuss', 'correct_answer': 'x'}]},
        {'questions': [{'question_type': 'single_choice', 'prompt': 'Pick', 'points': 0, 'options': [
            {'text': 'a', 'is_correct': True}, {'text': 'b'}]}]},
    ])
    def test_invalid_definitions_rejected(self, ctx, actors, change):
        with pytest.raises(ValidationError):
            service.create_quiz(actors['teacher'], quiz_payload(**change))

    def test_true_false_from_correct_answer(self, ctx, actors):
        quiz = service.create_quiz(actors['teacher'], quiz_payload(questions=[
            {'question_type': 'true_false', 'prompt': 'Rome is in Italy', 'correct_answer': 'true'},
        ]))
        options = quiz.questions[0].options
        assert [opt.text for opt in options] == ['True', 'False']
        assert quiz.questions[0].get_correct_option().text == 'True'

    def test_student_list_shows_only_visible_quizzes(self, ctx, users, actors, make_quiz):
        visible = make_quiz()
        make_quiz(status='draft')
        make_quiz(assigned_to=[users['other_student']])
        assert [quiz.id for quiz in service.list_quizzes(actors['student'])] == [visible]
        assert len(service.list_quizzes(actors['teacher'], owned_only=True)) == 3
        assert service.list_quizzes(actors['other_teacher'], owned_only=True) == []


class TestAttemptView:

    def test_randomised_order_is_stable_per_attempt(self, ctx, actors, make_quiz):
        questions = [
            {'question_type': 'short_answer', 'prompt': f'Q{i}', 'correct_answer': str(i)} for i in range(8)
        ]
        quiz_id = make_quiz(questions=questions, settings={'randomize_questions': True, 'attempts_allowed': 3})
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)

        first = service.attempt_payload(actors['student'], attempt)
        second = service.attempt_payload(actors['student'], attempt)
        assert [q['id'] for q in first['questions']] == [q['id'] for q in second['questions']]
        assert sorted(q['prompt'] for q in first['questions']) == sorted(f'Q{i}' for i in range(8))
        assert all('correct_answer' not in q for q in first['questions'])

    def test_staff_see_correct_answers(self, ctx, actors, make_quiz):
        quiz_id = make_quiz()
        attempt, _ = service.start_attempt(actors['student'], quiz_id, now=T0)
        payload = service.attempt_payload(actors['teacher'], attempt)
        assert payload['questions'][1]['correct_answer'] == 'Rome'


def _file_backed_app(tmp_path, **settings):
    """An app on a SQLite file so that threads share one database."""
    app = create_app(dict(TEST_CONFIG, SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'race.db'}"))
    with app.app_context():
        users = _seed_users()
        quiz = build_quiz(quiz_payload(settings=settings), owner_id=users['teacher'])
        db.session.add(quiz)
        db.session.commit()
        quiz_id = quiz.id
    return app, users, quiz_id


class TestConcurrentStarts:
    """The conditional slot reservation under real concurrency."""

    def test_limit_holds_under_concurrent_reservations(self, tmp_path):
        app, users, quiz_id = _file_backed_app(tmp_path, attempts_allowed=3)

        student_id = users['student']
        outcomes = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def reserve():
            with app.app_context():
                quiz = db.session.get(Quiz, quiz_id)
                barrier.wait()
                try:
                    QuizStore.create_attempt(quiz, student_id, datetime.utcnow())
                    result = 'created'
                except AttemptLimitExceeded:
                    result = 'limited'
                finally:
                    db.session.remove()
                with lock:
                    outcomes.append(result)

        threads = [threading.Thread(target=reserve) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count('created') == 3
        assert outcomes.count('limited') == 5
        with app.app_context():
            assert QuizAttempt.query.filter_by(quiz_id=quiz_id).count() == 3
            assert AttemptCounter.query.filter_by(quiz_id=quiz_id).one().used == 3
            db.session.remove()

    def test_actor_is_explicit(self, ctx, make_quiz):
        """Operations never fall back to a process-wide current user."""
        quiz_id = make_quiz()
        with pytest.raises(NotFound):
            service.start_attempt(Actor(None, None), quiz_id, now=T0)


class TestConcurrentSubmissions:
    """Completion and analytics recording under simultaneous submits."""

    def test_each_attempt_completes_and_counts_once(self, tmp_path):
        app, users, quiz_id = _file_backed_app(tmp_path, attempts_allowed=2)
        students = [Actor(users['student'], 'student'), Actor(users['other_student'], 'student')]
        with app.app_context():
            quiz = db.session.get(Quiz, quiz_id)
            choice, short = quiz.questions
            answers = [
                {'question_id': choice.id, 'option_id': choice.get_correct_option().id},
                {'question_id': short.id, 'answer_text': 'Rome'},
            ]
            attempt_ids = {}
            for actor in students:
                attempt, _ = service.start_attempt(actor, quiz_id)
                attempt_ids[actor.id] = attempt.id
            db.session.remove()

        # Three submissions of each student's attempt, all released together
        jobs = [actor for actor in students for _ in range(3)]
        outcomes = {actor.id: [] for actor in students}
        lock = threading.Lock()
        barrier = threading.Barrier(len(jobs))

        def submit(actor):
            with app.app_context():
                barrier.wait()
                try:
                    service.submit_attempt(actor, attempt_ids[actor.id], answers)
                    result = 'completed'
                except AlreadyCompleted:
                    result = 'already_completed'
                finally:
                    db.session.remove()
                with lock:
                    outcomes[actor.id].append(result)

        threads = [threading.Thread(target=submit, args=(actor,)) for actor in jobs]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        for actor in students:
            assert sorted(outcomes[actor.id]) == ['already_completed', 'already_completed', 'completed']

        with app.app_context():
            for actor in students:
                record = AnalyticsRecord.query.filter_by(user_id=actor.id, quiz_id=quiz_id).one()
                assert record.attempts_count == 1
                assert record.average_score == pytest.approx(100.0)
                assert db.session.get(QuizAttempt, attempt_ids[actor.id]).status == 'completed'
            rollup = db.session.get(QuizRollup, quiz_id)
            assert rollup.attempts_count == 2
            assert rollup.pass_count == 2
            db.session.remove()
