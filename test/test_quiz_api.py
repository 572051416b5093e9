"""
Test cases for the quiz, attempt and analytics HTTP endpoints.
"""
from conftest import quiz_payload


def _start(client, quiz_id):
    response = client.post(f'/api/quizzes/{quiz_id}/attempts')
    assert response.status_code in (200, 201), response.get_json()
    return response.get_json()['attempt']


class TestQuizEndpoints:
    """Quiz authoring over HTTP."""

    def test_requires_login(self, client):
        response = client.get('/api/quizzes')
        assert response.status_code == 401

    def test_teacher_creates_quiz(self, login_as):
        teacher = login_as('teacher')
        response = teacher.post('/api/quizzes', json=quiz_payload())
        assert response.status_code == 201
        quiz = response.get_json()['quiz']
        assert quiz['question_count'] == 2
        assert quiz['total_points'] == 2
        assert quiz['questions'][1]['correct_answer'] == 'Rome'

    def test_invalid_quiz_is_rejected(self, login_as):
        teacher = login_as('teacher')
        response = teacher.post('/api/quizzes', json=quiz_payload(questions=[]))
        assert response.status_code == 400
        assert response.get_json()['code'] == 'validation_error'

    def test_student_cannot_create(self, login_as):
        response = login_as('student').post('/api/quizzes', json=quiz_payload())
        assert response.status_code == 403
        assert response.get_json()['code'] == 'forbidden'

    def test_student_view_hides_answers(self, login_as, make_quiz):
        quiz_id = make_quiz()
        response = login_as('student').get(f'/api/quizzes/{quiz_id}')
        assert response.status_code == 200
        assert 'questions' not in response.get_json()['quiz']

    def test_draft_quiz_looks_missing_to_students(self, login_as, make_quiz):
        quiz_id = make_quiz(status='draft')
        student = login_as('student')
        hidden = student.get(f'/api/quizzes/{quiz_id}')
        missing = student.get('/api/quizzes/987654')
        assert hidden.status_code == missing.status_code == 404
        assert hidden.get_json() == missing.get_json()

    def test_update_and_delete(self, login_as, make_quiz):
        quiz_id = make_quiz()
        teacher = login_as('teacher')
        response = teacher.patch(f'/api/quizzes/{quiz_id}', json={'title': 'Renamed'})
        assert response.status_code == 200
        assert response.get_json()['quiz']['title'] == 'Renamed'

        assert login_as('other_teacher').delete(f'/api/quizzes/{quiz_id}').status_code == 403
        assert teacher.delete(f'/api/quizzes/{quiz_id}').status_code == 200
        assert teacher.get(f'/api/quizzes/{quiz_id}').status_code == 404

    def test_delete_quiz_in_use(self, login_as, make_quiz):
        quiz_id = make_quiz()
        _start(login_as('student'), quiz_id)
        response = login_as('teacher').delete(f'/api/quizzes/{quiz_id}')
        assert response.status_code == 409
        assert response.get_json()['code'] == 'quiz_in_use'

    def test_list_filters(self, login_as, make_quiz):
        make_quiz(category='history')
        make_quiz()
        student = login_as('student')
        response = student.get('/api/quizzes?category=history')
        assert response.get_json()['count'] == 1


class TestAttemptEndpoints:
    """Taking a quiz over HTTP."""

    def test_full_flow(self, login_as, make_quiz):
        quiz_id = make_quiz()
        student = login_as('student')

        attempt = _start(student, quiz_id)
        assert attempt['status'] == 'in_progress'
        assert len(attempt['questions']) == 2
        assert 'is_correct' not in attempt['questions'][0]['options'][0]

        # Resume returns the same attempt with 200
        resumed = student.post(f'/api/quizzes/{quiz_id}/attempts')
        assert resumed.status_code == 200
        assert resumed.get_json()['resumed'] is True
        assert resumed.get_json()['attempt']['id'] == attempt['id']

        teacher_view = login_as('teacher').get(f"/api/attempts/{attempt['id']}").get_json()['attempt']
        choice = teacher_view['questions'][0]
        correct_option = next(opt['id'] for opt in choice['options'] if opt['is_correct'])

        response = student.post(f"/api/attempts/{attempt['id']}/submit", json={'answers': [
            {'question_id': choice['id'], 'option_id': correct_option},
            {'question_id': teacher_view['questions'][1]['id'], 'answer_text': ' rome '},
        ]})
        assert response.status_code == 200
        result = response.get_json()['attempt']
        assert result['status'] == 'completed'
        assert result['score'] == 100.0
        assert result['is_passing'] is True
        assert len(result['answers']) == 2

        again = student.post(f"/api/attempts/{attempt['id']}/submit", json={'answers': []})
        assert again.status_code == 409
        assert again.get_json()['code'] == 'already_completed'

    def test_invalid_question_reference(self, login_as, make_quiz):
        quiz_id = make_quiz()
        student = login_as('student')
        attempt = _start(student, quiz_id)
        response = student.post(f"/api/attempts/{attempt['id']}/submit",
                                json={'answers': [{'question_id': 123456, 'answer_text': 'x'}]})
        assert response.status_code == 400
        assert response.get_json()['code'] == 'invalid_question_reference'

    def test_attempt_limit(self, login_as, make_quiz):
        quiz_id = make_quiz(settings={'attempts_allowed': 1})
        student = login_as('student')
        attempt = _start(student, quiz_id)
        student.post(f"/api/attempts/{attempt['id']}/submit", json={'answers': []})

        response = student.post(f'/api/quizzes/{quiz_id}/attempts')
        assert response.status_code == 409
        assert response.get_json()['code'] == 'attempt_limit_exceeded'

    def test_other_students_attempt_is_hidden(self, login_as, make_quiz):
        quiz_id = make_quiz()
        attempt = _start(login_as('student'), quiz_id)
        response = login_as('other_student').get(f"/api/attempts/{attempt['id']}")
        assert response.status_code == 404

    def test_abandon(self, login_as, make_quiz):
        quiz_id = make_quiz()
        student = login_as('student')
        attempt = _start(student, quiz_id)
        response = student.post(f"/api/attempts/{attempt['id']}/abandon")
        assert response.status_code == 200
        assert response.get_json()['attempt']['status'] == 'abandoned'

    def test_list_attempts(self, login_as, make_quiz):
        quiz_id = make_quiz()
        _start(login_as('student'), quiz_id)
        _start(login_as('other_student'), quiz_id)
        assert login_as('student').get(f'/api/quizzes/{quiz_id}/attempts').get_json()['count'] == 1
        assert login_as('teacher').get(f'/api/quizzes/{quiz_id}/attempts').get_json()['count'] == 2

    def test_grade_essay_endpoint(self, login_as, make_quiz):
        questions = [{'question_type': 'essay', 'prompt': 'Describe Rome.', 'points': 5}]
        quiz_id = make_quiz(questions=questions)
        student = login_as('student')
        attempt = _start(student, quiz_id)
        essay_id = attempt['questions'][0]['id']
        submitted = student.post(f"/api/attempts/{attempt['id']}/submit",
                                 json={'answers': {str(essay_id): 'Seven hills.'}}).get_json()['attempt']
        assert submitted['pending_review'] is True

        response = login_as('teacher').post(
            f"/api/attempts/{attempt['id']}/answers/{essay_id}/grade", json={'points': 4})
        assert response.status_code == 200
        graded = response.get_json()['attempt']
        assert graded['pending_review'] is False
        assert graded['score'] == 80.0


class TestAnalyticsEndpoints:

    def _complete_attempt(self, login_as, quiz_id, key='student'):
        client = login_as(key)
        attempt = _start(client, quiz_id)
        client.post(f"/api/attempts/{attempt['id']}/submit", json={'answers': []})
        return client

    def test_user_overview(self, login_as, make_quiz):
        quiz_id = make_quiz()
        student = self._complete_attempt(login_as, quiz_id)
        response = student.get('/api/analytics/user')
        assert response.status_code == 200
        analytics = response.get_json()['analytics']
        assert len(analytics) == 1
        assert analytics[0]['attempts_count'] == 1

    def test_other_user_record_forbidden(self, users, login_as, make_quiz):
        quiz_id = make_quiz()
        self._complete_attempt(login_as, quiz_id, key='other_student')
        response = login_as('student').get(
            f"/api/analytics/users/{users['other_student']}/quizzes/{quiz_id}")
        assert response.status_code == 403
        assert response.get_json()['code'] == 'forbidden'

    def test_teacher_reads_student_record(self, users, login_as, make_quiz):
        quiz_id = make_quiz()
        self._complete_attempt(login_as, quiz_id)
        response = login_as('teacher').get(f"/api/analytics/users/{users['student']}/quizzes/{quiz_id}")
        assert response.status_code == 200
        assert response.get_json()['analytics']['attempts_count'] == 1

    def test_categories(self, login_as, make_quiz):
        quiz_id = make_quiz()
        student = self._complete_attempt(login_as, quiz_id)
        categories = student.get('/api/analytics/user/categories').get_json()['categories']
        assert categories['geography']['total_attempts'] == 1

    def test_export_csv(self, login_as, make_quiz):
        quiz_id = make_quiz()
        student = self._complete_attempt(login_as, quiz_id)
        response = student.get('/api/analytics/user/export?format=csv')
        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        assert 'attachment; filename=analytics.csv' in response.headers['Content-Disposition']

    def test_export_bad_format(self, login_as):
        response = login_as('student').get('/api/analytics/user/export?format=pdf')
        assert response.status_code == 400

    def test_quiz_analytics_and_questions(self, login_as, make_quiz):
        quiz_id = make_quiz()
        self._complete_attempt(login_as, quiz_id)
        teacher = login_as('teacher')
        summary = teacher.get(f'/api/analytics/quiz/{quiz_id}').get_json()
        assert summary['summary']['attempts_count'] == 1
        questions = teacher.get(f'/api/analytics/quiz/{quiz_id}/questions').get_json()['questions']
        assert [q['total_attempts'] for q in questions] == [1, 1]
        assert login_as('student').get(f'/api/analytics/quiz/{quiz_id}').status_code == 403


class TestErrorHandling:

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/nothing-here')
        assert response.status_code == 404
        assert response.get_json()['success'] is False

    def test_health(self, client):
        assert client.get('/health').get_json() == {'status': 'ok'}
