"""
Answer parsing and grading.

Raw submissions are parsed at the boundary into tagged answer variants,
one per question, before anything is graded. Grading itself is pure.
"""
from dataclasses import dataclass
from enum import Enum

from quizhub.common.errors import InvalidQuestionReference, MalformedAnswer
from quizhub.quiz.models import Question, Quiz


class Grade(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNGRADED = "ungraded"


@dataclass(frozen=True)
class ChoiceAnswer:
    question_id: int
    option_id: int


@dataclass(frozen=True)
class TextAnswer:
    question_id: int
    text: str


@dataclass(frozen=True)
class SkippedAnswer:
    question_id: int


SubmittedAnswer = ChoiceAnswer | TextAnswer | SkippedAnswer


def _coerce_question_id(value) -> int:
    # bool is an int subclass; True must not be read as question 1
    if isinstance(value, bool):
        raise MalformedAnswer("question_id must be an integer")
    if isinstance(value, int):
        return value
    # ASCII digits only; isdigit() also passes superscripts that int() rejects
    if isinstance(value, str) and value.strip().isascii() and value.strip().isdecimal():
        return int(value.strip())
    raise MalformedAnswer("question_id must be an integer")


def _iter_raw_entries(raw_answers):
    """Yield (question_id, entry dict) pairs from either accepted payload shape."""
    if raw_answers is None:
        return
    if isinstance(raw_answers, dict):
        for key, value in raw_answers.items():
            question_id = _coerce_question_id(key)
            if isinstance(value, dict):
                yield question_id, value
            else:
                yield question_id, {'value': value}
        return
    if isinstance(raw_answers, list):
        for entry in raw_answers:
            if not isinstance(entry, dict) or 'question_id' not in entry:
                raise MalformedAnswer("Each answer must be an object with a question_id")
            yield _coerce_question_id(entry['question_id']), entry
        return
    raise MalformedAnswer("Answers must be a list or an object keyed by question id")


def _parse_entry(question: Question, entry: dict) -> SubmittedAnswer:
    if entry.get('skipped') is True:
        return SkippedAnswer(question.id)

    if question.is_choice:
        value = entry.get('option_id', entry.get('value'))
        if value is None:
            if entry.get('answer_text') is not None:
                raise MalformedAnswer(f"Question {question.id} expects an option_id, not text")
            return SkippedAnswer(question.id)
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedAnswer(f"Question {question.id} expects a single option identifier")
        if value not in {opt.id for opt in question.options}:
            raise MalformedAnswer(f"Option {value} does not belong to question {question.id}")
        return ChoiceAnswer(question.id, value)

    value = entry.get('answer_text', entry.get('value'))
    if value is None:
        if entry.get('option_id') is not None:
            raise MalformedAnswer(f"Question {question.id} expects answer_text, not an option")
        return SkippedAnswer(question.id)
    if not isinstance(value, str):
        raise MalformedAnswer(f"Question {question.id} expects a text answer")
    return TextAnswer(question.id, value)


def parse_answers(quiz: Quiz, raw_answers) -> dict[int, SubmittedAnswer]:
    """
    Validate a raw submission against the quiz and convert it to tagged answers.

    Accepted shapes:
        [{"question_id": 1, "option_id": 7}, {"question_id": 2, "answer_text": "Paris"},
         {"question_id": 3, "skipped": true}]
        {"1": 7, "2": "Paris", "3": null}

    Questions missing from the payload are not included; the scorer treats
    them as unanswered.

    Raises:
        InvalidQuestionReference: an answer names a question outside the quiz
        MalformedAnswer: an answer's shape does not match its question type
    """
    questions = {q.id: q for q in quiz.questions}
    parsed: dict[int, SubmittedAnswer] = {}
    for question_id, entry in _iter_raw_entries(raw_answers):
        question = questions.get(question_id)
        if question is None:
            raise InvalidQuestionReference(f"Question {question_id} is not part of quiz {quiz.id}")
        if question_id in parsed:
            raise MalformedAnswer(f"Question {question_id} was answered more than once")
        parsed[question_id] = _parse_entry(question, entry)
    return parsed


def normalize_text(value: str | None) -> str:
    return (value or "").strip().lower()


def grade(question: Question, answer: SubmittedAnswer | None) -> Grade:
    """
    Grade one answer against its question.

    Choice questions need the exact correct option, short answers a
    case-insensitive trimmed match of the canonical answer. Essays are
    always UNGRADED. A missing or skipped answer is INCORRECT.
    """
    if question.question_type == 'essay':
        return Grade.UNGRADED

    if answer is None or isinstance(answer, SkippedAnswer):
        return Grade.INCORRECT

    if answer.question_id != question.id:
        raise InvalidQuestionReference(f"Answer for question {answer.question_id} graded against question {question.id}")

    if question.is_choice:
        if not isinstance(answer, ChoiceAnswer):
            raise MalformedAnswer(f"Question {question.id} expects a single option identifier")
        correct_option = question.get_correct_option()
        if correct_option is not None and answer.option_id == correct_option.id:
            return Grade.CORRECT
        return Grade.INCORRECT

    if question.question_type == 'short_answer':
        if not isinstance(answer, TextAnswer):
            raise MalformedAnswer(f"Question {question.id} expects a text answer")
        if question.correct_answer and normalize_text(answer.text) == normalize_text(question.correct_answer):
            return Grade.CORRECT
        return Grade.INCORRECT

    return Grade.INCORRECT
