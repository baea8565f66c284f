import math
import random
import string
import uuid
from typing import Any, Dict, List, Optional

from quizlive.errors import InvalidQuizData


JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_join_code(length=6):
    """Generate a random join code; uniqueness is the registry's job."""
    return ''.join(random.choices(JOIN_CODE_ALPHABET, k=length))


def normalize_join_code(code):
    if code is None:
        return None
    code = str(code).strip().upper()
    return code or None


class Question:
    def __init__(self, id: str, text: str, options: List[str], correct_answer: int, time_limit: int):
        self.id = id
        self.text = text
        self.options = list(options)
        self.correct_answer = correct_answer
        self.time_limit = time_limit

    @classmethod
    def from_dict(cls, data: Dict[str, Any], position: int = 0) -> 'Question':
        if not isinstance(data, dict):
            raise InvalidQuizData(f'Question {position + 1} must be an object')
        text = str(data.get('text') or '').strip()
        if not text:
            raise InvalidQuizData(f'Question {position + 1} has no text')
        options = data.get('options')
        if not isinstance(options, list) or len(options) < 2:
            raise InvalidQuizData(f'Question {position + 1} needs at least two options')
        try:
            correct = int(data.get('correctAnswer'))
            time_limit = int(data.get('timeLimit'))
        except (TypeError, ValueError):
            raise InvalidQuizData(f'Question {position + 1} has a malformed answer or time limit')
        if not 0 <= correct < len(options):
            raise InvalidQuizData(f'Question {position + 1} correct answer is out of range')
        if time_limit <= 0:
            raise InvalidQuizData(f'Question {position + 1} time limit must be positive')
        return cls(
            id=str(data.get('id') or f'q{position + 1}'),
            text=text,
            options=[str(o) for o in options],
            correct_answer=correct,
            time_limit=time_limit,
        )

    def to_dict(self, include_answer=True):
        data = {
            'id': self.id,
            'text': self.text,
            'options': list(self.options),
            'timeLimit': self.time_limit,
        }
        if include_answer:
            data['correctAnswer'] = self.correct_answer
        return data


class Quiz:
    """An ordered list of questions; treated as read-only once a session owns it."""

    def __init__(self, id: str, title: str, questions: List[Question], pin: Optional[str] = None):
        self.id = id
        self.title = title
        self.questions = tuple(questions)
        self.pin = pin

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Quiz':
        if not isinstance(data, dict):
            raise InvalidQuizData('Quiz must be an object')
        title = str(data.get('title') or '').strip()
        if not title:
            raise InvalidQuizData('Quiz title is required')
        raw_questions = data.get('questions')
        if not isinstance(raw_questions, list) or not raw_questions:
            raise InvalidQuizData('Quiz needs at least one question')
        questions = [Question.from_dict(q, i) for i, q in enumerate(raw_questions)]
        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise InvalidQuizData('Question ids must be unique')
        return cls(
            id=str(data.get('id') or uuid.uuid4().hex),
            title=title,
            questions=questions,
            pin=normalize_join_code(data.get('pin')),
        )

    def with_pin(self, pin: str) -> 'Quiz':
        return Quiz(self.id, self.title, list(self.questions), pin=pin)

    def to_dict(self, include_answers=True):
        return {
            'id': self.id,
            'title': self.title,
            'pin': self.pin,
            'questions': [q.to_dict(include_answer=include_answers) for q in self.questions],
        }


class AnswerSubmission:
    def __init__(self, question_id: str, option_index: int, elapsed: float):
        self.question_id = question_id
        self.option_index = option_index
        self.elapsed = elapsed

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['AnswerSubmission']:
        """Parse a submit-answer payload; None if it cannot be a valid answer."""
        if not isinstance(data, dict):
            return None
        try:
            option_index = int(data.get('answerIndex'))
            elapsed = float(data.get('timeToAnswer', 0))
        except (TypeError, ValueError, OverflowError):
            return None
        if not math.isfinite(elapsed):
            return None
        question_id = data.get('questionId')
        if question_id is None:
            return None
        return cls(str(question_id), option_index, elapsed)


class Player:
    def __init__(self, conn_id: str, name: str, join_order: int):
        self.conn_id = conn_id
        self.name = name
        self.join_order = join_order
        self.score = 0
        self.last_answer: Optional[int] = None
        self.answer_time: Optional[float] = None
        # points earned on the active question, credited when it resolves
        self.pending_points = 0

    @property
    def has_answered(self):
        return self.answer_time is not None

    def reset_answer(self):
        self.last_answer = None
        self.answer_time = None
        self.pending_points = 0

    def to_dict(self):
        return {
            'id': self.conn_id,
            'name': self.name,
            'score': self.score,
            'currentAnswerTime': self.answer_time,
        }
