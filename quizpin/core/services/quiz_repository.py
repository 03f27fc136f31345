"""Storage boundary for quizzes and their submissions."""

from __future__ import annotations

from dataclasses import replace
import logging
import random
from threading import Lock
from typing import Callable, Protocol
from uuid import uuid4

from quizpin.constants.quiz_constants import (
    MAX_ANSWERS_PER_QUESTION,
    MAX_TIME_LIMIT_MINUTES,
    MIN_ANSWERS_PER_QUESTION,
    PIN_ALPHABET,
    PIN_LENGTH,
    PIN_MAX_ATTEMPTS,
    SUPPORTED_LANGUAGES,
)
from quizpin.core.errors import NotFoundError, ValidationError
from quizpin.core.models import Question, QuizDefinition, ScoredSubmission

logger = logging.getLogger(__name__)


class QuizRepository(Protocol):
    """Operations the core needs from whatever stores quizzes."""

    def get_quiz_for_student(self, quiz_id: str) -> QuizDefinition: ...

    def get_quiz_with_answer_keys(self, quiz_id: str) -> QuizDefinition: ...

    def find_quiz_by_pin(self, pin: str) -> QuizDefinition: ...

    def create_quiz(self, quiz: QuizDefinition) -> QuizDefinition: ...

    def list_quizzes(self, created_by: str | None = None) -> list[QuizDefinition]: ...

    def delete_quiz(self, quiz_id: str) -> None: ...

    def append_submission(self, quiz_id: str, submission: ScoredSubmission) -> str: ...

    def list_submissions(self, quiz_id: str) -> list[ScoredSubmission]: ...

    def get_submission(self, submission_id: str) -> ScoredSubmission: ...


def generate_pin(rng: random.Random | None = None) -> str:
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(PIN_ALPHABET) for _ in range(PIN_LENGTH))


def generate_unique_pin(is_taken: Callable[[str], bool], rng: random.Random | None = None) -> str:
    """Draw PINs until one is free."""
    for _ in range(PIN_MAX_ATTEMPTS):
        pin = generate_pin(rng)
        if not is_taken(pin):
            return pin
    raise RuntimeError("Unable to allocate a unique quiz PIN.")


def validate_quiz(quiz: QuizDefinition) -> QuizDefinition:
    """Validate and normalize a quiz definition before storage."""
    title = quiz.title.strip()
    if not title:
        raise ValidationError("Quiz title must not be empty.")
    if quiz.language not in SUPPORTED_LANGUAGES:
        raise ValidationError(f"Unsupported quiz language '{quiz.language}'.")
    questions = [_validate_question(question) for question in quiz.questions]
    time_limit = _normalize_time_limit(quiz.has_time_limit, quiz.time_limit_minutes)
    return replace(
        quiz,
        title=title,
        questions=questions,
        time_limit_minutes=time_limit,
        school_name=quiz.school_name.strip(),
        teacher_name=quiz.teacher_name.strip(),
        major=quiz.major.strip(),
    )


def _validate_question(question: Question) -> Question:
    text = question.text.strip()
    if not text:
        raise ValidationError("Question text must not be empty.")
    answers = [answer.strip() for answer in question.answers]
    if not MIN_ANSWERS_PER_QUESTION <= len(answers) <= MAX_ANSWERS_PER_QUESTION:
        raise ValidationError(
            f"A question must have between {MIN_ANSWERS_PER_QUESTION} and "
            f"{MAX_ANSWERS_PER_QUESTION} answers."
        )
    if any(not answer for answer in answers):
        raise ValidationError("Answer text cannot be empty.")
    correct = question.correct_answer_index
    if correct is None or not 0 <= correct < len(answers):
        raise ValidationError("Correct answer index must point at one of the answers.")
    return Question(text=text, answers=answers, correct_answer_index=correct)


def _normalize_time_limit(has_time_limit: bool, minutes: int | None) -> int | None:
    if not has_time_limit:
        return None
    if not isinstance(minutes, int) or isinstance(minutes, bool):
        raise ValidationError("Time limit must be provided as an integer number of minutes.")
    if not 1 <= minutes <= MAX_TIME_LIMIT_MINUTES:
        raise ValidationError(f"Time limit must be between 1 and {MAX_TIME_LIMIT_MINUTES} minutes.")
    return minutes


class InMemoryQuizRepository:
    """Process-local quiz store, safe to share between API worker threads."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._lock = Lock()
        self._rng = rng
        self._quizzes: dict[str, QuizDefinition] = {}
        self._submissions: dict[str, ScoredSubmission] = {}
        self._submission_order: list[str] = []

    def get_quiz_for_student(self, quiz_id: str) -> QuizDefinition:
        return self.get_quiz_with_answer_keys(quiz_id).for_student()

    def get_quiz_with_answer_keys(self, quiz_id: str) -> QuizDefinition:
        with self._lock:
            quiz = self._quizzes.get(quiz_id)
        if quiz is None:
            raise NotFoundError(f"Quiz {quiz_id} not found.")
        return quiz

    def find_quiz_by_pin(self, pin: str) -> QuizDefinition:
        wanted = pin.strip().upper()
        with self._lock:
            quiz = next((q for q in self._quizzes.values() if q.pin == wanted), None)
        if quiz is None:
            raise NotFoundError("Invalid PIN code.")
        return quiz.for_student()

    def create_quiz(self, quiz: QuizDefinition) -> QuizDefinition:
        prepared = validate_quiz(quiz)
        with self._lock:
            taken = {q.pin for q in self._quizzes.values()}
            pin = prepared.pin.strip().upper()
            if not pin or pin in taken:
                pin = generate_unique_pin(taken.__contains__, self._rng)
            stored = replace(prepared, id=uuid4().hex, pin=pin)
            self._quizzes[stored.id] = stored
        logger.info("Created quiz %s (%s) with PIN %s", stored.id, stored.title, stored.pin)
        return stored

    def list_quizzes(self, created_by: str | None = None) -> list[QuizDefinition]:
        with self._lock:
            quizzes = list(self._quizzes.values())
        if created_by is not None:
            quizzes = [q for q in quizzes if q.created_by == created_by]
        return [q.for_student() for q in quizzes]

    def delete_quiz(self, quiz_id: str) -> None:
        with self._lock:
            if self._quizzes.pop(quiz_id, None) is None:
                raise NotFoundError(f"Quiz {quiz_id} not found.")

    def append_submission(self, quiz_id: str, submission: ScoredSubmission) -> str:
        with self._lock:
            if quiz_id not in self._quizzes:
                raise NotFoundError(f"Quiz {quiz_id} not found.")
            token = submission.submission_token
            if token:
                for existing_id in self._submission_order:
                    existing = self._submissions[existing_id]
                    if existing.quiz_id == quiz_id and existing.submission_token == token:
                        logger.info("Duplicate submission token for quiz %s; keeping %s", quiz_id, existing_id)
                        return existing_id
            submission_id = uuid4().hex
            self._submissions[submission_id] = replace(submission, id=submission_id, quiz_id=quiz_id)
            self._submission_order.append(submission_id)
            return submission_id

    def list_submissions(self, quiz_id: str) -> list[ScoredSubmission]:
        with self._lock:
            matching = [self._submissions[sid] for sid in self._submission_order]
        return [s for s in reversed(matching) if s.quiz_id == quiz_id]

    def get_submission(self, submission_id: str) -> ScoredSubmission:
        with self._lock:
            submission = self._submissions.get(submission_id)
        if submission is None:
            raise NotFoundError(f"Submission {submission_id} not found.")
        return submission
