"""Domain models for the quiz platform."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from quizpin.constants.quiz_constants import NO_ANSWER_TEXT

UNANSWERED: int = -1


@dataclass(frozen=True, slots=True)
class Question:
    """Multiple-choice question with between two and six answers."""

    text: str
    answers: list[str]
    correct_answer_index: int | None = None  # Stripped from the student view

    def for_student(self) -> "Question":
        return replace(self, correct_answer_index=None)

    def answer_text(self, index: int) -> str:
        if 0 <= index < len(self.answers):
            return self.answers[index]
        return NO_ANSWER_TEXT


@dataclass(frozen=True, slots=True)
class QuizDefinition:
    """A quiz in canonical question order."""

    id: str
    title: str
    questions: list[Question]
    has_time_limit: bool = False
    time_limit_minutes: int | None = None
    pin: str = ""
    school_name: str = ""
    teacher_name: str = ""
    major: str = ""
    language: str = "en"
    created_by: str | None = None
    class_id: str | None = None

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def time_limit_seconds(self) -> int | None:
        if not self.has_time_limit or not self.time_limit_minutes:
            return None
        return self.time_limit_minutes * 60

    def has_answer_keys(self) -> bool:
        return all(q.correct_answer_index is not None for q in self.questions)

    def for_student(self) -> "QuizDefinition":
        """Return the projection that is safe to send to a student."""
        return replace(self, questions=[q.for_student() for q in self.questions])


@dataclass(frozen=True, slots=True)
class QuestionResult:
    """Outcome of a single question, reported in canonical order."""

    question_index: int
    question_text: str
    user_answer_index: int
    user_answer_text: str
    correct_answer_index: int
    correct_answer_text: str
    is_correct: bool


@dataclass(frozen=True, slots=True)
class ScoredSubmission:
    """The single, immutable record produced when a student submits."""

    quiz_id: str
    user_name: str
    answers: list[int]
    score: int
    total_questions: int
    percentage: int
    results: list[QuestionResult]
    submitted_at: datetime
    time_spent_seconds: int | None = None
    was_auto_submitted: bool = False
    submission_token: str | None = None
    id: str | None = None


@dataclass(slots=True)
class AdminUser:
    """Teacher account allowed to author quizzes."""

    id: str
    name: str
    email: str
    role: str = "admin"
    language: str = "en"
    created_at: datetime = field(default_factory=datetime.utcnow)
