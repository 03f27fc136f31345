"""Shared fixtures for the quiz platform tests."""

from __future__ import annotations

import asyncio

import pytest

from quizpin.core.errors import SubmissionFailure
from quizpin.core.models import Question, QuizDefinition, ScoredSubmission
from quizpin.core.services.quiz_repository import InMemoryQuizRepository
from quizpin.core.services.quiz_session import LocalSubmissionGateway, SubmissionRequest
from quizpin.core.services.scoring import ScoringService


def make_quiz(
    question_count: int = 4,
    *,
    has_time_limit: bool = False,
    time_limit_minutes: int | None = None,
    title: str = "Fractions",
) -> QuizDefinition:
    """Question ``i`` has four answers and the correct one is ``i % 4``."""
    questions = [
        Question(
            text=f"Question {i}",
            answers=[f"Q{i} answer {a}" for a in range(4)],
            correct_answer_index=i % 4,
        )
        for i in range(question_count)
    ]
    return QuizDefinition(
        id="",
        title=title,
        questions=questions,
        has_time_limit=has_time_limit,
        time_limit_minutes=time_limit_minutes,
        school_name="North High",
        teacher_name="Ms. Rivera",
        major="Mathematics",
        created_by="admin-1",
    )


class RecordingGateway:
    """Scores through the real service while recording every request."""

    def __init__(self, repository: InMemoryQuizRepository, *, hold: bool = False, fail_times: int = 0) -> None:
        self._inner = LocalSubmissionGateway(ScoringService(repository))
        self.requests: list[SubmissionRequest] = []
        self.hold = hold
        self.release = asyncio.Event()
        self.fail_times = fail_times

    async def submit(self, request: SubmissionRequest) -> ScoredSubmission:
        self.requests.append(request)
        if self.hold:
            await self.release.wait()
        if self.fail_times > 0:
            self.fail_times -= 1
            raise SubmissionFailure("Network error")
        return await self._inner.submit(request)


@pytest.fixture
def repository() -> InMemoryQuizRepository:
    return InMemoryQuizRepository()


@pytest.fixture
def stored_quiz(repository: InMemoryQuizRepository) -> QuizDefinition:
    return repository.create_quiz(make_quiz())


@pytest.fixture
def timed_quiz(repository: InMemoryQuizRepository) -> QuizDefinition:
    return repository.create_quiz(make_quiz(has_time_limit=True, time_limit_minutes=1, title="Timed"))


@pytest.fixture
def empty_quiz(repository: InMemoryQuizRepository) -> QuizDefinition:
    return repository.create_quiz(make_quiz(0, title="Empty"))
