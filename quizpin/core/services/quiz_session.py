"""Service for a single student's attempt at a quiz.

A session owns the shuffled presentation order, the committed answers (always
stored by canonical question index), the optional countdown and the one
submission call. Everything runs on a single asyncio loop; the submission is
the only operation that awaits.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
import logging
import random
import time
from typing import Callable, Protocol
from uuid import uuid4

from quizpin.constants.quiz_constants import TICK_INTERVAL_SECONDS
from quizpin.core.errors import InvariantViolation, SessionStateError, ValidationError
from quizpin.core.models import UNANSWERED, Question, QuizDefinition, ScoredSubmission
from quizpin.core.services.countdown import AsyncioTicker, Countdown, TickHandle, Ticker
from quizpin.core.services.presentation_order import (
    ensure_permutation,
    generate_presentation_order,
    invert_order,
)
from quizpin.core.services.scoring import ScoringService

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    NOT_STARTED = auto()
    IN_PROGRESS = auto()
    SUBMITTING = auto()
    SUBMITTED = auto()
    ABANDONED = auto()


@dataclass(frozen=True, slots=True)
class SubmissionRequest:
    """Finalized answers as sent to the scoring boundary."""

    quiz_id: str
    user_name: str
    answers: tuple[int, ...]
    time_spent_seconds: int | None
    was_auto_submitted: bool
    submission_token: str


class SubmissionGateway(Protocol):
    async def submit(self, request: SubmissionRequest) -> ScoredSubmission: ...


class LocalSubmissionGateway:
    """Gateway that scores in-process, for single-process deployments and tests."""

    def __init__(self, scoring: ScoringService) -> None:
        self._scoring = scoring

    async def submit(self, request: SubmissionRequest) -> ScoredSubmission:
        return self._scoring.submit(
            request.quiz_id,
            request.user_name,
            list(request.answers),
            time_spent_seconds=request.time_spent_seconds,
            was_auto_submitted=request.was_auto_submitted,
            submission_token=request.submission_token,
        )


class QuizSession:
    """State machine for one student taking one quiz."""

    def __init__(
        self,
        quiz: QuizDefinition,
        user_name: str,
        gateway: SubmissionGateway,
        *,
        ticker: Ticker | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        submission_token: str | None = None,
    ) -> None:
        # Answer keys never reach the session, even if the caller had them.
        self._quiz = quiz.for_student()
        self._user_name = user_name
        self._gateway = gateway
        self._ticker = ticker
        self._rng = rng
        self._clock = clock
        self._tick_interval = tick_interval
        self._submission_token = submission_token or uuid4().hex

        self._phase = SessionPhase.NOT_STARTED
        self._order: list[int] = []
        self._slot_of: list[int] = []
        self._answers: list[int] = []
        self._current_slot: int = 0
        self._selection: int | None = None
        self._started_at: float | None = None

        self._countdown: Countdown | None = None
        self._tick_handle: TickHandle | None = None

        self._snapshot: SubmissionRequest | None = None
        self._in_flight: asyncio.Task[ScoredSubmission] | None = None
        self._result: ScoredSubmission | None = None
        self._last_error: Exception | None = None

    # --- Lifecycle ---

    def start(self) -> None:
        if self._phase is not SessionPhase.NOT_STARTED:
            raise SessionStateError("Session has already been started.")
        cleaned_name = self._user_name.strip()
        if not cleaned_name:
            raise ValidationError("User name is required.")

        count = self._quiz.question_count
        order = generate_presentation_order(count, self._rng)

        # AsyncioTicker raises outside a running loop, so it starts before any state changes.
        time_limit = self._quiz.time_limit_seconds
        if time_limit:
            ticker = self._ticker or AsyncioTicker()
            self._tick_handle = ticker.start(self._tick_interval, self._on_tick)
            self._countdown = Countdown(time_limit)

        self._user_name = cleaned_name
        self._order = order
        self._slot_of = invert_order(order)
        self._answers = [UNANSWERED] * count
        self._current_slot = 0
        self._selection = None
        self._started_at = self._clock()

        self._phase = SessionPhase.IN_PROGRESS
        logger.debug(
            "Session %s started for %s on quiz %s (%d questions, limit=%s)",
            self._submission_token,
            self._user_name,
            self._quiz.id,
            count,
            time_limit,
        )

    def abandon(self) -> None:
        """Drop the attempt without submitting. Never raises."""
        if self._phase in (SessionPhase.SUBMITTED, SessionPhase.ABANDONED):
            return
        self._cancel_timer()
        self._phase = SessionPhase.ABANDONED
        logger.debug("Session %s abandoned", self._submission_token)

    # --- Navigation ---

    def select_answer(self, answer_index: int, slot: int | None = None) -> None:
        """Record a transient choice for the slot on screen."""
        self._require_navigable()
        if slot is not None and slot != self._current_slot:
            raise ValidationError(f"Slot {slot} is not the question currently displayed.")
        question = self._question_at_slot(self._current_slot)
        if not 0 <= answer_index < len(question.answers):
            raise ValidationError(f"Answer index {answer_index} is out of range.")
        self._selection = answer_index

    def advance(self) -> bool:
        """Commit the selection and move on.

        Returns True when the last slot was committed and submission began;
        await ``wait_for_result()`` for the outcome.
        """
        self._require_navigable()
        if self._selection is None:
            raise ValidationError("Please select an answer before continuing.")

        canonical_index = self._order[self._current_slot]
        if self._current_slot < len(self._order) - 1:
            self._answers[canonical_index] = self._selection
            self._current_slot += 1
            self._selection = self._committed_answer(self._current_slot)
            return False

        loop = asyncio.get_running_loop()
        self._answers[canonical_index] = self._selection
        self._selection = None
        self._begin_submission(auto_submitted=False, loop=loop)
        return True

    def retreat(self) -> None:
        """Step back one slot, showing whatever was committed there."""
        self._require_navigable()
        if self._current_slot == 0:
            return
        self._current_slot -= 1
        self._selection = self._committed_answer(self._current_slot)

    # --- Submission ---

    async def submit(self, auto: bool = False) -> ScoredSubmission:
        """Submit the committed answers exactly once.

        Repeated calls while a submission is in flight share its outcome, and
        calls after success return the stored result without resubmitting.
        """
        if self._phase is SessionPhase.SUBMITTED and self._result is not None:
            return self._result
        task = self._begin_submission(auto_submitted=auto)
        return await asyncio.shield(task)

    async def wait_for_result(self) -> ScoredSubmission:
        if self._result is not None:
            return self._result
        if self._in_flight is None:
            raise SessionStateError("No submission has been started.")
        return await asyncio.shield(self._in_flight)

    def _begin_submission(
        self, auto_submitted: bool, loop: asyncio.AbstractEventLoop | None = None
    ) -> asyncio.Task[ScoredSubmission]:
        if self._phase is SessionPhase.SUBMITTING and self._in_flight is not None:
            logger.debug("Duplicate submit suppressed for session %s", self._submission_token)
            return self._in_flight
        if self._phase is not SessionPhase.IN_PROGRESS:
            raise SessionStateError(f"Cannot submit while session is {self._phase.name.lower()}.")

        loop = loop or asyncio.get_running_loop()
        self._cancel_timer()
        self._phase = SessionPhase.SUBMITTING
        self._last_error = None
        if self._snapshot is None:
            self._snapshot = self._freeze_answers(auto_submitted)

        self._in_flight = loop.create_task(self._run_submission(self._snapshot))
        self._in_flight.add_done_callback(self._log_submission_outcome)
        return self._in_flight

    def _freeze_answers(self, auto_submitted: bool) -> SubmissionRequest:
        if len(self._answers) != self._quiz.question_count:
            raise InvariantViolation("Answer vector length does not match the question count.")
        ensure_permutation(self._order, self._quiz.question_count)
        return SubmissionRequest(
            quiz_id=self._quiz.id,
            user_name=self._user_name,
            answers=tuple(self._answers),
            time_spent_seconds=self.time_spent_seconds,
            was_auto_submitted=auto_submitted,
            submission_token=self._submission_token,
        )

    async def _run_submission(self, request: SubmissionRequest) -> ScoredSubmission:
        if not request.answers:
            result = _empty_submission(request)
        else:
            try:
                result = await self._gateway.submit(request)
            except (Exception, asyncio.CancelledError) as exc:
                self._last_error = exc
                if self._phase is SessionPhase.SUBMITTING:
                    self._phase = SessionPhase.IN_PROGRESS
                logger.warning("Submission for session %s failed: %s", self._submission_token, exc)
                raise
        self._result = result
        self._phase = SessionPhase.SUBMITTED
        return result

    def _log_submission_outcome(self, task: asyncio.Task[ScoredSubmission]) -> None:
        # Retrieve the exception so an unawaited auto-submit never goes unreported.
        if task.cancelled():
            return
        if task.exception() is None:
            result = task.result()
            logger.info(
                "Session %s submitted: %d/%d (%d%%)%s",
                self._submission_token,
                result.score,
                result.total_questions,
                result.percentage,
                " [auto]" if result.was_auto_submitted else "",
            )

    # --- Timer ---

    def _on_tick(self) -> None:
        if self._countdown is None or self._phase is not SessionPhase.IN_PROGRESS:
            return
        if self._countdown.tick():
            logger.info("Time limit reached for session %s; auto-submitting", self._submission_token)
            self._begin_submission(auto_submitted=True)

    def _cancel_timer(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    # --- Read accessors ---

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def quiz(self) -> QuizDefinition:
        return self._quiz

    @property
    def user_name(self) -> str:
        return self._user_name

    @property
    def submission_token(self) -> str:
        return self._submission_token

    @property
    def question_count(self) -> int:
        return self._quiz.question_count

    @property
    def presentation_order(self) -> list[int]:
        return list(self._order)

    @property
    def answers_by_canonical_index(self) -> list[int]:
        return list(self._answers)

    @property
    def current_slot(self) -> int:
        return self._current_slot

    @property
    def current_selection(self) -> int | None:
        return self._selection

    @property
    def current_canonical_index(self) -> int | None:
        if not self._order:
            return None
        return self._order[self._current_slot]

    @property
    def current_question(self) -> Question | None:
        if not self._order:
            return None
        return self._question_at_slot(self._current_slot)

    @property
    def is_last_slot(self) -> bool:
        return bool(self._order) and self._current_slot == len(self._order) - 1

    @property
    def progress(self) -> float:
        if not self._order:
            return 0.0
        return (self._current_slot + 1) / len(self._order)

    @property
    def remaining_seconds(self) -> int | None:
        if self._countdown is None:
            return None
        return self._countdown.remaining_seconds

    @property
    def countdown(self) -> Countdown | None:
        return self._countdown

    @property
    def started_at(self) -> float | None:
        return self._started_at

    @property
    def time_spent_seconds(self) -> int | None:
        if self._started_at is None:
            return None
        return max(0, int(self._clock() - self._started_at))

    @property
    def has_pending_retry(self) -> bool:
        return self._phase is SessionPhase.IN_PROGRESS and self._snapshot is not None

    @property
    def result(self) -> ScoredSubmission | None:
        return self._result

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    def slot_for_question(self, canonical_index: int) -> int:
        return self._slot_of[canonical_index]

    # --- Helpers ---

    def _require_navigable(self) -> None:
        if self._phase is not SessionPhase.IN_PROGRESS:
            raise SessionStateError(f"Cannot change answers while session is {self._phase.name.lower()}.")
        if self._snapshot is not None:
            raise SessionStateError("Answers are finalized; retry the submission.")
        if not self._order:
            raise SessionStateError("This quiz has no questions.")

    def _question_at_slot(self, slot: int) -> Question:
        return self._quiz.questions[self._order[slot]]

    def _committed_answer(self, slot: int) -> int | None:
        answer = self._answers[self._order[slot]]
        return None if answer == UNANSWERED else answer


def _empty_submission(request: SubmissionRequest) -> ScoredSubmission:
    return ScoredSubmission(
        quiz_id=request.quiz_id,
        user_name=request.user_name,
        answers=[],
        score=0,
        total_questions=0,
        percentage=0,
        results=[],
        submitted_at=datetime.utcnow(),
        time_spent_seconds=request.time_spent_seconds,
        was_auto_submitted=request.was_auto_submitted,
        submission_token=request.submission_token,
    )


def start_session(
    quiz: QuizDefinition,
    user_name: str,
    gateway: SubmissionGateway,
    **options: object,
) -> QuizSession:
    """Create a session and move it to IN_PROGRESS."""
    session = QuizSession(quiz, user_name, gateway, **options)  # type: ignore[arg-type]
    session.start()
    return session
