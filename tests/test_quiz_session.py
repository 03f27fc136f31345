"""Tests for the student session state machine."""

import asyncio
import random

import pytest

from conftest import RecordingGateway, make_quiz
from quizpin.core.errors import SessionStateError, SubmissionFailure, ValidationError
from quizpin.core.models import UNANSWERED
from quizpin.core.services.countdown import ManualTicker
from quizpin.core.services.quiz_session import QuizSession, SessionPhase, start_session


def _correct_answer(session: QuizSession, keyed_quiz) -> int:
    return keyed_quiz.questions[session.current_canonical_index].correct_answer_index


def test_start_builds_shuffled_state(repository, stored_quiz) -> None:
    session = start_session(stored_quiz, "Ada", RecordingGateway(repository), rng=random.Random(11))

    assert session.phase is SessionPhase.IN_PROGRESS
    assert sorted(session.presentation_order) == [0, 1, 2, 3]
    assert session.answers_by_canonical_index == [UNANSWERED] * 4
    assert session.current_slot == 0
    assert session.remaining_seconds is None
    assert session.progress == pytest.approx(0.25)


def test_session_never_holds_answer_keys(repository, stored_quiz) -> None:
    session = start_session(stored_quiz, "Ada", RecordingGateway(repository))
    assert all(q.correct_answer_index is None for q in session.quiz.questions)
    assert session.current_question.correct_answer_index is None


def test_blank_user_name_is_rejected(repository, stored_quiz) -> None:
    session = QuizSession(stored_quiz, "   ", RecordingGateway(repository))
    with pytest.raises(ValidationError):
        session.start()
    assert session.phase is SessionPhase.NOT_STARTED


def test_advance_without_selection_changes_nothing(repository, stored_quiz) -> None:
    session = start_session(stored_quiz, "Ada", RecordingGateway(repository))

    with pytest.raises(ValidationError):
        session.advance()

    assert session.current_slot == 0
    assert session.answers_by_canonical_index == [UNANSWERED] * 4


def test_out_of_range_selection_is_rejected(repository, stored_quiz) -> None:
    session = start_session(stored_quiz, "Ada", RecordingGateway(repository))
    with pytest.raises(ValidationError):
        session.select_answer(4)
    with pytest.raises(ValidationError):
        session.select_answer(0, slot=2)
    assert session.current_selection is None


def test_answers_are_stored_by_canonical_index(repository, stored_quiz) -> None:
    session = start_session(stored_quiz, "Ada", RecordingGateway(repository), rng=random.Random(5))
    order = session.presentation_order

    for slot in range(3):
        session.select_answer(slot)
        session.advance()

    answers = session.answers_by_canonical_index
    for slot in range(3):
        assert answers[order[slot]] == slot
    assert answers[order[3]] == UNANSWERED
    assert session.slot_for_question(order[2]) == 2


def test_mapping_is_stable_under_navigation(repository) -> None:
    quiz = repository.create_quiz(make_quiz(6))
    session = start_session(quiz, "Ada", RecordingGateway(repository), rng=random.Random(99))
    chosen = {}
    for slot in range(5):
        answer = (slot * 3) % 4
        session.select_answer(answer)
        chosen[session.current_canonical_index] = answer
        session.advance()

    rng = random.Random(1)
    for _ in range(200):
        if rng.random() < 0.5:
            session.retreat()
        elif session.current_selection is not None and not session.is_last_slot:
            session.advance()
        expected = chosen.get(session.current_canonical_index)
        assert session.current_selection == expected

    answers = session.answers_by_canonical_index
    for canonical_index, answer in chosen.items():
        assert answers[canonical_index] == answer


def test_retreat_restores_committed_answer(repository, stored_quiz) -> None:
    session = start_session(stored_quiz, "Ada", RecordingGateway(repository))
    session.select_answer(2)
    session.advance()
    assert session.current_selection is None

    session.select_answer(1)  # transient, never committed
    session.retreat()

    assert session.current_slot == 0
    assert session.current_selection == 2
    session.retreat()
    assert session.current_slot == 0


def test_changing_a_committed_answer_overwrites_it(repository, stored_quiz) -> None:
    session = start_session(stored_quiz, "Ada", RecordingGateway(repository))
    first_question = session.current_canonical_index
    session.select_answer(2)
    session.advance()
    session.retreat()
    session.select_answer(3)
    session.advance()

    assert session.answers_by_canonical_index[first_question] == 3
    assert session.current_slot == 1


@pytest.mark.asyncio
async def test_completing_the_last_slot_submits(repository, stored_quiz) -> None:
    gateway = RecordingGateway(repository)
    session = start_session(stored_quiz, "Ada", gateway, rng=random.Random(2))

    finished = False
    while not finished:
        session.select_answer(_correct_answer(session, stored_quiz))
        finished = session.advance()

    assert session.phase is SessionPhase.SUBMITTING
    result = await session.wait_for_result()

    assert session.phase is SessionPhase.SUBMITTED
    assert result.score == 4
    assert result.percentage == 100
    assert result.was_auto_submitted is False
    assert gateway.requests[0].answers == (0, 1, 2, 3)
    with pytest.raises(SessionStateError):
        session.select_answer(0)


@pytest.mark.asyncio
async def test_shuffled_answers_are_scored_in_canonical_order(repository, stored_quiz) -> None:
    gateway = RecordingGateway(repository)
    session = start_session(stored_quiz, "Ada", gateway, rng=random.Random(8))
    planned = {0: 0, 1: 1, 2: 0, 3: 0}  # canonical index -> answer; correct keys are [0, 1, 2, 3]

    finished = False
    while not finished:
        session.select_answer(planned[session.current_canonical_index])
        finished = session.advance()
    result = await session.wait_for_result()

    assert gateway.requests[0].answers == (0, 1, 0, 0)
    assert result.score == 2
    assert result.percentage == 50
    assert [r.is_correct for r in result.results] == [True, True, False, False]
    assert result.results[2].user_answer_text == "Q2 answer 0"


@pytest.mark.asyncio
async def test_double_submit_persists_once(repository, stored_quiz) -> None:
    gateway = RecordingGateway(repository, hold=True)
    session = start_session(stored_quiz, "Ada", gateway)

    first = asyncio.ensure_future(session.submit())
    second = asyncio.ensure_future(session.submit())
    await asyncio.sleep(0)
    assert session.phase is SessionPhase.SUBMITTING
    with pytest.raises(SessionStateError):
        session.retreat()

    gateway.release.set()
    one, two = await asyncio.gather(first, second)
    three = await session.submit()

    assert one is two is three
    assert len(gateway.requests) == 1
    assert len(repository.list_submissions(stored_quiz.id)) == 1


@pytest.mark.asyncio
async def test_timer_auto_submits_once(repository, timed_quiz) -> None:
    ticker = ManualTicker(start_time=1_000.0)
    gateway = RecordingGateway(repository)
    session = start_session(timed_quiz, "Bo", gateway, ticker=ticker, clock=ticker.now, rng=random.Random(4))
    assert session.remaining_seconds == 60

    session.select_answer(_correct_answer(session, timed_quiz))
    session.advance()
    answered = session.presentation_order[0]
    ticker.advance(30)
    assert session.remaining_seconds == 30
    ticker.advance(31)

    assert session.phase is SessionPhase.SUBMITTING
    result = await session.wait_for_result()
    ticker.advance(120)

    assert len(gateway.requests) == 1
    request = gateway.requests[0]
    assert request.was_auto_submitted is True
    assert request.time_spent_seconds == 60
    assert [a != UNANSWERED for a in request.answers].count(True) == 1
    assert request.answers[answered] != UNANSWERED
    assert result.was_auto_submitted is True
    assert result.score == 1
    assert ticker.active_timer_count == 0


@pytest.mark.asyncio
async def test_manual_submit_cancels_timer(repository, timed_quiz) -> None:
    ticker = ManualTicker()
    gateway = RecordingGateway(repository, hold=True)
    session = start_session(timed_quiz, "Bo", gateway, ticker=ticker, clock=ticker.now)

    ticker.advance(59)
    pending = asyncio.ensure_future(session.submit())
    await asyncio.sleep(0)
    ticker.advance(5)  # the countdown would have expired here
    gateway.release.set()
    result = await pending

    assert len(gateway.requests) == 1
    assert result.was_auto_submitted is False
    assert ticker.active_timer_count == 0


@pytest.mark.asyncio
async def test_failed_submit_is_retryable_with_same_snapshot(repository, stored_quiz) -> None:
    gateway = RecordingGateway(repository, fail_times=1)
    session = start_session(stored_quiz, "Ada", gateway)
    session.select_answer(1)
    session.advance()
    answers_before = session.answers_by_canonical_index

    with pytest.raises(SubmissionFailure):
        await session.submit()

    assert session.phase is SessionPhase.IN_PROGRESS
    assert session.has_pending_retry
    assert isinstance(session.last_error, SubmissionFailure)
    assert session.current_slot == 1
    assert session.answers_by_canonical_index == answers_before
    with pytest.raises(SessionStateError):
        session.select_answer(0)

    result = await session.submit()

    assert gateway.requests[0] is gateway.requests[1]
    assert session.phase is SessionPhase.SUBMITTED
    assert session.last_error is None
    assert result.id is not None
    assert len(repository.list_submissions(stored_quiz.id)) == 1


@pytest.mark.asyncio
async def test_failed_auto_submit_keeps_auto_flag(repository, timed_quiz) -> None:
    ticker = ManualTicker()
    gateway = RecordingGateway(repository, fail_times=1)
    session = start_session(timed_quiz, "Bo", gateway, ticker=ticker, clock=ticker.now)

    ticker.advance(60)
    with pytest.raises(SubmissionFailure):
        await session.wait_for_result()
    assert session.phase is SessionPhase.IN_PROGRESS
    ticker.advance(60)
    assert len(gateway.requests) == 1

    result = await session.submit()
    assert result.was_auto_submitted is True
    assert len(gateway.requests) == 2


@pytest.mark.asyncio
async def test_zero_question_quiz_short_circuits(repository, empty_quiz) -> None:
    gateway = RecordingGateway(repository)
    session = start_session(empty_quiz, "Ada", gateway)

    assert session.current_question is None
    assert session.progress == 0.0
    with pytest.raises(SessionStateError):
        session.advance()

    result = await session.submit()

    assert result.percentage == 0
    assert result.total_questions == 0
    assert gateway.requests == []


def test_abandon_is_silent_and_stops_timer(repository, timed_quiz) -> None:
    ticker = ManualTicker()
    session = start_session(timed_quiz, "Bo", RecordingGateway(repository), ticker=ticker, clock=ticker.now)

    session.abandon()
    session.abandon()
    ticker.advance(120)

    assert session.phase is SessionPhase.ABANDONED
    assert ticker.active_timer_count == 0
    with pytest.raises(SessionStateError):
        session.advance()


def test_session_cannot_start_twice(repository, stored_quiz) -> None:
    session = start_session(stored_quiz, "Ada", RecordingGateway(repository))
    with pytest.raises(SessionStateError):
        session.start()


def test_timed_start_outside_a_loop_leaves_session_untouched(repository, timed_quiz) -> None:
    session = QuizSession(timed_quiz, "  Ada  ", RecordingGateway(repository))

    with pytest.raises(RuntimeError):
        session.start()

    assert session.phase is SessionPhase.NOT_STARTED
    assert session.presentation_order == []
    assert session.started_at is None
    assert session.countdown is None
    assert session.user_name == "  Ada  "


def test_last_advance_outside_a_loop_keeps_selection(repository) -> None:
    quiz = repository.create_quiz(make_quiz(1))
    session = start_session(quiz, "Ada", RecordingGateway(repository))
    session.select_answer(2)

    with pytest.raises(RuntimeError):
        session.advance()

    assert session.phase is SessionPhase.IN_PROGRESS
    assert session.answers_by_canonical_index == [UNANSWERED]
    assert session.current_selection == 2


@pytest.mark.asyncio
async def test_cancelled_submission_can_be_retried(repository, stored_quiz) -> None:
    gateway = RecordingGateway(repository, hold=True)
    session = start_session(stored_quiz, "Ada", gateway)

    pending = asyncio.ensure_future(session.submit())
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert len(gateway.requests) == 1
    session._in_flight.cancel()

    with pytest.raises(asyncio.CancelledError):
        await pending
    assert session.phase is SessionPhase.IN_PROGRESS
    assert session.has_pending_retry
    assert isinstance(session.last_error, asyncio.CancelledError)

    gateway.hold = False
    result = await session.submit()

    assert session.phase is SessionPhase.SUBMITTED
    assert gateway.requests[0] == gateway.requests[1]
    assert result.total_questions == 4
