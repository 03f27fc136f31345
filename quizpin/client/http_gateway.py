"""HTTP client used by a student session to join quizzes and submit answers."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

import httpx

from quizpin.constants.network_constants import CLIENT_TIMEOUT_SECONDS
from quizpin.core.errors import NotFoundError, SubmissionFailure, ValidationError
from quizpin.core.models import Question, QuestionResult, QuizDefinition, ScoredSubmission
from quizpin.core.services.quiz_session import SubmissionRequest

logger = logging.getLogger(__name__)


def quiz_from_json(data: dict[str, Any]) -> QuizDefinition:
    return QuizDefinition(
        id=str(data["_id"]),
        title=data.get("title", ""),
        questions=[
            Question(text=q["text"], answers=list(q["answers"]), correct_answer_index=None)
            for q in data.get("questions", [])
        ],
        has_time_limit=bool(data.get("hasTimeLimit", False)),
        time_limit_minutes=data.get("timeLimit"),
        pin=data.get("pin", ""),
        school_name=data.get("schoolName", ""),
        teacher_name=data.get("teacherName", ""),
        major=data.get("major", ""),
        language=data.get("language") or "en",
        class_id=data.get("classId"),
    )


def submission_from_json(data: dict[str, Any]) -> ScoredSubmission:
    submitted_at = data.get("submittedAt")
    return ScoredSubmission(
        id=data.get("submissionId") or data.get("_id"),
        quiz_id=str(data["quizId"]),
        user_name=data["userName"],
        answers=list(data.get("answers", [])),
        score=data["score"],
        total_questions=data["totalQuestions"],
        percentage=data["percentage"],
        results=[
            QuestionResult(
                question_index=r["questionIndex"],
                question_text=r["questionText"],
                user_answer_index=r["userAnswerIndex"],
                user_answer_text=r["userAnswerText"],
                correct_answer_index=r["correctAnswerIndex"],
                correct_answer_text=r["correctAnswerText"],
                is_correct=r["isCorrect"],
            )
            for r in data.get("results", [])
        ],
        submitted_at=datetime.fromisoformat(submitted_at) if submitted_at else datetime.utcnow(),
        time_spent_seconds=data.get("timeSpent"),
        was_auto_submitted=bool(data.get("wasAutoSubmitted", False)),
        submission_token=data.get("submissionToken"),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    return body.get("error") or body.get("detail") or f"HTTP {response.status_code}"


class HttpQuizClient:
    """Talks to the quiz API; doubles as the session's ``SubmissionGateway``."""

    def __init__(self, base_url: str = "", client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=CLIENT_TIMEOUT_SECONDS)

    async def __aenter__(self) -> "HttpQuizClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def join(self, pin: str, user_name: str) -> QuizDefinition:
        response = await self._client.post("/api/quizzes/join", json={"pin": pin, "userName": user_name})
        if response.status_code == 400:
            raise ValidationError(_error_message(response))
        if response.status_code == 404:
            raise NotFoundError(_error_message(response))
        response.raise_for_status()
        return quiz_from_json(response.json()["data"])

    async def submit(self, request: SubmissionRequest) -> ScoredSubmission:
        payload = {
            "answers": list(request.answers),
            "userName": request.user_name,
            "timeSpent": request.time_spent_seconds,
            "wasAutoSubmitted": request.was_auto_submitted,
            "submissionToken": request.submission_token,
        }
        try:
            response = await self._client.post(f"/api/quizzes/{request.quiz_id}/submit", json=payload)
        except httpx.TransportError as exc:
            raise SubmissionFailure(f"Unable to reach the quiz server: {exc}") from exc

        if response.status_code == 400:
            raise ValidationError(_error_message(response))
        if response.status_code == 404:
            raise NotFoundError(_error_message(response))
        if response.status_code >= 400:
            logger.warning("Submit for quiz %s returned HTTP %s", request.quiz_id, response.status_code)
            raise SubmissionFailure(_error_message(response), status_code=response.status_code)
        return submission_from_json(response.json()["data"])
