"""Request payloads and JSON serialization for the HTTP API.

Field names follow the camelCase wire format used by the browser client.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from quizpin.core.markdown_renderer import renderer
from quizpin.core.models import QuestionResult, QuizDefinition, ScoredSubmission


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class JoinPayload(_CamelModel):
    """Payload schema for joining a quiz by PIN."""

    pin: str | None = None
    user_name: str | None = Field(default=None, alias="userName")


class SubmitPayload(_CamelModel):
    """Payload schema for a finished attempt, answers in canonical order."""

    answers: list[int] | None = None
    user_name: str | None = Field(default=None, alias="userName")
    time_spent: int | None = Field(default=None, alias="timeSpent")
    was_auto_submitted: bool = Field(default=False, alias="wasAutoSubmitted")
    submission_token: str | None = Field(default=None, alias="submissionToken")


class QuestionPayload(_CamelModel):
    text: str
    answers: list[str]
    correct_answer_index: int = Field(alias="correctAnswerIndex")


class QuizPayload(_CamelModel):
    """Payload schema for authoring a quiz."""

    title: str
    school_name: str = Field(default="", alias="schoolName")
    teacher_name: str = Field(default="", alias="teacherName")
    major: str = ""
    questions: list[QuestionPayload] = Field(default_factory=list)
    has_time_limit: bool = Field(default=False, alias="hasTimeLimit")
    time_limit: int | None = Field(default=None, alias="timeLimit")
    class_id: str | None = Field(default=None, alias="classId")


def quiz_to_json(quiz: QuizDefinition, include_answer_keys: bool = False) -> dict[str, Any]:
    questions: list[dict[str, Any]] = []
    for question in quiz.questions:
        entry: dict[str, Any] = {
            "text": question.text,
            "questionHtml": renderer.render_question(question.text),
            "answers": list(question.answers),
        }
        if include_answer_keys:
            entry["correctAnswerIndex"] = question.correct_answer_index
        questions.append(entry)
    return {
        "_id": quiz.id,
        "title": quiz.title,
        "schoolName": quiz.school_name,
        "teacherName": quiz.teacher_name,
        "major": quiz.major,
        "pin": quiz.pin,
        "hasTimeLimit": quiz.has_time_limit,
        "timeLimit": quiz.time_limit_minutes,
        "language": quiz.language or "en",
        "classId": quiz.class_id,
        "questions": questions,
    }


def result_to_json(result: QuestionResult) -> dict[str, Any]:
    return {
        "questionIndex": result.question_index,
        "questionText": result.question_text,
        "userAnswerIndex": result.user_answer_index,
        "userAnswerText": result.user_answer_text,
        "correctAnswerIndex": result.correct_answer_index,
        "correctAnswerText": result.correct_answer_text,
        "isCorrect": result.is_correct,
    }


def submission_to_json(submission: ScoredSubmission) -> dict[str, Any]:
    return {
        "_id": submission.id,
        "quizId": submission.quiz_id,
        "userName": submission.user_name,
        "answers": list(submission.answers),
        "score": submission.score,
        "totalQuestions": submission.total_questions,
        "percentage": submission.percentage,
        "results": [result_to_json(r) for r in submission.results],
        "timeSpent": submission.time_spent_seconds,
        "wasAutoSubmitted": submission.was_auto_submitted,
        "submittedAt": submission.submitted_at.isoformat(),
        "submissionToken": submission.submission_token,
    }
