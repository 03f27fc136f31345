"""MongoDB-backed quiz repository.

Documents use camelCase field names. References to other documents (`quizId`
on submissions, `createdBy` on quizzes) are stored as ObjectId whenever the
value is a valid one, and read back as strings.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
import logging
import random
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from quizpin.constants.network_constants import DATABASE_NAME, DATABASE_URL
from quizpin.core.errors import NotFoundError
from quizpin.core.models import Question, QuestionResult, QuizDefinition, ScoredSubmission
from quizpin.core.services.quiz_repository import generate_unique_pin, validate_quiz

logger = logging.getLogger(__name__)

QUIZ_COLLECTION = "quizzes"
SUBMISSION_COLLECTION = "quiz_submissions"
# ObjectIds break ties between documents created in the same millisecond.
_NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


def _object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise NotFoundError(f"'{value}' is not a valid identifier.") from exc


def _reference(value: str | None) -> ObjectId | str | None:
    if value is not None and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _reference_str(value: Any) -> str | None:
    return None if value is None else str(value)


def quiz_to_document(quiz: QuizDefinition) -> dict[str, Any]:
    return {
        "title": quiz.title,
        "schoolName": quiz.school_name,
        "teacherName": quiz.teacher_name,
        "major": quiz.major,
        "pin": quiz.pin,
        "questions": [
            {
                "text": q.text,
                "answers": list(q.answers),
                "correctAnswerIndex": q.correct_answer_index,
            }
            for q in quiz.questions
        ],
        "hasTimeLimit": quiz.has_time_limit,
        "timeLimit": quiz.time_limit_minutes,
        "language": quiz.language,
        "createdBy": _reference(quiz.created_by),
        "classId": quiz.class_id,
    }


def quiz_from_document(doc: dict[str, Any]) -> QuizDefinition:
    return QuizDefinition(
        id=str(doc["_id"]),
        title=doc.get("title", ""),
        questions=[
            Question(
                text=q["text"],
                answers=list(q["answers"]),
                correct_answer_index=q.get("correctAnswerIndex"),
            )
            for q in doc.get("questions", [])
        ],
        has_time_limit=bool(doc.get("hasTimeLimit", False)),
        time_limit_minutes=doc.get("timeLimit"),
        pin=doc.get("pin", ""),
        school_name=doc.get("schoolName", ""),
        teacher_name=doc.get("teacherName", ""),
        major=doc.get("major", ""),
        language=doc.get("language") or "en",
        created_by=_reference_str(doc.get("createdBy")),
        class_id=doc.get("classId"),
    )


def submission_to_document(quiz_id: str, submission: ScoredSubmission) -> dict[str, Any]:
    document: dict[str, Any] = {
        "quizId": _reference(quiz_id),
        "userName": submission.user_name,
        "answers": list(submission.answers),
        "score": submission.score,
        "totalQuestions": submission.total_questions,
        "percentage": submission.percentage,
        "submittedAt": submission.submitted_at,
        "timeSpent": submission.time_spent_seconds,
        "wasAutoSubmitted": submission.was_auto_submitted,
        "results": [
            {
                "questionIndex": r.question_index,
                "questionText": r.question_text,
                "userAnswerIndex": r.user_answer_index,
                "userAnswerText": r.user_answer_text,
                "correctAnswerIndex": r.correct_answer_index,
                "correctAnswerText": r.correct_answer_text,
                "isCorrect": r.is_correct,
            }
            for r in submission.results
        ],
    }
    # Left out entirely when absent so the partial unique index ignores it.
    if submission.submission_token:
        document["submissionToken"] = submission.submission_token
    return document


def submission_from_document(doc: dict[str, Any]) -> ScoredSubmission:
    return ScoredSubmission(
        id=str(doc["_id"]),
        quiz_id=str(doc["quizId"]),
        user_name=doc["userName"],
        answers=list(doc.get("answers", [])),
        score=doc["score"],
        total_questions=doc["totalQuestions"],
        percentage=doc["percentage"],
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
            for r in doc.get("results", [])
        ],
        submitted_at=doc.get("submittedAt") or datetime.utcnow(),
        time_spent_seconds=doc.get("timeSpent"),
        was_auto_submitted=bool(doc.get("wasAutoSubmitted", False)),
        submission_token=doc.get("submissionToken"),
    )


class MongoQuizRepository:
    """Quiz repository stored in two MongoDB collections."""

    def __init__(self, database: Database, rng: random.Random | None = None) -> None:
        self._db = database
        self._rng = rng
        self._quizzes = database[QUIZ_COLLECTION]
        self._submissions = database[SUBMISSION_COLLECTION]
        self._ensure_indexes()

    @classmethod
    def from_url(cls, url: str = DATABASE_URL, name: str = DATABASE_NAME) -> "MongoQuizRepository":
        client: MongoClient = MongoClient(url)
        logger.info("Using MongoDB database '%s'", name)
        return cls(client[name])

    def _ensure_indexes(self) -> None:
        self._quizzes.create_index("pin", unique=True)
        self._submissions.create_index([("quizId", 1), ("createdAt", DESCENDING)])
        self._submissions.create_index(
            [("quizId", 1), ("submissionToken", 1)],
            unique=True,
            partialFilterExpression={"submissionToken": {"$type": "string"}},
        )

    def get_quiz_for_student(self, quiz_id: str) -> QuizDefinition:
        return self.get_quiz_with_answer_keys(quiz_id).for_student()

    def get_quiz_with_answer_keys(self, quiz_id: str) -> QuizDefinition:
        doc = self._quizzes.find_one({"_id": _object_id(quiz_id)})
        if doc is None:
            raise NotFoundError(f"Quiz {quiz_id} not found.")
        return quiz_from_document(doc)

    def find_quiz_by_pin(self, pin: str) -> QuizDefinition:
        doc = self._quizzes.find_one({"pin": pin.strip().upper()})
        if doc is None:
            raise NotFoundError("Invalid PIN code.")
        return quiz_from_document(doc).for_student()

    def create_quiz(self, quiz: QuizDefinition) -> QuizDefinition:
        prepared = validate_quiz(quiz)
        pin = generate_unique_pin(
            lambda candidate: self._quizzes.count_documents({"pin": candidate}, limit=1) > 0,
            self._rng,
        )
        prepared = replace(prepared, pin=pin)
        now = datetime.utcnow()
        document = quiz_to_document(prepared)
        document.update(createdAt=now, updatedAt=now)
        result = self._quizzes.insert_one(document)
        logger.info("Created quiz %s (%s) with PIN %s", result.inserted_id, prepared.title, pin)
        return replace(prepared, id=str(result.inserted_id))

    def list_quizzes(self, created_by: str | None = None) -> list[QuizDefinition]:
        query: dict[str, Any] = {}
        if created_by is not None:
            query["createdBy"] = _reference(created_by)
        cursor = self._quizzes.find(query).sort(_NEWEST_FIRST)
        return [quiz_from_document(doc).for_student() for doc in cursor]

    def delete_quiz(self, quiz_id: str) -> None:
        result = self._quizzes.delete_one({"_id": _object_id(quiz_id)})
        if result.deleted_count == 0:
            raise NotFoundError(f"Quiz {quiz_id} not found.")

    def append_submission(self, quiz_id: str, submission: ScoredSubmission) -> str:
        document = submission_to_document(quiz_id, submission)
        now = datetime.utcnow()
        document.update(createdAt=now, updatedAt=now)
        try:
            result = self._submissions.insert_one(document)
        except DuplicateKeyError:
            existing = self._submissions.find_one(
                {"quizId": _reference(quiz_id), "submissionToken": submission.submission_token}
            )
            if existing is None:
                raise
            logger.info("Duplicate submission token for quiz %s; keeping %s", quiz_id, existing["_id"])
            return str(existing["_id"])
        return str(result.inserted_id)

    def list_submissions(self, quiz_id: str) -> list[ScoredSubmission]:
        cursor = self._submissions.find({"quizId": _reference(quiz_id)}).sort(_NEWEST_FIRST)
        return [submission_from_document(doc) for doc in cursor]

    def get_submission(self, submission_id: str) -> ScoredSubmission:
        doc = self._submissions.find_one({"_id": _object_id(submission_id)})
        if doc is None:
            raise NotFoundError(f"Submission {submission_id} not found.")
        return submission_from_document(doc)
