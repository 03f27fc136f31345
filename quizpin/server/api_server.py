"""FastAPI server that exposes the student and teacher endpoints."""

from __future__ import annotations

import logging
from threading import Thread

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
import uvicorn

from quizpin.constants.about import APP_NAME, APP_VERSION
from quizpin.constants.network_constants import ADMIN_SESSION_COOKIE, DEFAULT_HOST, DEFAULT_PORT
from quizpin.core.errors import NotFoundError, QuizError, ValidationError
from quizpin.core.models import AdminUser, Question, QuizDefinition
from quizpin.core.report_renderer import render_class_report_html, render_student_report_html
from quizpin.core.services.admin_auth import AdminDirectory
from quizpin.core.services.quiz_repository import QuizRepository
from quizpin.core.services.scoring import ScoringService
from quizpin.server.schemas import (
    JoinPayload,
    QuizPayload,
    SubmitPayload,
    quiz_to_json,
    submission_to_json,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _describe_request_errors(exc: RequestValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid value")
        problems.append(f"{location}: {message}" if location else message)
    return "; ".join(problems) or "Invalid request"


def _get_repository_dependency(repository: QuizRepository):
    def dependency() -> QuizRepository:
        return repository

    return dependency


def _get_admin_dependency(admins: AdminDirectory):
    def dependency(request: Request) -> AdminUser:
        admin = admins.resolve(request.cookies.get(ADMIN_SESSION_COOKIE))
        if admin is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return admin

    return dependency


def _require_owner(quiz: QuizDefinition, admin: AdminUser) -> None:
    if quiz.created_by is not None and quiz.created_by != admin.id:
        raise HTTPException(status_code=403, detail="This quiz belongs to another teacher")


def create_api_app(repository: QuizRepository, admins: AdminDirectory | None = None) -> FastAPI:
    """Create a FastAPI application wired to the provided repository."""
    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION)
    admins = admins or AdminDirectory()
    repository_dep = _get_repository_dependency(repository)
    admin_dep = _get_admin_dependency(admins)
    scoring = ScoringService(repository)

    @app.exception_handler(HTTPException)
    async def handle_http_error(_: Request, exc: HTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, _describe_request_errors(exc))

    @app.exception_handler(ValidationError)
    async def handle_validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(QuizError)
    async def handle_quiz_error(_: Request, exc: QuizError) -> JSONResponse:
        logger.error("Unhandled quiz error: %s", exc)
        return _error(500, "Request failed")

    @app.get("/")
    def root() -> dict[str, object]:
        return {"success": True, "data": {"name": APP_NAME, "version": APP_VERSION}}

    # --- Student endpoints ---

    @app.post("/api/quizzes/join")
    def join_quiz(payload: JoinPayload, repo: QuizRepository = Depends(repository_dep)) -> dict[str, object]:
        pin = (payload.pin or "").strip()
        user_name = (payload.user_name or "").strip()
        if not pin or not user_name:
            raise ValidationError("PIN and user name are required")
        quiz = repo.find_quiz_by_pin(pin)
        logger.info("%s joined quiz %s", user_name, quiz.id)
        return {"success": True, "data": quiz_to_json(quiz)}

    @app.get("/api/quizzes/{quiz_id}")
    def get_quiz(quiz_id: str, repo: QuizRepository = Depends(repository_dep)) -> dict[str, object]:
        return {"success": True, "data": quiz_to_json(repo.get_quiz_for_student(quiz_id))}

    @app.post("/api/quizzes/{quiz_id}/submit")
    def submit_quiz(
        quiz_id: str,
        payload: SubmitPayload,
        repo: QuizRepository = Depends(repository_dep),
    ) -> dict[str, object]:
        if payload.answers is None or not (payload.user_name or "").strip():
            raise ValidationError("Answers and user name are required")
        submission = scoring.submit(
            quiz_id,
            payload.user_name or "",
            payload.answers,
            time_spent_seconds=payload.time_spent,
            was_auto_submitted=payload.was_auto_submitted,
            submission_token=payload.submission_token,
        )
        quiz = repo.get_quiz_for_student(quiz_id)
        data = submission_to_json(submission)
        data.update(
            quizTitle=quiz.title,
            schoolName=quiz.school_name,
            teacherName=quiz.teacher_name,
            major=quiz.major,
            submissionId=submission.id,
        )
        return {"success": True, "data": data}

    @app.get("/api/submissions/{submission_id}/report", response_class=HTMLResponse)
    def submission_report(submission_id: str, repo: QuizRepository = Depends(repository_dep)) -> str:
        submission = repo.get_submission(submission_id)
        quiz = repo.get_quiz_for_student(submission.quiz_id)
        return render_student_report_html(quiz, submission)

    # --- Teacher endpoints ---

    @app.get("/api/quizzes")
    def list_quizzes(repo: QuizRepository = Depends(repository_dep)) -> dict[str, object]:
        return {"success": True, "data": [quiz_to_json(q) for q in repo.list_quizzes()]}

    @app.post("/api/quizzes", status_code=201)
    def create_quiz(
        payload: QuizPayload,
        admin: AdminUser = Depends(admin_dep),
        repo: QuizRepository = Depends(repository_dep),
    ) -> dict[str, object]:
        definition = QuizDefinition(
            id="",
            title=payload.title,
            questions=[
                Question(text=q.text, answers=list(q.answers), correct_answer_index=q.correct_answer_index)
                for q in payload.questions
            ],
            has_time_limit=payload.has_time_limit,
            time_limit_minutes=payload.time_limit,
            school_name=payload.school_name,
            teacher_name=payload.teacher_name,
            major=payload.major,
            language=admin.language or "en",
            created_by=admin.id,
            class_id=payload.class_id,
        )
        quiz = repo.create_quiz(definition)
        return {"success": True, "data": quiz_to_json(quiz, include_answer_keys=True)}

    @app.delete("/api/quizzes/{quiz_id}")
    def delete_quiz(
        quiz_id: str,
        admin: AdminUser = Depends(admin_dep),
        repo: QuizRepository = Depends(repository_dep),
    ) -> dict[str, object]:
        _require_owner(repo.get_quiz_with_answer_keys(quiz_id), admin)
        repo.delete_quiz(quiz_id)
        return {"success": True, "data": {}}

    @app.get("/api/quizzes/{quiz_id}/submissions")
    def list_submissions(
        quiz_id: str,
        admin: AdminUser = Depends(admin_dep),
        repo: QuizRepository = Depends(repository_dep),
    ) -> dict[str, object]:
        quiz = repo.get_quiz_with_answer_keys(quiz_id)
        _require_owner(quiz, admin)
        submissions = repo.list_submissions(quiz_id)
        return {
            "success": True,
            "data": {
                "quiz": {
                    "_id": quiz.id,
                    "title": quiz.title,
                    "pin": quiz.pin,
                    "schoolName": quiz.school_name,
                    "teacherName": quiz.teacher_name,
                    "major": quiz.major,
                },
                "submissions": [submission_to_json(s) for s in submissions],
            },
        }

    @app.get("/api/quizzes/{quiz_id}/report", response_class=HTMLResponse)
    def class_report(
        quiz_id: str,
        admin: AdminUser = Depends(admin_dep),
        repo: QuizRepository = Depends(repository_dep),
    ) -> str:
        quiz = repo.get_quiz_with_answer_keys(quiz_id)
        _require_owner(quiz, admin)
        return render_class_report_html(quiz, repo.list_submissions(quiz_id))

    return app


def start_api_server(
    repository: QuizRepository,
    admins: AdminDirectory | None = None,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Thread:
    """Start the FastAPI server in a background daemon thread."""
    app = create_api_app(repository, admins)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="QuizApiServer", daemon=True)
    thread.start()
    return thread


def run_api_server(
    repository: QuizRepository,
    admins: AdminDirectory | None = None,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Run the API server in the foreground until interrupted."""
    uvicorn.run(create_api_app(repository, admins), host=host, port=port, log_level="info")
