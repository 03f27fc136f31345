"""Application entry point for the QuizPin API server."""

from __future__ import annotations

import argparse

from quizpin.constants.network_constants import (
    DATABASE_NAME,
    DATABASE_URL,
    DEFAULT_HOST,
    DEFAULT_PORT,
    STORAGE_BACKEND,
)
from quizpin.core.services.admin_auth import AdminDirectory
from quizpin.core.services.quiz_repository import InMemoryQuizRepository, QuizRepository
from quizpin.server.api_server import run_api_server
from quizpin.utils.logging_config import configure_logging


def build_repository(backend: str = STORAGE_BACKEND) -> QuizRepository:
    if backend == "mongo":
        from quizpin.core.services.mongo_repository import MongoQuizRepository

        return MongoQuizRepository.from_url(DATABASE_URL, DATABASE_NAME)
    if backend == "memory":
        return InMemoryQuizRepository()
    raise ValueError(f"Unknown storage backend '{backend}'.")


def main(argv: list[str] | None = None) -> None:
    """Initialize logging, wire the repository and serve the API."""
    parser = argparse.ArgumentParser(description="Run the QuizPin API server.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--storage", choices=("memory", "mongo"), default=STORAGE_BACKEND)
    parser.add_argument("--admin-name", help="Register a teacher account at startup.")
    parser.add_argument("--admin-email", default="admin@example.com")
    args = parser.parse_args(argv)

    logger = configure_logging()
    logger.info("Starting QuizPin with %s storage", args.storage)

    admins = AdminDirectory()
    if args.admin_name:
        admin = admins.register(args.admin_name, args.admin_email)
        logger.info("Teacher session token for %s: %s", admin.name, admin.id)

    run_api_server(build_repository(args.storage), admins, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
