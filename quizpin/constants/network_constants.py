"""Network and storage configuration for the quiz platform."""

import os

DEFAULT_HOST: str = os.environ.get("QUIZPIN_HOST", "0.0.0.0")
DEFAULT_PORT: int = int(os.environ.get("QUIZPIN_PORT", "8000"))

ADMIN_SESSION_COOKIE: str = "admin-session"
CLIENT_TIMEOUT_SECONDS: float = 15.0

STORAGE_BACKEND: str = os.environ.get("QUIZPIN_STORAGE", "memory")
DATABASE_URL: str = os.environ.get("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME: str = os.environ.get("DATABASE_NAME", "quizpin")
