"""Quiz-related constants shared across the core and API layers."""

NO_ANSWER_TEXT: str = "No answer"
MIN_ANSWERS_PER_QUESTION: int = 2
MAX_ANSWERS_PER_QUESTION: int = 6
MAX_TIME_LIMIT_MINUTES: int = 1440  # 24 hours
SUPPORTED_LANGUAGES: tuple[str, ...] = ("en", "fr")

PIN_LENGTH: int = 6
PIN_ALPHABET: str = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
PIN_MAX_ATTEMPTS: int = 100

TICK_INTERVAL_SECONDS: float = 1.0
TIME_WARNING_WINDOW_SECONDS: int = 60
