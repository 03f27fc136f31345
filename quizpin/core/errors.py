"""Exception types raised by the quiz core.

Each class also derives from the builtin the HTTP layer already knows how to
translate, so ``except ValueError`` style handlers keep working.
"""

from __future__ import annotations


class QuizError(Exception):
    """Base class for all quiz platform errors."""


class ValidationError(QuizError, ValueError):
    """Input was rejected; no state was changed."""


class NotFoundError(QuizError, LookupError):
    """A quiz, PIN or submission could not be resolved."""


class SessionStateError(QuizError, RuntimeError):
    """The operation is not allowed in the session's current phase."""


class SubmissionFailure(QuizError, RuntimeError):
    """Submitting the answers failed; the same snapshot may be retried."""

    retryable: bool = True

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvariantViolation(QuizError, AssertionError):
    """A programming error, not a user-facing condition."""
