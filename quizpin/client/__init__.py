"""Client-side collaborators for student sessions."""

from .http_gateway import HttpQuizClient

__all__ = ["HttpQuizClient"]
