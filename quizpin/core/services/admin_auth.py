"""Service for resolving the signed-in teacher from a session token."""

from __future__ import annotations

from threading import Lock
from uuid import uuid4

from quizpin.core.errors import ValidationError
from quizpin.core.models import AdminUser


class AdminDirectory:
    """Registry of teacher accounts keyed by their opaque session token.

    The token stored in the ``admin-session`` cookie is the admin id itself;
    issuing and verifying credentials happens elsewhere.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._admins: dict[str, AdminUser] = {}

    def register(
        self,
        name: str,
        email: str,
        *,
        role: str = "admin",
        language: str = "en",
        admin_id: str | None = None,
    ) -> AdminUser:
        if not name.strip() or not email.strip():
            raise ValidationError("Name and email are required.")
        admin = AdminUser(
            id=admin_id or uuid4().hex,
            name=name.strip(),
            email=email.strip().lower(),
            role=role,
            language=language,
        )
        with self._lock:
            self._admins[admin.id] = admin
        return admin

    def resolve(self, session_token: str | None) -> AdminUser | None:
        """Return the admin behind ``session_token``, or None if it is not an admin."""
        if not session_token:
            return None
        with self._lock:
            admin = self._admins.get(session_token)
        if admin is None or admin.role != "admin":
            return None
        return admin
