"""Cookie-based session authentication.

Tokens are ``<random>.<hmac>``; the signature is checked before the
in-process session table is consulted, so forged tokens never hit it.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

SESSION_COOKIE = "session"


@dataclass(frozen=True, slots=True)
class Session:
    user_id: str
    email: str
    expires_at: float


class SessionAuth:
    """Signed session tokens backed by an in-memory table."""

    def __init__(self, secret_key: str, max_age: int = 86400) -> None:
        self._secret = secret_key.encode()
        self._max_age = max_age
        self._sessions: dict[str, Session] = {}

    @property
    def max_age(self) -> int:
        return self._max_age

    def create_session(self, user_id: str, email: str) -> str:
        """Start a session for ``user_id`` and return the signed token."""
        raw = secrets.token_urlsafe(32)
        token = f"{raw}.{self._sign(raw)}"
        self._sessions[token] = Session(
            user_id=user_id, email=email, expires_at=time.time() + self._max_age
        )
        logger.info("session_created", user_id=user_id)
        return token

    def validate_session(self, token: str | None) -> Session | None:
        """Return the live session for ``token``, or None."""
        if not token or "." not in token:
            return None
        raw, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(signature, self._sign(raw)):
            return None

        session = self._sessions.get(token)
        if session is None:
            return None
        if time.time() > session.expires_at:
            self.destroy_session(token)
            return None
        return session

    def destroy_session(self, token: str) -> None:
        if self._sessions.pop(token, None) is not None:
            logger.info("session_destroyed")

    def _sign(self, data: str) -> str:
        return hmac.new(self._secret, data.encode(), hashlib.sha256).hexdigest()[:32]
