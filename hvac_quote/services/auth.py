"""Admin session tokens.

A single shared admin password trades for an opaque bearer token. Tokens
live in process memory and expire after ``ttl_seconds``; logging out revokes
one early.
"""

from __future__ import annotations

import hmac
import secrets
import time
from collections.abc import Callable

import structlog

logger = structlog.get_logger()


class AdminSessions:
    def __init__(
        self,
        password: str,
        ttl_seconds: int = 43200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._password = password
        self._ttl = ttl_seconds
        self._clock = clock
        self._expires: dict[str, float] = {}

    def authenticate(self, password: str) -> str | None:
        """Return a fresh token, or None when the password is wrong.

        An empty configured password disables admin login entirely.
        """
        if not self._password or not hmac.compare_digest(
            password.encode(), self._password.encode()
        ):
            logger.warning("admin_login_denied")
            return None
        now = self._clock()
        self._prune(now)
        token = secrets.token_urlsafe(32)
        self._expires[token] = now + self._ttl
        logger.info("admin_login")
        return token

    def check(self, token: str | None) -> bool:
        if not token:
            return False
        expires = self._expires.get(token)
        if expires is None:
            return False
        if self._clock() >= expires:
            del self._expires[token]
            return False
        return True

    def revoke(self, token: str) -> None:
        self._expires.pop(token, None)

    def _prune(self, now: float) -> None:
        expired = [token for token, expires in self._expires.items() if now >= expires]
        for token in expired:
            del self._expires[token]
        if expired:
            logger.debug("admin_sessions_pruned", count=len(expired))
