"""Session authentication with HMAC-signed tokens.

Token format: ``<user_id>.<issued_at>.<signature>`` where signature is
HMAC-SHA256 over ``<user_id>.<issued_at>`` with the service secret.
Tokens arrive as ``Authorization: Bearer <token>`` or in the ``session``
cookie.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Optional

from workspace_git.errors import AuthenticationError

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"
DEFAULT_MAX_AGE = 86400     # 24 hours
CLOCK_SKEW_SECONDS = 300    # tolerated future-dated issue time


def compute_signature(payload: str, secret: bytes) -> str:
    """HMAC-SHA256 hex digest of *payload*."""
    return hmac.new(secret, payload.encode("utf-8"), hashlib.sha256).hexdigest()


class SessionAuthenticator:
    """Issues and verifies session tokens."""

    def __init__(self, secret: bytes | str, max_age: int = DEFAULT_MAX_AGE):
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        if not secret:
            raise ValueError("Session secret must not be empty")
        self._secret = secret
        self._max_age = max_age

    def issue(self, user_id: str, issued_at: Optional[int] = None) -> str:
        if not user_id or "." in user_id:
            raise ValueError("user_id must be non-empty and contain no '.'")
        ts = int(time.time()) if issued_at is None else issued_at
        payload = f"{user_id}.{ts}"
        return f"{payload}.{compute_signature(payload, self._secret)}"

    def verify(self, token: str) -> str:
        """Return the user id in *token*.

        Raises:
            AuthenticationError: If the token is malformed, forged, or expired.
        """
        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            raise AuthenticationError("Malformed session token")
        user_id, ts_raw, signature = parts

        expected = compute_signature(f"{user_id}.{ts_raw}", self._secret)
        if not hmac.compare_digest(expected, signature):
            raise AuthenticationError("Invalid session signature")

        try:
            issued_at = int(ts_raw)
        except ValueError:
            raise AuthenticationError("Malformed session token") from None

        now = time.time()
        if issued_at - now > CLOCK_SKEW_SECONDS:
            raise AuthenticationError("Session issued in the future")
        if now - issued_at > self._max_age:
            raise AuthenticationError("Session expired")
        return user_id

    def authenticate(self, request) -> str:
        """Resolve the current user from a Flask/werkzeug request.

        Raises:
            AuthenticationError: If no valid session is present.
        """
        token = None
        header = request.headers.get("Authorization", "")
        if header.startswith("Bearer "):
            token = header[len("Bearer "):].strip()
        if not token:
            token = request.cookies.get(SESSION_COOKIE)
        if not token:
            raise AuthenticationError("No session")
        try:
            return self.verify(token)
        except AuthenticationError as exc:
            logger.info("Rejected session token: %s", exc)
            raise
