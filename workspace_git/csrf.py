"""Origin-based CSRF validation for state-changing requests.

A request passes when its ``Origin`` header (or, when absent, the origin
of its ``Referer``) matches one of the allowed origins.  With no allowed
origins configured, the request's own host is the only allowed origin.
Requests carrying neither header are rejected.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional
from urllib.parse import urlparse

from workspace_git.errors import CsrfError

logger = logging.getLogger(__name__)

SAFE_METHODS: frozenset[str] = frozenset({"GET", "HEAD", "OPTIONS"})


def normalize_origin(value: str) -> Optional[str]:
    """Reduce a URL to ``scheme://host[:port]`` (lowercase), or None."""
    parsed = urlparse(value.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    try:
        port = parsed.port
    except ValueError:
        return None
    default_port = 443 if parsed.scheme == "https" else 80
    origin = f"{parsed.scheme}://{parsed.hostname.lower()}"
    if port and port != default_port:
        origin += f":{port}"
    return origin


class CsrfValidator:
    """Validates request origin against an allow-list."""

    def __init__(self, allowed_origins: Iterable[str] = ()):
        normalized = {normalize_origin(o) for o in allowed_origins}
        self._allowed = frozenset(o for o in normalized if o)

    @property
    def allowed_origins(self) -> frozenset[str]:
        return self._allowed

    def validate(self, request) -> None:
        """Raise CsrfError unless *request* comes from an allowed origin."""
        if request.method.upper() in SAFE_METHODS:
            return

        source = request.headers.get("Origin") or request.headers.get("Referer")
        if not source or source == "null":
            logger.warning("CSRF: missing Origin/Referer on %s %s",
                           request.method, request.path)
            raise CsrfError("Missing request origin")

        origin = normalize_origin(source)
        allowed = self._allowed or {normalize_origin(request.host_url)}
        if origin is None or origin not in allowed:
            logger.warning("CSRF: rejected origin %r on %s", source, request.path)
            raise CsrfError("Origin not allowed")
