"""Cache key strategies."""

import hashlib
import json
from collections.abc import Iterable
from collections.abc import Mapping
from typing import Any
from typing import Optional
from typing import Protocol
from typing import runtime_checkable

from fastapi import Request

# Separates key parts; "|||" cannot be confused with a port in the host (e.g. 127.0.0.1:8000)
CACHE_KEY_SEPARATOR = "|||"


@runtime_checkable
class KeyStrategy(Protocol):
    """Compute the cache key for a request."""

    def compute_key(self, request: Request) -> str: ...


def serialize_session(
    session: Optional[Mapping[str, Any]],
    exclude_keys: Iterable[str] = (),
) -> str:
    """Serialize session data for use in a cache key, minus excluded keys."""
    if not session:
        return ""

    excluded = set(exclude_keys)
    data = {key: value for key, value in session.items() if key not in excluded}
    return json.dumps(data, sort_keys=True, default=str)


class DefaultStrategy:
    """Key on method, host, path and query string, and optionally the session.

    Session data is read from ``request.scope["session"]`` (as populated by
    Starlette's ``SessionMiddleware``) only when ``use_session`` is enabled.
    """

    def __init__(self, use_session: bool = False, session_exclude_keys: Iterable[str] = ()) -> None:
        self.use_session = use_session
        self.session_exclude_keys = tuple(session_exclude_keys)

    def compute_key(self, request: Request) -> str:
        return hashlib.md5(self.raw_key(request).encode()).hexdigest()  # noqa: S324

    def raw_key(self, request: Request) -> str:
        """Readable key before hashing: ``method|||host|||path|||query[|||session]``."""
        parts = [
            request.method,
            request.headers.get("host", "unknown"),
            request.url.path,
            str(request.query_params),
        ]
        if self.use_session:
            parts.append(
                serialize_session(request.scope.get("session"), self.session_exclude_keys)
            )

        return CACHE_KEY_SEPARATOR.join(parts)
