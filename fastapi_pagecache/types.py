"""Type definitions and type aliases for FastAPI-PageCache."""

import base64
import fcntl
import hashlib
import json
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timezone
from enum import Enum
from enum import IntEnum
from typing import Any
from typing import Optional


class WriteOutcome(IntEnum):
    """Result of a locked file write attempt."""

    OK = 1
    ERROR_NO_PATH = 2
    ERROR_OPEN = 3
    ERROR_WRITE = 4
    ERROR_LOCK = 5


class LockMode(IntEnum):
    """File lock used by writers, expressed as ``flock()`` operation flags."""

    NONE = 0
    EXCLUSIVE = fcntl.LOCK_EX
    EXCLUSIVE_NONBLOCKING = fcntl.LOCK_EX | fcntl.LOCK_NB


class CacheState(str, Enum):
    """Outcome of the conditional request check for a single request."""

    MISS = "miss"
    HIT_FRESH_304 = "hit_fresh_304"
    HIT_FULL_200 = "hit_full_200"


def utcnow() -> datetime:
    """Current UTC time truncated to whole seconds, as HTTP dates are."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _to_timestamp(value: Optional[datetime]) -> Optional[int]:
    return int(value.timestamp()) if value is not None else None


def _from_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, int):
        raise ValueError(f"Invalid timestamp: {value!r}")
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"Timestamp out of range: {value!r}") from exc


@dataclass
class CacheItem:
    """A single cached response.

    Args:
        key: Fingerprint of the request variant
        content: Raw response body
        created_at: Set once when the item is first materialized
        last_modified: HTTP validator, defaults to ``created_at`` when unset
        expires_at: Expiration time, recomputed on every read
        etag: Opaque validator, derived from ``last_modified`` when unset
        media_type: Content type of the captured response
    """

    key: str
    content: bytes = b""
    created_at: datetime = field(default_factory=utcnow)
    last_modified: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    etag: Optional[str] = None
    media_type: Optional[str] = None

    def apply_default_validators(self) -> None:
        """Fill in ``last_modified`` and ``etag`` when the origin gave none."""
        if self.last_modified is None:
            self.last_modified = self.created_at
        if not self.etag:
            self.etag = make_etag(self.last_modified)

    def to_bytes(self) -> bytes:
        data = {
            "key": self.key,
            "created_at": _to_timestamp(self.created_at),
            "last_modified": _to_timestamp(self.last_modified),
            "expires_at": _to_timestamp(self.expires_at),
            "etag": self.etag,
            "media_type": self.media_type,
            "content": base64.b64encode(self.content).decode("ascii"),
        }
        return json.dumps(data, sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "CacheItem":
        """Decode an item produced by :meth:`to_bytes`.

        Raises:
            ValueError: If the data is not a well-formed item
        """
        data = json.loads(raw.decode("utf-8"))
        if not isinstance(data, dict) or not isinstance(data.get("key"), str):
            raise ValueError("Cache item is missing its key")

        created_at = _from_timestamp(data.get("created_at"))
        if created_at is None:
            raise ValueError("Cache item is missing its creation time")

        etag = data.get("etag")
        if etag is not None and not isinstance(etag, str):
            raise ValueError("Cache item has an invalid ETag")

        content = data.get("content", "")
        if not isinstance(content, str):
            raise ValueError("Cache item has invalid content")

        media_type = data.get("media_type")
        if media_type is not None and not isinstance(media_type, str):
            raise ValueError("Cache item has an invalid media type")

        return cls(
            key=data["key"],
            content=base64.b64decode(content, validate=True),
            created_at=created_at,
            last_modified=_from_timestamp(data.get("last_modified")),
            expires_at=_from_timestamp(data.get("expires_at")),
            etag=etag,
            media_type=media_type,
        )


def make_etag(last_modified: datetime) -> str:
    """Build a strong ETag from a modification time."""
    digest = hashlib.md5(str(int(last_modified.timestamp())).encode())  # noqa: S324
    return f'"{digest.hexdigest()}"'
