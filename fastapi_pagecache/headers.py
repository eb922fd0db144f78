"""HTTP validator headers and conditional request handling."""

from collections.abc import Mapping
from datetime import datetime
from datetime import timezone
from email.utils import format_datetime
from email.utils import parsedate_to_datetime
from logging import getLogger
from typing import NamedTuple
from typing import Optional

from fastapi_pagecache.types import CacheItem
from fastapi_pagecache.types import CacheState

logger = getLogger(__name__)

HEADER_EXPIRES = "Expires"
HEADER_LAST_MODIFIED = "Last-Modified"
HEADER_ETAG = "ETag"
HEADER_NOT_MODIFIED = "HTTP/1.1 304 Not Modified"
HEADER_IF_MODIFIED_SINCE = "If-Modified-Since"
HEADER_IF_NONE_MATCH = "If-None-Match"


class ForwardedValidators(NamedTuple):
    """Validators found on a response generated by the application."""

    last_modified: Optional[datetime] = None
    expires: Optional[datetime] = None
    etag: Optional[str] = None


def format_http_date(value: datetime) -> str:
    """Format a datetime as an RFC 1123 date, e.g. ``Sun, 06 Nov 1994 08:49:37 GMT``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP date, returning None when it is missing or malformed.

    Some clients append ``; length=NNN`` to If-Modified-Since, which is ignored.
    """
    if not value:
        return None

    value = value.split(";", 1)[0].strip()
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed HTTP date <%s>", value)
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        name = name.lower()
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


class HttpHeaders:
    """Decide how a cached item answers a request and build its headers.

    Args:
        send_headers: Emit validator headers and honor conditional requests.
            When disabled, a cached item is always served in full.
    """

    def __init__(self, send_headers: bool = True) -> None:
        self.send_headers = send_headers

    def decide(self, item: Optional[CacheItem], request_headers: Mapping[str, str]) -> CacheState:
        if item is None:
            return CacheState.MISS

        if self.send_headers and self.check_if_not_modified(item, request_headers):
            return CacheState.HIT_FRESH_304

        return CacheState.HIT_FULL_200

    @staticmethod
    def check_if_not_modified(item: CacheItem, request_headers: Mapping[str, str]) -> bool:
        """Whether the client's copy of ``item`` is still current.

        A matching ETag settles the question. The modification date is only
        compared when the ETag did not match.
        """
        not_modified = False

        if_none_match = _header(request_headers, HEADER_IF_NONE_MATCH)
        if if_none_match:
            not_modified = if_none_match == item.etag

        if not not_modified and item.last_modified is not None:
            modified_since = parse_http_date(_header(request_headers, HEADER_IF_MODIFIED_SINCE))
            if modified_since is not None:
                not_modified = int(modified_since.timestamp()) >= int(item.last_modified.timestamp())

        return not_modified

    def validator_headers(self, item: CacheItem) -> dict[str, str]:
        """Last-Modified, Expires and ETag headers for ``item``.

        Empty when header emission is disabled.
        """
        headers: dict[str, str] = {}
        if not self.send_headers:
            return headers

        if item.last_modified is not None:
            headers[HEADER_LAST_MODIFIED] = format_http_date(item.last_modified)
        if item.expires_at is not None:
            headers[HEADER_EXPIRES] = format_http_date(item.expires_at)
        if item.etag:
            headers[HEADER_ETAG] = item.etag
        return headers

    @staticmethod
    def detect_forwarded_validators(response_headers: Mapping[str, str]) -> ForwardedValidators:
        """Read Last-Modified, Expires and ETag set by the application itself."""
        return ForwardedValidators(
            last_modified=parse_http_date(_header(response_headers, HEADER_LAST_MODIFIED)),
            expires=parse_http_date(_header(response_headers, HEADER_EXPIRES)),
            etag=_header(response_headers, HEADER_ETAG) or None,
        )
