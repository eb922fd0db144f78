"""Filesystem cache adapter."""

import hashlib
import json
import os
import re
import time
from logging import getLogger
from typing import Any
from typing import Optional

from fastapi_pagecache.exceptions import CacheWriteError
from fastapi_pagecache.exceptions import InvalidKeyError
from fastapi_pagecache.types import LockMode
from fastapi_pagecache.types import WriteOutcome

from .base import BaseCacheAdapter
from .file_writer import LockedFileWriter
from .hash_directory import HashDirectory

logger = getLogger(__name__)

RESERVED_KEY_CHARACTERS = "{}()/\\@:"
_VALID_KEY = re.compile(r"[A-Za-z0-9_.]+")


class FileSystemCacheAdapter(BaseCacheAdapter):
    """Store each cache entry in its own file under a sharded directory tree.

    An entry is a JSON header line holding the TTL and payload size, followed
    by the payload bytes. The file modification time is the write time used
    for the TTL check.

    Args:
        path: Existing, writable cache root directory
        file_lock: Lock mode used when writing entries
        min_file_size: Files smaller than this many bytes are treated as
            missing. The size covers the whole file, header line included,
            so it is not a lower bound on the payload. Truncated payloads
            are detected through the size recorded in the header.
    """

    def __init__(
        self,
        path: str | os.PathLike,
        file_lock: LockMode = LockMode.EXCLUSIVE_NONBLOCKING,
        min_file_size: int = 10,
    ) -> None:
        self.path = os.fspath(path)
        self.min_file_size = min_file_size
        self.writer = LockedFileWriter(file_lock)
        self.hash_directory = HashDirectory(self.path)

    @staticmethod
    def validate_key(key: Any) -> None:
        """Check that ``key`` is a legal cache key.

        Raises:
            InvalidKeyError: If the key is empty, not a string, or contains
                characters outside ``[A-Za-z0-9_.]``
        """
        if not isinstance(key, str) or not key:
            msg = f"Cache key must be a non-empty string, got {key!r}"
            raise InvalidKeyError(msg)

        if any(char in RESERVED_KEY_CHARACTERS for char in key):
            msg = f"Cache key {key!r} contains reserved characters"
            raise InvalidKeyError(msg)

        if not _VALID_KEY.fullmatch(key):
            msg = f"Cache key {key!r} contains invalid characters"
            raise InvalidKeyError(msg)

    @staticmethod
    def _filename(key: str) -> str:
        return hashlib.sha1(key.encode()).hexdigest()  # noqa: S324

    def _location(self, key: str) -> str:
        """File path for ``key`` without creating any directory."""
        self.validate_key(key)
        filename = self._filename(key)
        return os.path.join(self.path, self.hash_directory.location_only(filename), filename)

    def _is_valid_file(self, path: str) -> bool:
        try:
            return os.path.getsize(path) >= self.min_file_size
        except OSError:
            return False

    def has(self, key: str) -> bool:
        """Check whether an entry file of at least the minimum size exists.

        NOTE: the answer may be stale as soon as it is returned, since another
        process can write or remove the entry right after the check. Use
        :meth:`get` for anything that serves content.
        """
        return self._is_valid_file(self._location(key))

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        path = self._location(key)

        try:
            stat = os.stat(path)
            if stat.st_size < self.min_file_size:
                logger.debug("Cache entry <%s> is below the minimum size", key)
                return default

            with open(path, "rb") as fp:
                raw = fp.read()
        except OSError:
            return default

        try:
            ttl, value = self._unpack(raw)
        except ValueError as exc:
            logger.debug("Cache entry <%s> is corrupt: %s", key, exc)
            return default

        if ttl < 1 or stat.st_mtime + ttl < time.time():
            return default

        return value

    def set(self, key: str, value: bytes, ttl: int) -> bool:
        """Persist ``value`` under ``key`` for ``ttl`` seconds.

        A TTL of zero or less means the entry is already expired, so it is
        deleted instead of written.

        Raises:
            InvalidKeyError: If the key is not legal
            DirectoryCreateError: If the shard directory could not be created
            CacheWriteError: If the writer did not report success
        """
        self.validate_key(key)

        if ttl <= 0:
            return self.delete(key)

        path = self.hash_directory.full_path(self._filename(key))
        outcome = self.writer.write(path, self._pack(value, ttl))

        if outcome is not WriteOutcome.OK:
            msg = f"Cache entry <{key}> not written: {outcome.name}"
            raise CacheWriteError(msg, outcome)

        return True

    def delete(self, key: str) -> bool:
        path = self._location(key)

        try:
            os.unlink(path)
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.warning("Could not delete cache entry <%s>: %s", key, exc)
            return False

        return True

    def clear(self) -> bool:
        try:
            return self.hash_directory.clear_directory(self.path)
        except OSError as exc:
            logger.error("Could not clear cache directory <%s>: %s", self.path, exc)
            return False

    @staticmethod
    def _pack(value: bytes, ttl: int) -> bytes:
        header = json.dumps({"size": len(value), "ttl": int(ttl)}, sort_keys=True)
        return header.encode("ascii") + b"\n" + value

    @staticmethod
    def _unpack(raw: bytes) -> tuple[int, bytes]:
        header, sep, value = raw.partition(b"\n")
        if not sep:
            raise ValueError("missing header")

        meta = json.loads(header)
        if not isinstance(meta, dict):
            raise ValueError("header is not an object")

        ttl = meta.get("ttl")
        size = meta.get("size")
        if not isinstance(ttl, int) or not isinstance(size, int):
            raise ValueError("header is missing ttl or size")
        if len(value) != size:
            raise ValueError(f"expected {size} bytes, found {len(value)}")

        return ttl, value
