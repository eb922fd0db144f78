from fastapi_pagecache.types import WriteOutcome


class PageCacheError(Exception):
    """Base class for all exceptions in FastAPI-PageCache."""


class CacheError(PageCacheError):
    """Exception raised for cache-related errors."""


class InvalidKeyError(CacheError, ValueError):
    """Raised when a cache key is not a legal value."""


class DirectoryCreateError(CacheError):
    """Raised when a shard directory could not be created."""


class CacheWriteError(CacheError):
    """Raised when a cache entry could not be written.

    Args:
        message: Human readable description
        outcome: The writer outcome that caused the failure
    """

    def __init__(self, message: str, outcome: WriteOutcome) -> None:
        super().__init__(message)
        self.outcome = outcome

    @property
    def is_lock_contention(self) -> bool:
        """Whether another writer held the lock (old content was kept)."""
        return self.outcome is WriteOutcome.ERROR_LOCK
