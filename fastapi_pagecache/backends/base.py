from abc import ABC
from abc import abstractmethod
from typing import Any
from typing import Optional


class BaseCacheAdapter(ABC):
    """Base class for key/value cache adapters."""

    @abstractmethod
    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Retrieve a stored value, or ``default`` on a miss."""

    @abstractmethod
    def set(self, key: str, value: bytes, ttl: int) -> bool:
        """Store a value for ``ttl`` seconds."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a value from the cache."""

    @abstractmethod
    def has(self, key: str) -> bool:
        """Check whether a value is present."""

    @abstractmethod
    def clear(self) -> bool:
        """Clear all stored values."""
