"""FastAPI-PageCache: full page filesystem caching for FastAPI."""

from .cache import PageCache as PageCache
from .config import PageCacheConfig as PageCacheConfig
from .headers import HttpHeaders as HttpHeaders
from .storage import CacheItemStorage as CacheItemStorage
from .strategy import DefaultStrategy as DefaultStrategy
from .strategy import KeyStrategy as KeyStrategy
from .types import CacheItem as CacheItem
from .types import CacheState as CacheState
from .types import LockMode as LockMode

__all__ = [
    "CacheItem",
    "CacheItemStorage",
    "CacheState",
    "DefaultStrategy",
    "HttpHeaders",
    "KeyStrategy",
    "LockMode",
    "PageCache",
    "PageCacheConfig",
]
