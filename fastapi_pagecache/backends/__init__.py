"""Cache adapter implementations for FastAPI-PageCache."""

from .base import BaseCacheAdapter
from .file_writer import LockedFileWriter
from .filesystem import FileSystemCacheAdapter
from .hash_directory import HashDirectory

__all__ = [
    "BaseCacheAdapter",
    "FileSystemCacheAdapter",
    "HashDirectory",
    "LockedFileWriter",
]
