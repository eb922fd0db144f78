from pathlib import Path

import pytest

from fastapi_pagecache.backends.filesystem import FileSystemCacheAdapter
from fastapi_pagecache.config import PageCacheConfig
from fastapi_pagecache.storage import CacheItemStorage


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def adapter(cache_dir: Path) -> FileSystemCacheAdapter:
    return FileSystemCacheAdapter(cache_dir, min_file_size=10)


@pytest.fixture
def storage(adapter: FileSystemCacheAdapter) -> CacheItemStorage:
    return CacheItemStorage(adapter, cache_expires_in=60)


@pytest.fixture
def config(cache_dir: Path) -> PageCacheConfig:
    return PageCacheConfig(cache_path=cache_dir)
