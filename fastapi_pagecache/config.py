"""Page cache configuration settings."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator

from fastapi_pagecache.types import LockMode


class PageCacheConfig(BaseModel):
    """Page cache configuration settings."""

    # Storage
    cache_path: Path = Field(
        ...,
        description="Existing, writable directory where cache files are stored",
    )
    cache_expiration_in_seconds: int = Field(
        default=1200,
        ge=0,
        description="Nominal cache lifetime in seconds (default: 20 minutes)",
    )
    min_cache_file_size: int = Field(
        default=10,
        ge=0,
        description=(
            "Cache files smaller than this many bytes, header line included, are considered invalid"
        ),
    )
    file_lock: LockMode = Field(
        default=LockMode.EXCLUSIVE_NONBLOCKING,
        description="Lock used when writing cache files (LockMode.NONE disables locking)",
    )

    # HTTP headers
    send_headers: bool = Field(
        default=False,
        description="Whether to send Last-Modified, Expires and ETag and answer with 304",
    )
    forward_headers: bool = Field(
        default=False,
        description="Whether to store Last-Modified, Expires and ETag set by the application",
    )

    # Behaviour
    dry_run_mode: bool = Field(
        default=False,
        description="Read and write the cache but always return the live response",
    )
    use_session: bool = Field(
        default=False,
        description="Whether session data is part of the default cache key",
    )
    session_exclude_keys: list[str] = Field(
        default_factory=list,
        description="Session keys that do not affect page content",
    )

    # Logging
    enable_log: bool = Field(
        default=False,
        description="Whether to write cache logs to log_file_path",
    )
    log_file_path: Optional[Path] = Field(
        default=None,
        description="Log file location, its directory must exist",
    )

    @field_validator("cache_path")
    @classmethod
    def _cache_path_writable(cls, value: Path) -> Path:
        if not value.is_dir() or not os.access(value, os.W_OK):
            msg = f"Cache path not writable: {value}"
            raise ValueError(msg)
        return value

    @field_validator("log_file_path")
    @classmethod
    def _log_directory_exists(cls, value: Optional[Path]) -> Optional[Path]:
        if value is not None and not value.parent.is_dir():
            msg = f"Log file directory does not exist for the path provided: {value}"
            raise ValueError(msg)
        return value
