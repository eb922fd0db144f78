"""Two-level directory sharding for cache files."""

import os
from logging import getLogger
from typing import Optional

from fastapi_pagecache.exceptions import CacheError
from fastapi_pagecache.exceptions import DirectoryCreateError

logger = getLogger(__name__)

# Each level holds at most this many subdirectories (99 * 99 leaves in total)
SHARD_MODULO = 99


class HashDirectory:
    """Place cache files into subdirectories derived from their file names.

    The second and fourth bytes of a file name pick the two directory levels,
    so a large cache never piles all of its files into one directory. File
    names are expected to be fixed-length hashes of the cache key.

    Args:
        root: Existing directory under which shard directories are created
        directory_permissions: Mode for newly created shard directories
    """

    def __init__(self, root: str | os.PathLike, directory_permissions: int = 0o777) -> None:
        root = os.fspath(root)
        if not root or not os.path.isdir(root):
            msg = f"{root!r} is not a directory"
            raise CacheError(msg)

        self.root = os.path.join(root, "")
        self.directory_permissions = directory_permissions

    @staticmethod
    def _directory_path_by_hash(filename: str) -> str:
        name = filename.encode()
        if len(name) < 4:
            msg = f"File name {filename!r} is too short to be sharded"
            raise ValueError(msg)

        return f"{name[1] % SHARD_MODULO}/{name[3] % SHARD_MODULO}/"

    def location_only(self, filename: str) -> Optional[str]:
        """Return the shard path for ``filename`` without touching the disk.

        Returns:
            A relative path like ``"56/51/"``, or None for an empty file name
        """
        if not filename:
            return None
        return self._directory_path_by_hash(filename)

    def shard_path(self, filename: str) -> str:
        """Return the shard path for ``filename``, creating its directories.

        Raises:
            DirectoryCreateError: If the directories could not be created
        """
        path = self._directory_path_by_hash(filename)
        full_path = os.path.join(self.root, path)

        try:
            os.makedirs(full_path, mode=self.directory_permissions, exist_ok=True)
        except OSError as exc:
            msg = f"{full_path} cache directory could not be created"
            raise DirectoryCreateError(msg) from exc

        return path

    def full_path(self, filename: str) -> str:
        """Absolute file path for ``filename``, shard directories included."""
        return self.root + self.shard_path(filename) + filename

    def clear_directory(self, path: str | os.PathLike) -> bool:
        """Remove everything inside ``path`` except dot-prefixed entries.

        Children are removed before their parents. ``path`` itself is kept.

        Returns:
            False if ``path`` is not a directory, True otherwise
        """
        path = os.fspath(path)
        if not path or not os.path.isdir(path):
            return False

        self._remove_children(path)
        return True

    def _remove_children(self, path: str) -> None:
        with os.scandir(path) as entries:
            children = [entry for entry in entries if not entry.name.startswith(".")]

        for entry in children:
            if entry.is_dir(follow_symlinks=False):
                self._remove_children(entry.path)
                # Hidden entries below are kept, and so is their directory
                with os.scandir(entry.path) as remaining:
                    if any(remaining):
                        continue
                os.rmdir(entry.path)
            else:
                os.unlink(entry.path)
            logger.debug("Removed <%s>", entry.path)
