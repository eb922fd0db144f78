"""Locked writes of cache files."""

import fcntl
import os
from logging import getLogger

from fastapi_pagecache.types import LockMode
from fastapi_pagecache.types import WriteOutcome

logger = getLogger(__name__)


class LockedFileWriter:
    """Write a file under an advisory ``flock()`` lock.

    The file is opened without truncation. It is only truncated once the lock
    (if any) is held, so readers keep seeing the previous complete content
    while another writer owns the file.
    """

    def __init__(self, lock_mode: LockMode = LockMode.EXCLUSIVE_NONBLOCKING) -> None:
        self.lock_mode = lock_mode

    def write(self, path: str, data: bytes) -> WriteOutcome:
        if not path:
            return WriteOutcome.ERROR_NO_PATH

        try:
            fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o666)
        except OSError as exc:
            logger.warning("Could not open <%s>: %s", path, exc)
            return WriteOutcome.ERROR_OPEN

        with os.fdopen(fd, "r+b", buffering=0) as fp:
            if self.lock_mode == LockMode.NONE:
                return self._truncate_and_write(fp, data)

            try:
                fcntl.flock(fp.fileno(), int(self.lock_mode))
            except OSError:
                # Another writer owns the file, leave its content alone
                logger.debug("Lock not granted for <%s>", path)
                return WriteOutcome.ERROR_LOCK

            try:
                return self._truncate_and_write(fp, data)
            finally:
                fcntl.flock(fp.fileno(), fcntl.LOCK_UN)

    @staticmethod
    def _truncate_and_write(fp, data: bytes) -> WriteOutcome:
        try:
            fp.truncate(0)
            view = memoryview(data)
            while view:
                view = view[fp.write(view):]
        except OSError as exc:
            logger.warning("Could not write <%s>: %s", fp.name, exc)
            return WriteOutcome.ERROR_WRITE
        return WriteOutcome.OK


def write(path: str, data: bytes, lock_mode: LockMode = LockMode.EXCLUSIVE_NONBLOCKING) -> WriteOutcome:
    """Shortcut for ``LockedFileWriter(lock_mode).write(path, data)``."""
    return LockedFileWriter(lock_mode).write(path, data)
