"""Cache item storage with randomized expiration."""

import math
import random
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from logging import getLogger
from typing import Optional

from fastapi_pagecache.backends import BaseCacheAdapter
from fastapi_pagecache.types import CacheItem

logger = getLogger(__name__)


class CacheItemStorage:
    """Store :class:`CacheItem` objects through a cache adapter.

    Items are written with twice the nominal TTL, so the adapter never drops
    an item before this layer decides it expired. On every read the
    expiration time is moved by a small random offset (about -6 to +6
    seconds), which keeps items created together from all expiring at the
    same moment and regenerating at once.

    Args:
        adapter: The underlying key/value adapter
        cache_expires_in: Nominal item lifetime in seconds
        rng: Random source for the expiration offset
    """

    def __init__(
        self,
        adapter: BaseCacheAdapter,
        cache_expires_in: int,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.adapter = adapter
        self.cache_expires_in = cache_expires_in
        self.rng = rng or random.Random()

    def get(self, key: str) -> Optional[CacheItem]:
        raw = self.adapter.get(key)
        if raw is None:
            return None

        try:
            item = CacheItem.from_bytes(raw)
        except ValueError as exc:
            logger.debug("Could not decode cache item <%s>: %s", key, exc)
            return None

        self.randomize_expiration_time(item)

        if self.is_expired(item):
            return None

        return item

    def set(self, item: CacheItem) -> None:
        # Double TTL so the adapter outlives the randomized expiration check
        self.adapter.set(item.key, item.to_bytes(), self.cache_expires_in * 2)

    def delete(self, item: CacheItem) -> None:
        self.adapter.delete(item.key)

    def clear(self) -> None:
        """Wipe the entire cache."""
        self.adapter.clear()

    @staticmethod
    def is_expired(item: CacheItem, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return item.expires_at is None or now > item.expires_at

    def expiration_offset(self) -> float:
        """Random offset in seconds, within +/- ``log10(1000) * 2``."""
        return math.log10(self.rng.randint(10, 1000)) * self.rng.randint(-2, 2)

    def randomize_expiration_time(self, item: CacheItem) -> None:
        """Recompute ``item.expires_at`` with a random offset.

        The base is the expiration forwarded with the item when there is one,
        otherwise the creation time plus the nominal lifetime.
        """
        base = item.expires_at or item.created_at + timedelta(seconds=self.cache_expires_in)
        item.expires_at = base + timedelta(seconds=self.expiration_offset())
