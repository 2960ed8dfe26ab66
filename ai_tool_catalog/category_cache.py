"""Short-lived cache of the category list offered to the extractor."""

import logging
import threading
import time
from typing import Callable
from typing import List
from typing import Optional

from .schemas import CategoryRef

logger = logging.getLogger(__name__)

# Cache configuration
DEFAULT_TTL_SECONDS = 60.0


class CategoryCache:
    """TTL cache with synchronous invalidation.

    Expiry alone is not enough: the store calls ``invalidate()`` from every
    category mutation so the extractor is never offered a deleted id.
    """

    def __init__(
        self,
        loader: Callable[[], List[CategoryRef]],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Optional[List[CategoryRef]] = None
        self._loaded_at = 0.0
        self._generation = 0

    def get(self) -> List[CategoryRef]:
        """Return a snapshot of the categories, reloading when stale or invalidated."""
        with self._lock:
            if self._entries is not None and self._clock() - self._loaded_at < self._ttl:
                return list(self._entries)
            generation = self._generation

        entries = self._loader()

        with self._lock:
            # An invalidate() that raced with the load wins; don't cache stale data
            if generation == self._generation:
                self._entries = list(entries)
                self._loaded_at = self._clock()
        logger.debug(f"Loaded {len(entries)} categories into cache")
        return list(entries)

    def invalidate(self) -> None:
        with self._lock:
            self._entries = None
            self._generation += 1

    def is_warm(self) -> bool:
        with self._lock:
            return self._entries is not None and self._clock() - self._loaded_at < self._ttl
