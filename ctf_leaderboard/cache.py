"""
Read cache for derived scoreboard views.
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ReadCache:
    """In-memory cache with TTL and explicit invalidation."""

    def __init__(
        self,
        ttl: float = 30,
    ) -> None:
        self.ttl = ttl
        self._entries: Dict[str, Tuple[Any, float]] = {}
        # Bumped on every invalidation so in-flight reads can detect staleness
        self.generation = 0

    @staticmethod
    def make_key(*args: Any) -> str:
        """
        Generate a cache key from arguments.

        @param args: Variable arguments to create cache key from
        @return: String cache key generated from arguments
        """
        return ":".join(str(arg) for arg in args)

    def get(
        self,
        key: str,
    ) -> Optional[Any]:
        """
        Get value from cache if valid.

        @param key: String cache key to lookup
        @return: Cached data if valid, None if expired or not found
        """
        if key in self._entries:
            data, timestamp = self._entries[key]

            if time.monotonic() - timestamp < self.ttl:
                return data
            else:
                del self._entries[key]
        return None

    def set(
        self,
        key: str,
        data: Any,
        generation: Optional[int] = None,
    ) -> bool:
        """
        Store a value with the current timestamp.

        @param key: String cache key to store data under
        @param data: Data to cache
        @param generation: Generation observed when the read started; the value is
            dropped if the cache was invalidated since
        @return: True if the value was stored
        """
        if generation is not None and generation != self.generation:
            logger.debug(f"Discarding stale cache value for {key}")
            return False
        if self.ttl <= 0:
            return False

        self._entries[key] = (data, time.monotonic())
        return True

    def invalidate(self) -> None:
        """Drop every entry and start a new generation."""
        self.generation += 1
        self._entries.clear()
