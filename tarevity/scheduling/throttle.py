import time
from typing import Callable

from cachetools import TTLCache


class RefreshThrottle:
    """
    Per-key minimum interval between refreshes.

    A key is admitted once, then rejected until `min_interval` seconds have
    passed. Entries expire from a TTLCache, so the state stays bounded.
    """

    def __init__(
        self,
        min_interval: float,
        maxsize: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = min_interval
        self._seen = TTLCache(maxsize=maxsize, ttl=min_interval, timer=timer)

    def try_acquire(self, key: str) -> bool:
        if self.min_interval <= 0:
            return True
        if key in self._seen:
            return False
        self._seen[key] = True
        return True

    def reset(self, key: str):
        self._seen.pop(key, None)
