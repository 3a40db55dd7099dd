"""TTL cache for per-store access statistics.

Entries expire lazily: a read that finds a stale entry deletes it and
reports a miss. There is no background sweep and no size cap; the number
of keys is bounded by the number of stores.

Every write or invalidation bumps the key's generation. A caller that
computes a snapshot outside the lock captures the generation first and
stores with ``set_if_generation``, so a result computed before an
invalidation is never written back.
"""
import threading
import time
from collections.abc import Callable

from loguru import logger

from storestats.schemas.access_stats import AccessStatsResponse

STATS_CACHE_TTL = 300  # 5 minutes

Generation = tuple[int, int]


class StatsCache:
    def __init__(self, ttl: float = STATS_CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        # store_id -> (payload, produced_at)
        self._entries: dict[int, tuple[AccessStatsResponse, float]] = {}
        self._generations: dict[int, int] = {}
        self._epoch = 0  # bumped by clear()
        self._counter = 0
        self._lock = threading.Lock()

    def _bump(self, store_id: int) -> None:
        self._counter += 1
        self._generations[store_id] = self._counter

    def get(self, store_id: int) -> AccessStatsResponse | None:
        with self._lock:
            entry = self._entries.get(store_id)
            if entry is None:
                return None
            payload, produced_at = entry
            age = self._clock() - produced_at
            if age > self.ttl:
                del self._entries[store_id]
                logger.debug(f"Cache expirada para store {store_id}")
                return None
        logger.debug(f"Cache hit para store {store_id} (edad {round(age)}s)")
        return payload

    def generation(self, store_id: int) -> Generation:
        with self._lock:
            return self._epoch, self._generations.get(store_id, 0)

    def set(self, store_id: int, payload: AccessStatsResponse) -> None:
        with self._lock:
            self._entries[store_id] = (payload, self._clock())
            self._bump(store_id)
        logger.debug(f"Cache actualizada para store {store_id}")

    def set_if_generation(self, store_id: int, generation: Generation, payload: AccessStatsResponse) -> bool:
        with self._lock:
            if (self._epoch, self._generations.get(store_id, 0)) != generation:
                stored = False
            else:
                self._entries[store_id] = (payload, self._clock())
                self._bump(store_id)
                stored = True
        if stored:
            logger.debug(f"Cache actualizada para store {store_id}")
        else:
            logger.debug(f"Resultado descartado para store {store_id}: cache invalidada durante el cálculo")
        return stored

    def invalidate(self, store_id: int) -> None:
        with self._lock:
            self._entries.pop(store_id, None)
            self._bump(store_id)
        logger.debug(f"Cache limpiada para store {store_id}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
