"""
Revocation stores for session tokens.

A revoked token stays in the store only until its natural expiry; after
that the signature check rejects it anyway, so the entry is dropped.
Stores are owned by the TokenService that receives them.
"""

import heapq
import threading
import time
from typing import Dict, List, Optional, Protocol, Tuple

from redis import Redis

from nursecred.core.config import settings
from nursecred.core.logging import get_logger

logger = get_logger(__name__)


class RevocationStore(Protocol):
    def add(self, token_id: str, expires_at: float) -> None:
        ...

    def contains(self, token_id: str) -> bool:
        ...


class InMemoryRevocationStore:
    """
    Process-local store safe for concurrent requests.

    Expired entries are purged lazily on every add and lookup, using a
    min-heap ordered by expiry so each purge only touches stale entries.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, float] = {}
        self._expiry_heap: List[Tuple[float, str]] = []

    def _purge(self, now: float) -> None:
        while self._expiry_heap and self._expiry_heap[0][0] <= now:
            expires_at, token_id = heapq.heappop(self._expiry_heap)
            # A later re-add may have extended the entry.
            if self._entries.get(token_id) == expires_at:
                del self._entries[token_id]

    def add(self, token_id: str, expires_at: float) -> None:
        with self._lock:
            now = self._clock()
            self._purge(now)
            if expires_at <= now:
                return
            current = self._entries.get(token_id)
            if current is not None and current >= expires_at:
                return
            self._entries[token_id] = expires_at
            heapq.heappush(self._expiry_heap, (expires_at, token_id))

    def contains(self, token_id: str) -> bool:
        with self._lock:
            self._purge(self._clock())
            return token_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._entries)


class RedisRevocationStore:
    """Store shared between processes; Redis key TTLs do the eviction."""

    def __init__(self, redis_conn: Redis, prefix: str = "revoked-token:", clock=time.time):
        self._redis = redis_conn
        self._prefix = prefix
        self._clock = clock

    def add(self, token_id: str, expires_at: float) -> None:
        ttl = int(expires_at - self._clock()) + 1
        if ttl <= 0:
            return
        self._redis.set(f"{self._prefix}{token_id}", "1", ex=ttl)

    def contains(self, token_id: str) -> bool:
        return bool(self._redis.exists(f"{self._prefix}{token_id}"))


def build_revocation_store(backend: Optional[str] = None) -> RevocationStore:
    """Create the store selected by TOKEN_REVOCATION_BACKEND."""
    backend = backend or settings.TOKEN_REVOCATION_BACKEND
    if backend == "redis":
        logger.info(f"Using Redis revocation store at {settings.REDIS_URL}")
        return RedisRevocationStore(
            Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                decode_responses=True,
            )
        )
    return InMemoryRevocationStore()
