"""
Tests for token revocation stores.
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

from nursecred.core.revocation import InMemoryRevocationStore, RedisRevocationStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_added_token_is_revoked_until_expiry() -> None:
    clock = FakeClock()
    store = InMemoryRevocationStore(clock=clock)
    store.add("abc", expires_at=1010.0)

    assert store.contains("abc")
    clock.now = 1010.0
    assert not store.contains("abc")
    assert len(store) == 0


def test_already_expired_token_is_not_stored() -> None:
    store = InMemoryRevocationStore(clock=FakeClock())
    store.add("old", expires_at=999.0)
    assert not store.contains("old")
    assert len(store) == 0


def test_readd_extends_entry() -> None:
    clock = FakeClock()
    store = InMemoryRevocationStore(clock=clock)
    store.add("abc", expires_at=1005.0)
    store.add("abc", expires_at=1020.0)

    clock.now = 1010.0
    assert store.contains("abc")


def test_purge_only_drops_stale_entries() -> None:
    clock = FakeClock()
    store = InMemoryRevocationStore(clock=clock)
    for i in range(10):
        store.add(f"t{i}", expires_at=1001.0 + i)

    clock.now = 1005.5
    assert len(store) == 5
    assert store.contains("t9")
    assert not store.contains("t0")


def test_concurrent_adds() -> None:
    store = InMemoryRevocationStore(clock=FakeClock())

    with ThreadPoolExecutor(max_workers=20) as pool:
        list(pool.map(lambda i: store.add(f"t{i}", expires_at=2000.0), range(500)))

    assert len(store) == 500


def test_redis_store_sets_ttl_to_remaining_life() -> None:
    redis_conn = MagicMock()
    store = RedisRevocationStore(redis_conn, clock=FakeClock())

    store.add("abc", expires_at=1060.0)

    redis_conn.set.assert_called_once_with("revoked-token:abc", "1", ex=61)


def test_redis_store_skips_expired_tokens() -> None:
    redis_conn = MagicMock()
    store = RedisRevocationStore(redis_conn, clock=FakeClock())

    store.add("abc", expires_at=990.0)

    redis_conn.set.assert_not_called()


def test_redis_store_contains() -> None:
    redis_conn = MagicMock()
    redis_conn.exists.return_value = 1
    store = RedisRevocationStore(redis_conn)

    assert store.contains("abc")
    redis_conn.exists.assert_called_once_with("revoked-token:abc")
