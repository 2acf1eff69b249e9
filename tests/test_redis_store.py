"""Unit tests for the Redis store adapter (client mocked)."""

from unittest.mock import MagicMock

import pytest
import redis

from kvlimiter.adapters.rate_limit.distributed import DistributedRateLimiter
from kvlimiter.adapters.store.redis_store import RedisKeyValueStore
from kvlimiter.core.errors import StoreAppError


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def pipe(client: MagicMock) -> MagicMock:
    return client.pipeline.return_value.__enter__.return_value


@pytest.fixture
def store(client: MagicMock) -> RedisKeyValueStore:
    return RedisKeyValueStore(client=client)


def test_requires_url_or_client() -> None:
    with pytest.raises(ValueError):
        RedisKeyValueStore()


def test_add_uses_set_nx(store, client) -> None:
    client.set.return_value = True

    assert store.add("k", 5, ttl=8) is True
    client.set.assert_called_once_with("k", 5, nx=True, ex=8)


def test_add_returns_false_when_present(store, client) -> None:
    client.set.return_value = None

    assert store.add("k", 5, ttl=8) is False


def test_get_multi_parses_integers(store, client) -> None:
    client.mget.return_value = ["4000", None]

    assert store.get_multi(["a", "b"]) == {"a": 4000}
    client.mget.assert_called_once_with(["a", "b"])


def test_get_multi_with_no_keys_skips_round_trip(store, client) -> None:
    assert store.get_multi([]) == {}
    client.mget.assert_not_called()


def test_cas_writes_inside_transaction(store, pipe) -> None:
    pipe.get.return_value = "10"

    assert store.cas("k", lambda current: current + 1, ttl=8) is True
    pipe.watch.assert_called_once_with("k")
    pipe.multi.assert_called_once()
    pipe.set.assert_called_once_with("k", 11, ex=8)
    pipe.execute.assert_called_once()


def test_cas_returns_false_on_watch_error(store, pipe) -> None:
    pipe.get.return_value = "10"
    pipe.execute.side_effect = redis.WatchError()

    assert store.cas("k", lambda current: current + 1, ttl=8) is False


def test_cas_returns_false_on_missing_key_or_abort(store, pipe) -> None:
    pipe.get.return_value = None
    assert store.cas("k", lambda current: 1, ttl=8) is False

    pipe.get.return_value = "3"
    assert store.cas("k", lambda current: None, ttl=8) is False
    pipe.execute.assert_not_called()


@pytest.fixture
def adjust_script(client: MagicMock) -> MagicMock:
    return client.register_script.return_value


def test_decr_runs_script_with_negative_delta(store, adjust_script) -> None:
    adjust_script.return_value = 0

    assert store.decr("k", 5) == 0
    adjust_script.assert_called_once_with(keys=["k"], args=[-5])


def test_incr_missing_key_returns_none(store, adjust_script, pipe) -> None:
    adjust_script.return_value = None

    assert store.incr("k", 5) is None
    adjust_script.assert_called_once_with(keys=["k"], args=[5])
    pipe.execute.assert_not_called()


def test_adjust_errors_become_store_errors(store, adjust_script) -> None:
    adjust_script.side_effect = redis.ConnectionError("connection reset")

    with pytest.raises(StoreAppError) as exc_info:
        store.incr("k", 2)

    assert exc_info.value.code == "store_unavailable"


def test_cas_mode_applies_allowance_despite_concurrent_writers(
    store, client, pipe, adjust_script, fake_time
) -> None:
    client.set.return_value = None  # bucket exists, fast path loses
    client.mget.return_value = ["3000", "1000000"]
    pipe.get.return_value = "1000000"
    # Only the timestamp swap goes through WATCH; every later transaction would conflict.
    pipe.execute.side_effect = [[True], redis.WatchError(), redis.WatchError()]
    adjust_script.return_value = 2000
    client.expire.return_value = True
    limiter = DistributedRateLimiter(store, key_prefix="t", clock=fake_time.time)

    assert not limiter.exceeded("k")
    pipe.set.assert_called_once_with("t:k:timestamp", 1_000_000, ex=8)
    adjust_script.assert_called_once_with(keys=["t:k:allowance"], args=[-1000])
    client.expire.assert_called_once_with("t:k:allowance", 8)


def test_touch_sets_expiry(store, client) -> None:
    client.expire.return_value = True

    assert store.touch("k", 10) is True
    client.expire.assert_called_once_with("k", 10)


def test_connection_errors_become_store_errors(store, client) -> None:
    client.set.side_effect = redis.ConnectionError("connection refused")

    with pytest.raises(StoreAppError) as exc_info:
        store.set("k", 1, ttl=8)

    assert exc_info.value.code == "store_unavailable"
    assert exc_info.value.details["backend"] == "redis"


def test_ping_reports_unreachable_store(store, client) -> None:
    client.ping.side_effect = redis.ConnectionError("down")

    assert store.ping() is False
