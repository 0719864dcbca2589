from __future__ import annotations

import fakeredis
import pytest

from multiplay.errors import HandlerFailure, RecordBusy, StoreUnavailable
from multiplay.lock import LOCK_KEY_PREFIX, record_lock
from multiplay.programs.counter import Counter
from multiplay.store import RedisRecordLocks, RedisStore, read_record, update_record, write_record


def test_missing_record_reads_as_default_every_time(store: RedisStore) -> None:
    assert store.read("counter") is None

    first = read_record(store, "counter", Counter, Counter)
    second = read_record(store, "counter", Counter, Counter)
    assert first == second == Counter(value=0)

    # Defaulting never writes anything.
    assert store.read("counter") is None


def test_write_replaces_whole_value(store: RedisStore) -> None:
    write_record(store, "counter", Counter(value=5))
    write_record(store, "counter", Counter(value=-2))

    assert read_record(store, "counter", Counter, Counter).value == -2
    assert store.read("counter") == b'{"value":-2}'


def test_corrupt_record_is_a_handler_failure(store: RedisStore) -> None:
    store.write("counter", b"not json")

    with pytest.raises(HandlerFailure) as e:
        read_record(store, "counter", Counter, Counter)
    assert "corrupt" in e.value.message


def test_update_record_is_read_modify_write(store: RedisStore, locks: RedisRecordLocks) -> None:
    out = update_record(store, locks, "counter", Counter, Counter, lambda c: Counter(value=c.value + 3))
    assert out.value == 3
    out = update_record(store, locks, "counter", Counter, Counter, lambda c: Counter(value=c.value * 10))
    assert out.value == 30
    assert read_record(store, "counter", Counter, Counter).value == 30


def test_store_errors_surface_as_store_unavailable() -> None:
    server = fakeredis.FakeServer()
    server.connected = False
    store = RedisStore(fakeredis.FakeRedis(server=server))

    with pytest.raises(StoreUnavailable):
        store.read("counter")
    with pytest.raises(StoreUnavailable):
        store.write("counter", b"{}")


def test_lock_is_exclusive_until_released(redis_client: fakeredis.FakeRedis) -> None:
    with record_lock(r=redis_client, key="counter"):
        with pytest.raises(RecordBusy):
            with record_lock(r=redis_client, key="counter", timeout_ms=0):
                pass

    # Released: can be taken again.
    with record_lock(r=redis_client, key="counter", timeout_ms=0):
        pass
    assert redis_client.get(f"{LOCK_KEY_PREFIX}counter") is None


def test_lock_release_leaves_someone_elses_lock_alone(redis_client: fakeredis.FakeRedis) -> None:
    lock_key = f"{LOCK_KEY_PREFIX}counter"

    with record_lock(r=redis_client, key="counter"):
        # Simulate our lease expiring and another holder taking over.
        redis_client.set(lock_key, b"someone-else")

    assert redis_client.get(lock_key) == b"someone-else"


def test_record_busy_is_a_store_failure() -> None:
    assert issubclass(RecordBusy, StoreUnavailable)
