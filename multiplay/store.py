"""Durable record storage: the store interface, its redis adapter, and typed record helpers."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from typing import Protocol, TypeVar

import redis
from pydantic import BaseModel, ValidationError

from multiplay.errors import HandlerFailure, StoreUnavailable
from multiplay.lock import record_lock

RECORD_KEY_PREFIX = "multiplay:fs:"  # + {record key}

M = TypeVar("M", bound=BaseModel)


class DurableStore(Protocol):
    def read(self, key: str) -> bytes | None:
        """Return the stored bytes, or None when the key was never written."""

    def write(self, key: str, data: bytes) -> None:
        """Replace the stored value for key."""


class RecordLocks(Protocol):
    def hold(self, key: str) -> AbstractContextManager[None]:
        """Hold exclusive access to key for a read-modify-write sequence."""


@dataclass(slots=True)
class RedisStore:
    r: redis.Redis
    prefix: str = RECORD_KEY_PREFIX

    def read(self, key: str) -> bytes | None:
        try:
            raw = self.r.get(f"{self.prefix}{key}")
        except redis.RedisError as e:
            raise StoreUnavailable(f"Store unavailable: {e}") from e
        if raw is None:
            return None
        # Tolerate clients created with decode_responses=True.
        return raw.encode() if isinstance(raw, str) else raw

    def write(self, key: str, data: bytes) -> None:
        try:
            self.r.set(f"{self.prefix}{key}", data)
        except redis.RedisError as e:
            raise StoreUnavailable(f"Store unavailable: {e}") from e


@dataclass(slots=True)
class RedisRecordLocks:
    r: redis.Redis
    ttl_ms: int = 5_000
    timeout_ms: int = 5_000

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with record_lock(r=self.r, key=key, ttl_ms=self.ttl_ms, timeout_ms=self.timeout_ms):
            yield


def read_record(store: DurableStore, key: str, model: type[M], default: Callable[[], M]) -> M:
    """Read a record; a missing key yields `default()`, never an error."""

    raw = store.read(key)
    if raw is None:
        return default()
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise HandlerFailure(f"Stored record '{key}' is corrupt") from e


def write_record(store: DurableStore, key: str, record: BaseModel) -> None:
    store.write(key, record.model_dump_json().encode())


def update_record(
    store: DurableStore,
    locks: RecordLocks,
    key: str,
    model: type[M],
    default: Callable[[], M],
    fn: Callable[[M], M],
) -> M:
    """Atomic read-modify-write of one record with respect to other writers of the same key."""

    with locks.hold(key):
        current = read_record(store, key, model, default)
        updated = fn(current)
        write_record(store, key, updated)
    return updated
