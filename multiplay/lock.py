from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import redis

from multiplay.errors import RecordBusy, StoreUnavailable

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "multiplay:lock:"  # + {record key}

_INITIAL_BACKOFF_S = 0.001
_MAX_BACKOFF_S = 0.05


def _lock_key(key: str) -> str:
    return f"{LOCK_KEY_PREFIX}{key}"


def _release(*, r: redis.Redis, lock_key: str, token: bytes) -> None:
    """Delete the lock only if it still holds our token."""

    with r.pipeline() as pipe:
        try:
            pipe.watch(lock_key)
            if pipe.get(lock_key) != token:
                # Lease expired and someone else owns it now.
                pipe.unwatch()
                logger.warning("lock %s expired before release", lock_key)
                return
            pipe.multi()
            pipe.delete(lock_key)
            pipe.execute()
        except redis.WatchError:
            logger.warning("lock %s changed hands during release", lock_key)


@contextmanager
def record_lock(*, r: redis.Redis, key: str, ttl_ms: int = 5_000, timeout_ms: int = 5_000) -> Iterator[None]:
    """Per-record mutual exclusion for read-modify-write sequences.

    Acquire with SET NX PX and a unique token, retrying with capped exponential backoff
    until `timeout_ms` elapses. The lease (`ttl_ms`) bounds how long a crashed holder can
    keep the record locked.
    """

    lock_key = _lock_key(key)
    token = uuid.uuid4().hex.encode()
    deadline = time.monotonic() + timeout_ms / 1000
    backoff = _INITIAL_BACKOFF_S

    try:
        while not r.set(lock_key, token, nx=True, px=ttl_ms):
            if time.monotonic() >= deadline:
                raise RecordBusy(f"Record '{key}' is busy, try again")
            time.sleep(backoff)
            backoff = min(backoff * 2, _MAX_BACKOFF_S)
    except redis.RedisError as e:
        raise StoreUnavailable(f"Store unavailable: {e}") from e

    try:
        yield
    finally:
        try:
            _release(r=r, lock_key=lock_key, token=token)
        except redis.RedisError:
            # The lease expires on its own.
            logger.exception("failed to release lock %s", lock_key)
