from __future__ import annotations

from collections.abc import Generator

import redis
from fastapi import Depends, Header, HTTPException, status

from multiplay.infra.redis_client import create_redis
from multiplay.runtime import Runtime, get_runtime
from multiplay.store import RedisRecordLocks, RedisStore

CALLER_HEADER = "X-Caller-Id"


def get_redis(runtime: Runtime = Depends(get_runtime)) -> Generator[redis.Redis, None, None]:
    client = create_redis(runtime.settings.redis_url)
    try:
        yield client
    finally:
        client.close()


def get_store(r: redis.Redis = Depends(get_redis)) -> RedisStore:
    return RedisStore(r)


def get_locks(r: redis.Redis = Depends(get_redis), runtime: Runtime = Depends(get_runtime)) -> RedisRecordLocks:
    return RedisRecordLocks(r, ttl_ms=runtime.settings.lock_ttl_ms, timeout_ms=runtime.settings.lock_timeout_ms)


def get_caller(x_caller_id: str | None = Header(default=None)) -> str:
    # Identity is verified upstream; we only require that it was supplied.
    if not x_caller_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"kind": "unauthenticated", "message": f"{CALLER_HEADER} header is required"},
        )
    return x_caller_id
