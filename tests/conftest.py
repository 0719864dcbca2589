from __future__ import annotations

from collections.abc import Generator

import fakeredis
import pytest
from fastapi.testclient import TestClient

from multiplay.config import Settings
from multiplay.runtime import Runtime, init_runtime, reset_runtime_for_tests
from multiplay.store import RedisRecordLocks, RedisStore

OWNER = "owner-1"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        redis_url="redis://unused:6379/0",
        owner=OWNER,
        tick_ms=1,
        max_pending=64,
        lock_ttl_ms=5_000,
        lock_timeout_ms=10_000,
        host="127.0.0.1",
        port=8000,
        log_level="DEBUG",
    )


@pytest.fixture()
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis()


@pytest.fixture()
def store(redis_client: fakeredis.FakeRedis) -> RedisStore:
    return RedisStore(redis_client)


@pytest.fixture()
def locks(redis_client: fakeredis.FakeRedis) -> RedisRecordLocks:
    return RedisRecordLocks(redis_client, ttl_ms=5_000, timeout_ms=10_000)


@pytest.fixture()
def runtime(settings: Settings) -> Generator[Runtime, None, None]:
    reset_runtime_for_tests()
    yield init_runtime(settings)
    reset_runtime_for_tests()


@pytest.fixture()
def client_and_redis(runtime: Runtime) -> Generator[tuple[TestClient, fakeredis.FakeRedis], None, None]:
    from multiplay.api.deps import get_redis
    from multiplay.main import app

    r = fakeredis.FakeRedis()

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
