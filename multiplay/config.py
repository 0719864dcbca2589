"""Runtime settings, read from the environment (and `.env` if present)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str
    owner: str
    tick_ms: int
    max_pending: int
    lock_ttl_ms: int
    lock_timeout_ms: int
    host: str
    port: int
    log_level: str


def _int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settings(*, dotenv: bool = True) -> Settings:
    if dotenv:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    return Settings(
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        owner=os.environ.get("MULTIPLAY_OWNER", "owner"),
        tick_ms=_int_env("MULTIPLAY_TICK_MS", 1, minimum=1),
        max_pending=_int_env("MULTIPLAY_MAX_PENDING", 64, minimum=1),
        lock_ttl_ms=_int_env("MULTIPLAY_LOCK_TTL_MS", 5_000, minimum=1),
        lock_timeout_ms=_int_env("MULTIPLAY_LOCK_TIMEOUT_MS", 5_000, minimum=0),
        host=os.environ.get("MULTIPLAY_HOST", "127.0.0.1"),
        port=_int_env("MULTIPLAY_PORT", 8000, minimum=1),
        log_level=os.environ.get("MULTIPLAY_LOG_LEVEL", "INFO").upper(),
    )
