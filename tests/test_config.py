from __future__ import annotations

import logging
from pathlib import Path

import pytest

from multiplay.config import load_settings
from multiplay.runtime import Runtime

_VARS = (
    "REDIS_URL",
    "MULTIPLAY_OWNER",
    "MULTIPLAY_TICK_MS",
    "MULTIPLAY_MAX_PENDING",
    "MULTIPLAY_LOCK_TTL_MS",
    "MULTIPLAY_LOCK_TIMEOUT_MS",
    "MULTIPLAY_HOST",
    "MULTIPLAY_PORT",
    "MULTIPLAY_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    s = load_settings(dotenv=False)
    assert s.redis_url == "redis://localhost:6379/0"
    assert s.owner == "owner"
    assert s.tick_ms == 1
    assert s.max_pending == 64
    assert s.port == 8000
    assert s.log_level == "INFO"


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MULTIPLAY_OWNER", "alice")
    monkeypatch.setenv("MULTIPLAY_TICK_MS", "16")
    monkeypatch.setenv("MULTIPLAY_LOG_LEVEL", "debug")

    s = load_settings(dotenv=False)
    assert s.owner == "alice"
    assert s.tick_ms == 16
    assert s.log_level == "DEBUG"


@pytest.mark.parametrize(("name", "value"), [("MULTIPLAY_PORT", "http"), ("MULTIPLAY_TICK_MS", "0")])
def test_rejects_bad_integers(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError) as e:
        load_settings(dotenv=False)
    assert name in str(e.value)


def test_reads_dotenv_from_working_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text("MULTIPLAY_OWNER=dotenv-owner\n")
    monkeypatch.chdir(tmp_path)

    assert load_settings().owner == "dotenv-owner"


@pytest.mark.asyncio
async def test_startup_applies_log_level_from_dotenv(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, runtime: Runtime
) -> None:
    (tmp_path / ".env").write_text("MULTIPLAY_LOG_LEVEL=debug\n")
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    monkeypatch.setattr(root, "level", logging.WARNING)

    from multiplay.main import _startup

    await _startup()

    assert root.level == logging.DEBUG
