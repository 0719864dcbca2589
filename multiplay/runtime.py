from __future__ import annotations

from dataclasses import dataclass

from multiplay.channels import ChannelManager, ChannelRegistry
from multiplay.commands import CommandDispatcher, CommandRegistry
from multiplay.config import Settings
from multiplay.programs import register_programs
from multiplay.websocket_hub import ChannelHub


@dataclass(slots=True)
class Runtime:
    settings: Settings
    commands: CommandDispatcher
    channels: ChannelManager


_RUNTIME: Runtime | None = None


def build_runtime(settings: Settings) -> Runtime:
    command_registry = CommandRegistry()
    channel_registry = ChannelRegistry()
    register_programs(commands=command_registry, channels=channel_registry, owner=settings.owner)

    return Runtime(
        settings=settings,
        commands=CommandDispatcher(command_registry),
        channels=ChannelManager(
            registry=channel_registry,
            hub=ChannelHub(max_pending=settings.max_pending),
            tick_ms=settings.tick_ms,
        ),
    )


def init_runtime(settings: Settings) -> Runtime:
    """Build the runtime once and cache it.

    Safe to call multiple times; subsequent calls return the already built instance.
    """

    global _RUNTIME
    if _RUNTIME is None:
        _RUNTIME = build_runtime(settings)
    return _RUNTIME


def reset_runtime_for_tests() -> None:
    """Drop the cached runtime, closing any open channel sessions."""

    global _RUNTIME
    if _RUNTIME is not None:
        _RUNTIME.channels.shutdown()
    _RUNTIME = None


def get_runtime() -> Runtime:
    if _RUNTIME is None:
        raise RuntimeError("Runtime not initialized. Call init_runtime() at startup.")
    return _RUNTIME
