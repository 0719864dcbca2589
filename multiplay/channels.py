from __future__ import annotations

import asyncio
import logging
from abc import ABC
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import BaseModel, TypeAdapter, ValidationError
from statemachine import State, StateMachine

from multiplay.errors import UnknownChannel
from multiplay.websocket_hub import ChannelHub, Subscriber

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChannelSettings:
    """Per-session configuration, filled in by `ChannelHandler.on_open`.

    - `interval`: ticks of the fixed-rate clock between `on_interval` calls; None disables it.
    - `resident`: keep the session for the process lifetime instead of closing it
      when the last connection leaves.
    """

    interval: int | None = None
    resident: bool = False

    def set_interval(self, ticks: int) -> None:
        if ticks <= 0:
            raise ValueError("interval must be a positive number of ticks")
        self.interval = ticks


@dataclass(frozen=True, slots=True)
class ChannelContext:
    channel: str
    hub: ChannelHub
    log: logging.LoggerAdapter

    def broadcast(self, event: BaseModel) -> int:
        return self.hub.broadcast(self.channel, event)

    def send(self, caller: str, event: BaseModel) -> int:
        return self.hub.send(self.channel, caller, event)


class ChannelHandler(ABC):
    """Private state plus lifecycle hooks for one open channel.

    Hooks are synchronous and run to completion; the session never runs two of them at
    once. Subclasses declare the outbound (`send_type`) and inbound (`recv_type`) message
    types; inbound frames are validated against `recv_type` before `on_data` sees them.
    """

    send_type: ClassVar[Any]
    recv_type: ClassVar[Any]

    def on_open(self, settings: ChannelSettings) -> None:
        pass

    def on_interval(self, ctx: ChannelContext) -> None:
        pass

    def on_connect(self, ctx: ChannelContext, caller: str) -> None:
        pass

    def on_data(self, ctx: ChannelContext, caller: str, message: Any) -> None:
        pass

    def on_disconnect(self, ctx: ChannelContext, caller: str) -> None:
        pass


ChannelFactory = Callable[[], ChannelHandler]


@dataclass(frozen=True, slots=True)
class ChannelSpec:
    name: str
    factory: ChannelFactory
    send_type: Any
    recv_type: Any

    def describe(self) -> dict[str, Any]:
        return {
            "send": TypeAdapter(self.send_type).json_schema(),
            "recv": TypeAdapter(self.recv_type).json_schema(),
        }


class ChannelRegistry:
    def __init__(self) -> None:
        self._by_name: dict[str, ChannelSpec] = {}

    def register(self, name: str, factory: ChannelFactory, *, send_type: Any, recv_type: Any) -> ChannelSpec:
        if name in self._by_name:
            raise ValueError(f"Channel already registered: {name}")
        spec = ChannelSpec(name=name, factory=factory, send_type=send_type, recv_type=recv_type)
        self._by_name[name] = spec
        return spec

    def register_handler(self, name: str, handler_cls: type[ChannelHandler]) -> ChannelSpec:
        return self.register(name, handler_cls, send_type=handler_cls.send_type, recv_type=handler_cls.recv_type)

    def get(self, name: str) -> ChannelSpec | None:
        return self._by_name.get(name)

    def names(self) -> list[str]:
        return sorted(self._by_name)

    def describe(self) -> dict[str, dict[str, Any]]:
        return {name: self._by_name[name].describe() for name in self.names()}


class SessionLifecycle(StateMachine):
    created = State("Created", initial=True)
    opened = State("Open")
    closed = State("Closed", final=True)

    activate = created.to(opened)
    shutdown = opened.to(closed) | created.to(closed)


class ChannelSession:
    """The live state machine for one open channel.

    Every entry point holds the session lock for the whole hook call, so hooks observe
    events one at a time and in arrival order.
    """

    def __init__(self, *, spec: ChannelSpec, hub: ChannelHub) -> None:
        self.name = spec.name
        self.handler = spec.factory()
        self.settings = ChannelSettings()
        self.lifecycle = SessionLifecycle()
        self.ticker: asyncio.Task[None] | None = None
        self._recv = TypeAdapter(spec.recv_type)
        self._lock = asyncio.Lock()
        self.ctx = ChannelContext(
            channel=spec.name,
            hub=hub,
            log=logging.LoggerAdapter(logging.getLogger(f"multiplay.programs.{spec.name}"), {"channel": spec.name}),
        )

    @property
    def is_open(self) -> bool:
        return self.lifecycle.opened.is_active

    def open(self) -> None:
        self.handler.on_open(self.settings)
        self.lifecycle.activate()
        logger.info("channel %s opened (interval=%s, resident=%s)", self.name, self.settings.interval, self.settings.resident)

    def close(self) -> None:
        if self.lifecycle.closed.is_active:
            return
        if self.ticker is not None:
            self.ticker.cancel()
            self.ticker = None
        self.lifecycle.shutdown()
        logger.info("channel %s closed", self.name)

    def _require_open(self) -> None:
        if not self.is_open:
            raise RuntimeError(f"Channel session '{self.name}' is not open")

    def _run_hook(self, hook: str, fn: Callable[[], None]) -> bool:
        try:
            fn()
        except Exception:
            # One failing hook must not take the channel down for everyone else.
            logger.exception("channel %s: %s hook raised", self.name, hook)
            return False
        return True

    async def connect(self, caller: str) -> None:
        async with self._lock:
            self._require_open()
            self._run_hook("on_connect", lambda: self.handler.on_connect(self.ctx, caller))

    async def disconnect(self, caller: str) -> None:
        async with self._lock:
            self._require_open()
            self._run_hook("on_disconnect", lambda: self.handler.on_disconnect(self.ctx, caller))

    async def interval(self) -> None:
        async with self._lock:
            self._require_open()
            self._run_hook("on_interval", lambda: self.handler.on_interval(self.ctx))

    def decode(self, raw: str | bytes) -> Any:
        return self._recv.validate_json(raw)

    async def data(self, caller: str, raw: str | bytes) -> bool:
        """Decode and handle one inbound frame; malformed frames are logged and dropped."""

        try:
            message = self.decode(raw)
        except ValidationError as e:
            logger.warning("channel %s: dropping malformed message from %s: %s", self.name, caller, e.error_count())
            return False

        async with self._lock:
            self._require_open()
            return self._run_hook("on_data", lambda: self.handler.on_data(self.ctx, caller, message))


class ChannelManager:
    """Connection-manager side of the channel engine.

    Sessions are created lazily on first connect. Non-resident sessions are closed and
    dropped once their last connection leaves, so a later connect starts from fresh state.
    """

    def __init__(self, *, registry: ChannelRegistry, hub: ChannelHub, tick_ms: int = 1) -> None:
        self.registry = registry
        self.hub = hub
        self.tick_ms = tick_ms
        self._sessions: dict[str, ChannelSession] = {}

    def session(self, channel: str) -> ChannelSession | None:
        return self._sessions.get(channel)

    def open_channels(self) -> list[str]:
        return sorted(self._sessions)

    def _get_or_open(self, channel: str) -> ChannelSession:
        session = self._sessions.get(channel)
        if session is not None:
            return session

        spec = self.registry.get(channel)
        if spec is None:
            raise UnknownChannel(f"Unknown channel: {channel}")

        session = ChannelSession(spec=spec, hub=self.hub)
        session.open()
        self._sessions[channel] = session
        if session.settings.interval:
            period_s = session.settings.interval * self.tick_ms / 1000
            session.ticker = asyncio.create_task(self._tick_loop(session, period_s), name=f"ticker:{channel}")
        return session

    async def _tick_loop(self, session: ChannelSession, period_s: float) -> None:
        while session.is_open:
            await asyncio.sleep(period_s)
            if not session.is_open:
                return
            await session.interval()

    async def connect(self, channel: str, caller: str) -> Subscriber:
        session = self._get_or_open(channel)
        # Subscribe first: the joining caller sees its own `connected` event.
        sub = self.hub.attach(channel, caller)
        logger.info("%s connected to %s", caller, channel)
        await session.connect(caller)
        return sub

    async def data(self, subscriber: Subscriber, raw: str | bytes) -> bool:
        session = self._sessions.get(subscriber.channel)
        if session is None:
            logger.warning("data for closed channel %s from %s dropped", subscriber.channel, subscriber.caller)
            return False
        return await session.data(subscriber.caller, raw)

    async def disconnect(self, subscriber: Subscriber) -> None:
        # Unsubscribe first: the leaving caller does not receive its own `disconnected` event.
        self.hub.detach(subscriber)
        logger.info("%s disconnected from %s", subscriber.caller, subscriber.channel)

        session = self._sessions.get(subscriber.channel)
        if session is None:
            return
        await session.disconnect(subscriber.caller)

        if not session.settings.resident and not self.hub.subscribers(subscriber.channel):
            self._close(subscriber.channel)

    async def interval(self, channel: str) -> None:
        session = self._sessions.get(channel)
        if session is None:
            return
        await session.interval()

    def _close(self, channel: str) -> None:
        session = self._sessions.pop(channel, None)
        if session is not None:
            session.close()

    def shutdown(self) -> None:
        for channel in list(self._sessions):
            self._close(channel)
