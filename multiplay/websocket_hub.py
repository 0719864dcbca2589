from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict, deque

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Subscriber:
    """One open connection on a channel, with a bounded outbound buffer.

    `push` never blocks: when the buffer is full the oldest pending message is dropped.
    A writer task drains the buffer with `next()` and forwards to the socket.
    """

    def __init__(self, *, channel: str, caller: str, max_pending: int = 64) -> None:
        self.connection_id = uuid.uuid4().hex
        self.channel = channel
        self.caller = caller
        self.dropped = 0
        self._pending: deque[str] = deque(maxlen=max_pending)
        self._ready = asyncio.Event()

    def __repr__(self) -> str:
        return f"Subscriber(channel={self.channel!r}, caller={self.caller!r}, id={self.connection_id[:8]})"

    def push(self, message: str) -> None:
        if len(self._pending) == self._pending.maxlen:
            self.dropped += 1
            logger.debug("%r buffer full, dropping oldest message", self)
        self._pending.append(message)
        self._ready.set()

    async def next(self) -> str:
        while not self._pending:
            self._ready.clear()
            await self._ready.wait()
        return self._pending.popleft()

    def drain(self) -> list[str]:
        out = list(self._pending)
        self._pending.clear()
        return out


class ChannelHub:
    """In-process fan-out keyed by channel name.

    Contract:
      - `attach(channel, caller)` registers a connection and returns its Subscriber.
      - `broadcast(channel, event)` delivers once to every subscriber attached at call time.
      - `send(channel, caller, event)` delivers to that caller's connections only.

    Membership changes and pushes are synchronous, so a broadcast always sees a
    consistent subscriber set.
    """

    def __init__(self, *, max_pending: int = 64) -> None:
        self.max_pending = max_pending
        self._by_channel: dict[str, dict[str, Subscriber]] = defaultdict(dict)

    def attach(self, channel: str, caller: str) -> Subscriber:
        sub = Subscriber(channel=channel, caller=caller, max_pending=self.max_pending)
        self._by_channel[channel][sub.connection_id] = sub
        return sub

    def detach(self, subscriber: Subscriber) -> None:
        conns = self._by_channel.get(subscriber.channel)
        if not conns:
            return
        conns.pop(subscriber.connection_id, None)
        if not conns:
            self._by_channel.pop(subscriber.channel, None)

    def subscribers(self, channel: str) -> list[Subscriber]:
        return list(self._by_channel.get(channel, {}).values())

    def broadcast(self, channel: str, event: BaseModel) -> int:
        conns = self.subscribers(channel)
        if not conns:
            return 0

        message = event.model_dump_json()
        for sub in conns:
            sub.push(message)
        return len(conns)

    def send(self, channel: str, caller: str, event: BaseModel) -> int:
        conns = [s for s in self.subscribers(channel) if s.caller == caller]
        if not conns:
            return 0

        message = event.model_dump_json()
        for sub in conns:
            sub.push(message)
        return len(conns)
