from __future__ import annotations

import asyncio
import json

import pytest

from multiplay.programs.chat import ConnectedEvent, TickEvent
from multiplay.websocket_hub import ChannelHub, Subscriber


def test_broadcast_reaches_only_current_subscribers() -> None:
    hub = ChannelHub()
    a = hub.attach("main", "alice")
    b = hub.attach("main", "bob")
    other = hub.attach("lobby", "carol")

    assert hub.broadcast("main", TickEvent()) == 2
    hub.detach(b)
    assert hub.broadcast("main", ConnectedEvent(user_id="dave")) == 1

    assert [json.loads(m)["type"] for m in a.drain()] == ["tick", "connected"]
    assert [json.loads(m)["type"] for m in b.drain()] == ["tick"]
    assert other.drain() == []


def test_broadcast_to_empty_channel_is_a_noop() -> None:
    hub = ChannelHub()
    assert hub.broadcast("main", TickEvent()) == 0
    assert hub.subscribers("main") == []


def test_send_targets_one_caller() -> None:
    hub = ChannelHub()
    a1 = hub.attach("main", "alice")
    a2 = hub.attach("main", "alice")
    b = hub.attach("main", "bob")

    assert hub.send("main", "alice", TickEvent()) == 2
    assert len(a1.drain()) == len(a2.drain()) == 1
    assert b.drain() == []


def test_full_buffer_drops_oldest() -> None:
    sub = Subscriber(channel="main", caller="alice", max_pending=3)
    for i in range(5):
        sub.push(str(i))

    assert sub.dropped == 2
    assert sub.drain() == ["2", "3", "4"]


def test_detach_last_subscriber_forgets_channel() -> None:
    hub = ChannelHub()
    sub = hub.attach("main", "alice")
    hub.detach(sub)
    hub.detach(sub)
    assert hub.subscribers("main") == []


@pytest.mark.asyncio
async def test_next_waits_for_a_push() -> None:
    sub = Subscriber(channel="main", caller="alice")
    waiter = asyncio.create_task(sub.next())
    await asyncio.sleep(0)
    assert not waiter.done()

    sub.push("hello")
    assert await asyncio.wait_for(waiter, timeout=1) == "hello"
