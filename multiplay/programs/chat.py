"""The `main` chat channel: positions and emotes, fanned out to every connection."""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from multiplay.channels import ChannelContext, ChannelHandler, ChannelRegistry, ChannelSettings

MAIN_CHANNEL = "main"

# Roughly ten seconds between heartbeats with the default 1ms tick.
MAIN_INTERVAL_TICKS = 16 * 60 * 10

Position = tuple[float, float]


class Emote(StrEnum):
    love = "love"
    anger = "anger"
    sob = "sob"
    thinking = "thinking"


# Inbound (client -> channel).


class MoveMessage(BaseModel):
    type: Literal["move"] = "move"
    dx: float = Field(allow_inf_nan=False)
    dy: float = Field(allow_inf_nan=False)


class EmoteMessage(BaseModel):
    type: Literal["emote"] = "emote"
    kind: Emote


UserMessage = Annotated[MoveMessage | EmoteMessage, Field(discriminator="type")]


# Outbound (channel -> every connection).


class ConnectedEvent(BaseModel):
    type: Literal["connected"] = "connected"
    user_id: str


class DisconnectedEvent(BaseModel):
    type: Literal["disconnected"] = "disconnected"
    user_id: str


class MoveEvent(BaseModel):
    type: Literal["move"] = "move"
    user_id: str
    position: Position


class EmoteEvent(BaseModel):
    type: Literal["emote"] = "emote"
    user_id: str
    kind: Emote


class TickEvent(BaseModel):
    type: Literal["tick"] = "tick"


UserEvent = Annotated[
    ConnectedEvent | DisconnectedEvent | MoveEvent | EmoteEvent | TickEvent,
    Field(discriminator="type"),
]


class MainChannel(ChannelHandler):
    """Tracks a position per caller.

    Positions start at (0, 0) and are pruned on disconnect, so a reconnecting caller
    starts over from the origin.
    """

    send_type = UserEvent
    recv_type = UserMessage

    def __init__(self) -> None:
        self.positions: dict[str, Position] = {}

    def on_open(self, settings: ChannelSettings) -> None:
        settings.set_interval(MAIN_INTERVAL_TICKS)

    def on_interval(self, ctx: ChannelContext) -> None:
        ctx.broadcast(TickEvent())

    def on_connect(self, ctx: ChannelContext, caller: str) -> None:
        ctx.log.info("%s connected", caller)
        ctx.broadcast(ConnectedEvent(user_id=caller))

    def on_data(self, ctx: ChannelContext, caller: str, message: MoveMessage | EmoteMessage) -> None:
        match message:
            case MoveMessage(dx=dx, dy=dy):
                x, y = self.positions.get(caller, (0.0, 0.0))
                pos = (x + dx, y + dy)
                if not all(math.isfinite(v) for v in pos):
                    ctx.log.warning("dropping move from %s: position would overflow", caller)
                    return
                self.positions[caller] = pos
                ctx.broadcast(MoveEvent(user_id=caller, position=pos))
            case EmoteMessage(kind=kind):
                ctx.broadcast(EmoteEvent(user_id=caller, kind=kind))

    def on_disconnect(self, ctx: ChannelContext, caller: str) -> None:
        self.positions.pop(caller, None)
        ctx.broadcast(DisconnectedEvent(user_id=caller))


def register(channels: ChannelRegistry) -> None:
    channels.register_handler(MAIN_CHANNEL, MainChannel)
