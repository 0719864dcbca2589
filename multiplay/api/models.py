from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class CommandResponse(BaseModel):
    ok: bool = True
    command: str
    caller: str


class CommandListResponse(BaseModel):
    commands: dict[str, dict[str, Any] | None]


class ChannelListResponse(BaseModel):
    channels: dict[str, dict[str, Any]]
    open: list[str]
