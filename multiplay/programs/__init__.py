"""Reference programs: explicit registration of every command and channel at process start."""

from __future__ import annotations

from multiplay.channels import ChannelRegistry
from multiplay.commands import CommandRegistry
from multiplay.programs import chat, counter, hello


def register_programs(*, commands: CommandRegistry, channels: ChannelRegistry, owner: str) -> None:
    hello.register(commands)
    counter.register(commands, owner=owner)
    chat.register(channels)
