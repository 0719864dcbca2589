from __future__ import annotations

from multiplay.commands import CommandContext, CommandRegistry, empty_decoder


def greet(_payload: None, ctx: CommandContext) -> None:
    ctx.log.info("Hey, %s!", ctx.caller)


def register(commands: CommandRegistry) -> None:
    commands.register("greet", empty_decoder, greet)
