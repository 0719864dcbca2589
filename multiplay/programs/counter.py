"""Shared counter: anyone can add to it, only the program owner can reset it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel

from multiplay.commands import CommandContext, CommandRegistry, empty_decoder
from multiplay.errors import Unauthorized
from multiplay.store import update_record, write_record

COUNTER_KEY = "counter"


class Counter(BaseModel):
    value: int = 0


class AddCommand(BaseModel):
    op: Literal["plus", "minus"]
    amount: int

    @property
    def delta(self) -> int:
        return self.amount if self.op == "plus" else -self.amount


def add(cmd: AddCommand, ctx: CommandContext) -> None:
    ctx.log.info("%s, %s %d", ctx.caller, cmd.op, cmd.amount)

    counter = update_record(
        ctx.store,
        ctx.locks,
        COUNTER_KEY,
        Counter,
        Counter,
        lambda c: Counter(value=c.value + cmd.delta),
    )
    ctx.log.info("counter is now %d", counter.value)


@dataclass(frozen=True, slots=True)
class ResetHandler:
    owner: str

    def __call__(self, _payload: None, ctx: CommandContext) -> None:
        if ctx.caller != self.owner:
            raise Unauthorized("Only the program owner can reset the counter")

        with ctx.locks.hold(COUNTER_KEY):
            write_record(ctx.store, COUNTER_KEY, Counter(value=0))
        ctx.log.info("counter reset by %s", ctx.caller)


def register(commands: CommandRegistry, *, owner: str) -> None:
    commands.register_model("add", AddCommand, add)
    commands.register("reset", empty_decoder, ResetHandler(owner=owner))
