from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from multiplay.errors import DecodeError, HandlerFailure, MultiplayError, UnknownCommand
from multiplay.store import DurableStore, RecordLocks

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Decoder = Callable[[bytes], Any]


@dataclass(frozen=True, slots=True)
class CommandContext:
    """Everything a handler may touch during one dispatch."""

    caller: str
    store: DurableStore
    locks: RecordLocks
    log: logging.LoggerAdapter


Handler = Callable[[Any, CommandContext], None]


@dataclass(frozen=True, slots=True)
class CommandSpec:
    name: str
    decode: Decoder
    handle: Handler
    schema: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class CommandReceipt:
    command: str
    caller: str


def pydantic_decoder(model: type[M]) -> Decoder:
    def _decode(raw: bytes) -> M:
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            raise DecodeError(f"Invalid payload for {model.__name__}: {e.errors(include_url=False)}") from e

    return _decode


def empty_decoder(raw: bytes) -> None:
    """Decoder for commands that take no payload."""

    if raw.strip() in (b"", b"null", b"{}"):
        return None
    raise DecodeError("This command takes no payload")


class CommandRegistry:
    def __init__(self) -> None:
        self._by_name: dict[str, CommandSpec] = {}

    def register(
        self,
        name: str,
        decode: Decoder,
        handle: Handler,
        *,
        schema: dict[str, Any] | None = None,
    ) -> CommandSpec:
        if name in self._by_name:
            raise ValueError(f"Command already registered: {name}")
        spec = CommandSpec(name=name, decode=decode, handle=handle, schema=schema)
        self._by_name[name] = spec
        return spec

    def register_model(self, name: str, model: type[M], handle: Callable[[M, CommandContext], None]) -> CommandSpec:
        return self.register(name, pydantic_decoder(model), handle, schema=model.model_json_schema())

    def get(self, name: str) -> CommandSpec | None:
        return self._by_name.get(name)

    def names(self) -> list[str]:
        return sorted(self._by_name)

    def describe(self) -> dict[str, dict[str, Any] | None]:
        return {name: self._by_name[name].schema for name in self.names()}


class CommandDispatcher:
    """Decode, run and report one command.

    Handlers run exactly once per dispatch and are never retried. Failures surface as
    `MultiplayError` subclasses with the handler's message intact.
    """

    def __init__(self, registry: CommandRegistry) -> None:
        self.registry = registry

    def dispatch(
        self,
        name: str,
        raw: bytes,
        caller: str,
        *,
        store: DurableStore,
        locks: RecordLocks,
    ) -> CommandReceipt:
        spec = self.registry.get(name)
        if spec is None:
            raise UnknownCommand(f"Unknown command: {name}")

        payload = spec.decode(raw)

        ctx = CommandContext(
            caller=caller,
            store=store,
            locks=locks,
            log=logging.LoggerAdapter(logging.getLogger(f"multiplay.programs.{name}"), {"caller": caller}),
        )

        try:
            spec.handle(payload, ctx)
        except MultiplayError as e:
            logger.info("command %s from %s failed: %s (%s)", name, caller, e.message, e.kind)
            raise
        except Exception as e:
            logger.exception("command %s from %s raised", name, caller)
            raise HandlerFailure(str(e) or type(e).__name__) from e

        logger.debug("command %s from %s ok", name, caller)
        return CommandReceipt(command=name, caller=caller)
