from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from multiplay.api.deps import CALLER_HEADER, get_caller, get_locks, get_store
from multiplay.api.models import ChannelListResponse, CommandListResponse, CommandResponse
from multiplay.errors import (
    DecodeError,
    HandlerFailure,
    MultiplayError,
    StoreUnavailable,
    Unauthorized,
    UnknownCommand,
)
from multiplay.runtime import Runtime, get_runtime
from multiplay.store import RedisRecordLocks, RedisStore
from multiplay.websocket_hub import Subscriber

logger = logging.getLogger(__name__)

router = APIRouter()

# Policy violation: unknown channel or no caller identity on the handshake.
WS_POLICY_VIOLATION = 1008

_STATUS_BY_ERROR: tuple[tuple[type[MultiplayError], int], ...] = (
    (UnknownCommand, status.HTTP_404_NOT_FOUND),
    (DecodeError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (Unauthorized, status.HTTP_403_FORBIDDEN),
    (HandlerFailure, status.HTTP_409_CONFLICT),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(error: MultiplayError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(error, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/commands", response_model=CommandListResponse)
async def list_commands_route(runtime: Runtime = Depends(get_runtime)) -> CommandListResponse:
    return CommandListResponse(commands=runtime.commands.registry.describe())


@router.post("/commands/{name}", response_model=CommandResponse)
async def dispatch_command_route(
    name: str,
    request: Request,
    caller: str = Depends(get_caller),
    store: RedisStore = Depends(get_store),
    locks: RedisRecordLocks = Depends(get_locks),
    runtime: Runtime = Depends(get_runtime),
) -> CommandResponse:
    """Run one command. The raw request body is the command's encoded payload."""

    raw = await request.body()
    try:
        # Handlers block on the store (and on record locks), keep them off the event loop.
        receipt = await run_in_threadpool(runtime.commands.dispatch, name, raw, caller, store=store, locks=locks)
    except MultiplayError as e:
        raise HTTPException(status_code=status_for(e), detail=e.as_detail()) from e

    return CommandResponse(command=receipt.command, caller=receipt.caller)


@router.get("/records/{key}")
def get_record_route(key: str, store: RedisStore = Depends(get_store)) -> Response:
    """Raw stored bytes for a record, so clients can watch it."""

    try:
        raw = store.read(key)
    except StoreUnavailable as e:
        raise HTTPException(status_code=status_for(e), detail=e.as_detail()) from e
    if raw is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"kind": "not_found", "message": f"Record not found: {key}"},
        )
    return Response(content=raw, media_type="application/json")


@router.get("/channels", response_model=ChannelListResponse)
async def list_channels_route(runtime: Runtime = Depends(get_runtime)) -> ChannelListResponse:
    return ChannelListResponse(
        channels=runtime.channels.registry.describe(),
        open=runtime.channels.open_channels(),
    )


async def _pump(websocket: WebSocket, sub: Subscriber) -> None:
    while True:
        message = await sub.next()
        try:
            await websocket.send_text(message)
        except (WebSocketDisconnect, RuntimeError):
            # Socket went away; the receive loop will notice and disconnect.
            return


@router.websocket("/channels/{name}")
async def channel_ws(websocket: WebSocket, name: str) -> None:
    manager = get_runtime().channels

    caller = websocket.headers.get(CALLER_HEADER)
    if not caller or manager.registry.get(name) is None:
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    # Subscribe before accepting, so the handshake completing means the caller is on the channel.
    sub = await manager.connect(name, caller)
    writer: asyncio.Task[None] | None = None
    try:
        await websocket.accept()
        writer = asyncio.create_task(_pump(websocket, sub), name=f"writer:{sub.connection_id}")
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text")
            if raw is None:
                raw = frame.get("bytes")
            if raw is None:
                continue
            await manager.data(sub, raw)
    except WebSocketDisconnect:
        pass
    finally:
        if writer is not None:
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer
        await manager.disconnect(sub)
