from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from multiplay import __version__
from multiplay.api.routes import router
from multiplay.config import load_settings
from multiplay.runtime import get_runtime, init_runtime

app = FastAPI(title="multiplay", version=__version__)
app.include_router(router)
# Configure logging; the level is applied from settings at startup.
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    settings = load_settings()
    logging.getLogger().setLevel(settings.log_level)
    runtime = init_runtime(settings)
    logger.info(
        "multiplay started: commands=%s channels=%s",
        runtime.commands.registry.names(),
        runtime.channels.registry.names(),
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    get_runtime().channels.shutdown()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "multiplay", "version": __version__}


def run() -> None:
    settings = load_settings()
    uvicorn.run("multiplay.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
