"""Entry point for the live call translation relay service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api.routes import router as api_router
from config.settings import get_settings
from integrations.twilio_streaming import GLOBAL_CALL_RELAY_STORE


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await GLOBAL_CALL_RELAY_STORE.close_all()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Live Call Translator",
    description="Relays call audio through realtime speech translation in both directions.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")


def run() -> None:
    uvicorn.run("main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
