from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from config.settings import Settings  # noqa: E402
from telephony.media_stream import MediaMessage  # noqa: E402

CALLER_PROMPT = "Interpret the caller from [CALLER_LANGUAGE] into English."
AGENT_PROMPT = "Interpret the agent from English into [CALLER_LANGUAGE]."


async def settle(rounds: int = 5) -> None:
    """Let background session tasks run until they block again."""

    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeTranslationSocket:
    """Stands in for a websockets client connection."""

    def __init__(self, url: str, headers: dict[str, str]) -> None:
        self.url = url
        self.headers = headers
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def config(self) -> dict[str, Any]:
        return self.sent[0]

    def audio_payloads(self) -> list[str]:
        return [m["data"] for m in self.sent if m["event"] == "audio_buffer_add"]

    def push(self, message: dict[str, Any] | str) -> None:
        self._incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def finish(self) -> None:
        self._incoming.put_nowait(None)

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    async def close(self) -> None:
        self.close_calls += 1
        self.finish()

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Replacement for ``websockets.connect`` recording every connection."""

    def __init__(self, fail_on: set[int] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.calls: list[dict[str, Any]] = []
        self.sockets: list[FakeTranslationSocket] = []

    async def __call__(self, url: str, **kwargs: Any) -> FakeTranslationSocket:
        index = len(self.calls)
        self.calls.append({"url": url, **kwargs})
        if index in self.fail_on:
            raise OSError("connection refused")
        socket = FakeTranslationSocket(url, kwargs.get("additional_headers") or {})
        self.sockets.append(socket)
        return socket

    def socket_for(self, prompt_fragment: str) -> FakeTranslationSocket:
        for socket in self.sockets:
            if prompt_fragment in socket.config["system_message"]:
                return socket
        raise AssertionError(f"No session configured with prompt containing {prompt_fragment!r}")


class FakeMediaLeg:
    def __init__(self) -> None:
        self.handlers: list = []
        self.sent: list[str] = []
        self.close_calls = 0

    def on_media(self, handler) -> None:
        self.handlers.append(handler)

    async def send(self, payloads) -> None:
        self.sent.extend(payloads)

    async def close(self) -> None:
        self.close_calls += 1

    async def emit(self, payload: str) -> None:
        for handler in self.handlers:
            await handler(MediaMessage(payload=payload))


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        translation_api_key="test-key",
        translation_ws_url="wss://translator.example.com/v1/realtime",
        ai_prompt_caller=CALLER_PROMPT,
        ai_prompt_agent=AGENT_PROMPT,
        caller_language="Spanish",
    )


@pytest.fixture(scope="session")
def app():
    os.environ["TRANSLATION_API_KEY"] = "test-key"
    os.environ["CALLER_LANGUAGE"] = "Spanish"
    os.environ.pop("PUBLIC_BASE_URL", None)

    import importlib

    from config.settings import get_settings

    # Settings are cached; make sure the test environment is picked up.
    get_settings.cache_clear()

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
