"""A single WebSocket session with the realtime translation endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from enum import Enum
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from translation.errors import ProtocolParseError, SessionUnavailableError, TransportError
from translation.latency import LatencyTracker, monotonic_ms
from translation.protocol import (
    AUDIO_BUFFER_ADD,
    VAD_SPEECH_STOPPED,
    InferenceConfig,
    build_audio_buffer_add,
    parse_server_event,
    render_prompt,
)

LOGGER = logging.getLogger(__name__)

AudioSink = Callable[[str], Awaitable[None]]


class Role(str, Enum):
    """Which party's speech a session translates."""

    CALLER = "caller"
    AGENT = "agent"


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"


class TranslationSession:
    """Owns one connection to the translation endpoint for one role.

    Messages are handled by a single task in arrival order. Connection
    problems never raise out of this class; they are logged and leave the
    session ``errored``. Sessions are never reconnected.
    """

    def __init__(
        self,
        role: Role,
        *,
        url: str,
        api_key: str,
        tracker: LatencyTracker,
        on_translated_audio: AudioSink,
        connect: Callable[..., Awaitable[Any]] | None = None,
        clock: Callable[[], float] | None = None,
        open_timeout: float = 10.0,
    ) -> None:
        self.role = role
        self._url = url
        self._api_key = api_key
        self._tracker = tracker
        self._on_translated_audio = on_translated_audio
        self._connect = connect or websockets.connect
        self._clock = clock or monotonic_ms
        self._open_timeout = open_timeout

        self._state = SessionState.IDLE
        self._system_message: str | None = None
        self._configured = False
        self._drop_reported_state: SessionState | None = None
        self._ws: Any = None
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def system_message(self) -> str | None:
        return self._system_message

    @property
    def label(self) -> str:
        return self.role.value.capitalize()

    def open(self, prompt_template: str, language: str) -> None:
        """Render the prompt and start connecting in the background."""

        if self._state is not SessionState.IDLE:
            LOGGER.warning("%s session already opened (state=%s)", self.label, self._state.value)
            return

        self._system_message = render_prompt(prompt_template, language)
        self._state = SessionState.CONNECTING
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"translation-session-{self.role.value}"
        )

    async def send_audio_chunk(self, payload: str) -> bool:
        """Forward one chunk of raw call audio. Returns False if it was dropped."""

        try:
            if self._state is not SessionState.OPEN or not self._configured:
                raise SessionUnavailableError(
                    f"{self.label} session is {self._state.value}; dropping audio"
                )
            await self._send(build_audio_buffer_add(payload))
        except SessionUnavailableError as exc:
            # Warn on the first drop per state, debug afterwards.
            if self._drop_reported_state is not self._state:
                self._drop_reported_state = self._state
                LOGGER.warning("%s", exc.detail)
            else:
                LOGGER.debug("%s", exc.detail)
            return False
        return True

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        task, self._task = self._task, None

        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException):
                LOGGER.warning("%s session close handshake failed", self.label, exc_info=True)

        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        if self._state is not SessionState.ERRORED:
            self._state = SessionState.CLOSED

    async def _run(self) -> None:
        try:
            ws = await self._connect(
                self._url,
                additional_headers={"Authorization": f"Bearer {self._api_key}"},
                open_timeout=self._open_timeout,
            )
        except (OSError, TimeoutError, WebSocketException) as exc:
            self._fail(TransportError(f"{self.label} connection failed: {exc}"))
            return

        self._ws = ws
        self._state = SessionState.OPEN
        LOGGER.info("%s translation session connected to %s", self.label, self._url)

        try:
            config = InferenceConfig(system_message=self._system_message or "")
            await self._send(config.to_message())
            self._configured = True
            LOGGER.info("%s session configured: %s", self.label, config)

            async for message in ws:
                await self._handle_message(message)
        except ConnectionClosedOK:
            pass
        except (ConnectionClosed, OSError) as exc:
            self._fail(TransportError(f"{self.label} connection lost: {exc}"))
            return
        except SessionUnavailableError:
            # _send already marked the session errored.
            return

        if self._state is SessionState.OPEN:
            self._state = SessionState.CLOSED
        LOGGER.info("%s translation session closed", self.label)

    async def _handle_message(self, raw: str | bytes) -> None:
        received_ms = self._clock()
        try:
            event = parse_server_event(raw)
        except ProtocolParseError as exc:
            LOGGER.warning("%s session dropped message: %s", self.label, exc.detail)
            return

        LOGGER.debug("%s message from translator: event=%s", self.label, event.event)

        if event.event == VAD_SPEECH_STOPPED:
            self._tracker.record_utterance_start(event.message_id, received_ms)
        elif event.event == AUDIO_BUFFER_ADD and event.data is not None:
            self._tracker.record_first_audio(received_ms)
            try:
                await self._on_translated_audio(event.data)
            except Exception:
                LOGGER.exception("%s translated audio could not be delivered", self.label)

    async def _send(self, message: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            raise SessionUnavailableError(f"{self.label} session has no connection")
        try:
            await ws.send(json.dumps(message))
        except ConnectionClosed as exc:
            self._fail(TransportError(f"{self.label} connection closed while sending: {exc}"))
            raise SessionUnavailableError(f"{self.label} session is {self._state.value}") from exc

    def _fail(self, error: TransportError) -> None:
        LOGGER.error("%s", error.detail)
        self._state = SessionState.ERRORED
