"""Twilio Media Streams leg.

Wraps one Twilio Media Streams WebSocket. Payloads stay base64 G.711 mu-law
strings end to end; no transcoding happens here.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from translation.errors import ProtocolParseError, TransportError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MediaMessage:
    payload: str
    track: str | None = None
    chunk: int | None = None
    timestamp: int | None = None


@dataclass(frozen=True, slots=True)
class StreamStart:
    stream_sid: str
    call_sid: str | None
    tracks: tuple[str, ...] = ()
    custom_parameters: dict[str, str] = field(default_factory=dict)


MediaHandler = Callable[[MediaMessage], Awaitable[None]]


class MediaLeg(Protocol):
    """What the audio relay needs from one side of a call."""

    def on_media(self, handler: MediaHandler) -> None: ...

    async def send(self, payloads: Sequence[str]) -> None: ...

    async def close(self) -> None: ...


def parse_twilio_ws_message(text: str) -> dict[str, Any]:
    try:
        message = json.loads(text)
    except ValueError as exc:
        raise ProtocolParseError(f"Invalid Twilio stream message: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolParseError("Twilio stream message is not a JSON object")
    return message


def _optional_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_media_message(message: dict[str, Any]) -> MediaMessage:
    media = message.get("media") or {}
    payload = media.get("payload")
    if not isinstance(payload, str) or not payload:
        raise ProtocolParseError("media event without payload")
    return MediaMessage(
        payload=payload,
        track=media.get("track"),
        chunk=_optional_int(media.get("chunk")),
        timestamp=_optional_int(media.get("timestamp")),
    )


def parse_stream_start(message: dict[str, Any]) -> StreamStart:
    start = message.get("start") or {}
    stream_sid = start.get("streamSid") or message.get("streamSid")
    if not stream_sid:
        raise ProtocolParseError("start event without streamSid")
    params = start.get("customParameters") or {}
    return StreamStart(
        stream_sid=str(stream_sid),
        call_sid=start.get("callSid"),
        tracks=tuple(start.get("tracks") or ()),
        custom_parameters={str(k): str(v) for k, v in params.items()},
    )


class TwilioMediaLeg:
    """One Twilio Media Streams connection acting as a media leg of a call."""

    def __init__(self, websocket: WebSocket, name: str) -> None:
        self.name = name
        self._websocket = websocket
        self._handlers: list[MediaHandler] = []
        self._stream_sid: str | None = None
        self._closed = False

    @property
    def stream_sid(self) -> str | None:
        return self._stream_sid

    @property
    def closed(self) -> bool:
        return self._closed

    def on_media(self, handler: MediaHandler) -> None:
        self._handlers.append(handler)

    async def wait_for_start(self) -> StreamStart:
        """Consume messages until Twilio announces the stream."""

        while True:
            message = await self._receive()
            if message is None:
                continue
            event = message.get("event")
            if event == "start":
                start = parse_stream_start(message)
                self._stream_sid = start.stream_sid
                LOGGER.info(
                    "%s stream started stream_sid=%s call_sid=%s",
                    self.name,
                    start.stream_sid,
                    start.call_sid,
                )
                return start
            if event == "stop":
                raise TransportError(f"{self.name} stream stopped before it started")

    async def run(self) -> None:
        """Dispatch media events to handlers until the stream stops."""

        try:
            while not self._closed:
                message = await self._receive()
                if message is None:
                    continue
                event = message.get("event")
                if event == "media":
                    await self._dispatch(message)
                elif event == "stop":
                    LOGGER.info("%s stream stopped", self.name)
                    return
        except WebSocketDisconnect:
            LOGGER.info("%s stream disconnected", self.name)

    async def send(self, payloads: Sequence[str]) -> None:
        if self._closed or self._stream_sid is None:
            LOGGER.warning("%s stream not writable; dropping %d chunk(s)", self.name, len(payloads))
            return
        try:
            for payload in payloads:
                await self._websocket.send_text(
                    json.dumps(
                        {
                            "event": "media",
                            "streamSid": self._stream_sid,
                            "media": {"payload": payload},
                        }
                    )
                )
        except (WebSocketDisconnect, RuntimeError) as exc:
            LOGGER.warning("%s stream send failed: %s", self.name, exc)
            self._closed = True

    async def close(self, code: int = 1000) -> None:
        if self._closed:
            return
        self._closed = True
        if self._websocket.application_state == WebSocketState.CONNECTED:
            await self._websocket.close(code=code)

    async def _receive(self) -> dict[str, Any] | None:
        text = await self._websocket.receive_text()
        try:
            return parse_twilio_ws_message(text)
        except ProtocolParseError as exc:
            LOGGER.warning("%s stream dropped message: %s", self.name, exc.detail)
            return None

    async def _dispatch(self, message: dict[str, Any]) -> None:
        try:
            media = parse_media_message(message)
        except ProtocolParseError as exc:
            LOGGER.warning("%s stream dropped media: %s", self.name, exc.detail)
            return
        for handler in self._handlers:
            try:
                await handler(media)
            except Exception:
                LOGGER.exception("%s media handler failed", self.name)
