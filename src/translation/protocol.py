"""JSON event protocol spoken with the realtime translation endpoint."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Final

from translation.errors import ProtocolParseError

SET_INFERENCE_CONFIG: Final[str] = "set_inference_config"
AUDIO_BUFFER_ADD: Final[str] = "audio_buffer_add"
VAD_SPEECH_STOPPED: Final[str] = "vad_speech_stopped"

TURN_END_TYPE: Final[str] = "server_detection"
VOICE: Final[str] = "alloy"
TOOL_CHOICE: Final[str] = "none"
AUDIO_FORMAT: Final[str] = "g711-ulaw"

LANGUAGE_PLACEHOLDER: Final[str] = "[CALLER_LANGUAGE]"


def render_prompt(template: str, language: str) -> str:
    """Fill every language placeholder in a prompt template."""

    return template.replace(LANGUAGE_PLACEHOLDER, language)


@dataclass(frozen=True, slots=True)
class InferenceConfig:
    system_message: str
    turn_end_type: str = TURN_END_TYPE
    voice: str = VOICE
    tool_choice: str = TOOL_CHOICE
    disable_audio: bool = False
    audio_format: str = AUDIO_FORMAT

    def to_message(self) -> dict[str, Any]:
        return {
            "event": SET_INFERENCE_CONFIG,
            "system_message": self.system_message,
            "turn_end_type": self.turn_end_type,
            "voice": self.voice,
            "tool_choice": self.tool_choice,
            "disable_audio": self.disable_audio,
            "audio_format": self.audio_format,
        }


def build_audio_buffer_add(payload: str) -> dict[str, Any]:
    return {"event": AUDIO_BUFFER_ADD, "data": payload}


@dataclass(frozen=True, slots=True)
class ServerEvent:
    event: str
    message_id: str | None = None
    data: str | None = None


def parse_server_event(raw: str | bytes) -> ServerEvent:
    """Parse one message received from the translation endpoint.

    Raises:
        ProtocolParseError: if the message is not a JSON object with a string
            ``event`` field, or an audio event carries no payload.
    """

    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolParseError(f"Invalid JSON: {exc}") from exc

    if not isinstance(message, dict):
        raise ProtocolParseError("Expected a JSON object")

    event = message.get("event")
    if not isinstance(event, str) or not event:
        raise ProtocolParseError("Missing event kind")

    if event == AUDIO_BUFFER_ADD:
        data = message.get("data")
        if not isinstance(data, str):
            raise ProtocolParseError("audio_buffer_add without audio payload")
        return ServerEvent(event=event, data=data)

    if event == VAD_SPEECH_STOPPED:
        message_id = message.get("message_id")
        return ServerEvent(event=event, message_id=None if message_id is None else str(message_id))

    return ServerEvent(event=event)
