"""Domain-specific exceptions for the audio relay.

These exceptions are safe to import from API layers without pulling in the
WebSocket client.
"""

from __future__ import annotations


class RelayError(Exception):
    default_detail: str = "Audio relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class NotReadyError(RelayError):
    default_detail = "Both media legs must be attached before starting the relay."


class NotAttachedError(RelayError):
    default_detail = "Media leg is not attached."


class RelayAlreadyStartedError(RelayError):
    default_detail = "Media legs cannot be reassigned once the relay has started."


class SessionUnavailableError(RelayError):
    default_detail = "Translation session is not open."


class TransportError(RelayError):
    default_detail = "Translation transport failed."


class ProtocolParseError(RelayError):
    default_detail = "Malformed message."


class DuplicateLegError(RelayError):
    default_detail = "Media leg is already attached to this call."
