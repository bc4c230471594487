"""Bidirectional audio relay between a call's media legs and two translation sessions."""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from config.settings import Settings, get_settings
from translation.errors import NotAttachedError, NotReadyError, RelayAlreadyStartedError
from translation.latency import LatencyTracker, monotonic_ms
from translation.session import Role, TranslationSession

if TYPE_CHECKING:  # pragma: no cover
    from telephony.media_stream import MediaLeg, MediaMessage

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LatencyReport:
    caller_average_ms: float
    agent_average_ms: float
    combined_average_ms: float


class AudioRelay:
    """Relays call audio through live translation in both directions.

    Inbound leg (caller speech) -> caller session -> outbound leg (agent hears it).
    Outbound leg (agent speech) -> agent session -> inbound leg (caller hears it).

    Agent audio is held back until ``agent_audio_guard_ms`` has passed since
    the first agent frame, so call setup noise is not translated. Once that
    gate opens it stays open.

    One relay serves exactly one call; the host server owns it for the
    lifetime of that call.
    """

    def __init__(
        self,
        language: str,
        *,
        inbound_leg: MediaLeg | None = None,
        outbound_leg: MediaLeg | None = None,
        settings: Settings | None = None,
        connect: Callable[..., Awaitable[Any]] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        settings = settings or get_settings()
        if not settings.translation_api_key:
            raise ValueError("Translation API key must be configured for the audio relay.")

        self.language = language
        self._inbound_leg = inbound_leg
        self._outbound_leg = outbound_leg
        self._clock = clock or monotonic_ms
        self._guard_window_ms = settings.agent_audio_guard_ms
        self._agent_first_audio_ms: float | None = None
        self._agent_gate_open = False
        self._started = False
        self._report: LatencyReport | None = None

        self._trackers = {role: LatencyTracker(role.value) for role in Role}
        self._sessions = {
            role: TranslationSession(
                role,
                url=settings.translation_ws_url,
                api_key=settings.translation_api_key,
                tracker=self._trackers[role],
                on_translated_audio=self._audio_sink(role),
                connect=connect,
                clock=self._clock,
                open_timeout=settings.translation_open_timeout_seconds,
            )
            for role in Role
        }

        self._sessions[Role.CALLER].open(settings.caller_prompt_template(), language)
        self._sessions[Role.AGENT].open(settings.agent_prompt_template(), language)

    @property
    def started(self) -> bool:
        return self._started

    @property
    def inbound_leg(self) -> MediaLeg:
        if self._inbound_leg is None:
            raise NotAttachedError("Inbound leg not set")
        return self._inbound_leg

    @inbound_leg.setter
    def inbound_leg(self, value: MediaLeg) -> None:
        if self._started:
            raise RelayAlreadyStartedError()
        self._inbound_leg = value

    @property
    def outbound_leg(self) -> MediaLeg:
        if self._outbound_leg is None:
            raise NotAttachedError("Outbound leg not set")
        return self._outbound_leg

    @outbound_leg.setter
    def outbound_leg(self, value: MediaLeg) -> None:
        if self._started:
            raise RelayAlreadyStartedError()
        self._outbound_leg = value

    def session(self, role: Role) -> TranslationSession:
        return self._sessions[role]

    def tracker(self, role: Role) -> LatencyTracker:
        return self._trackers[role]

    def start(self) -> None:
        if self._started:
            LOGGER.warning("Audio relay already started")
            return
        if self._inbound_leg is None or self._outbound_leg is None:
            LOGGER.error("Both media legs are not set. Cannot start relay")
            raise NotReadyError()

        LOGGER.info("Both media legs are set. Starting relay (language=%s)", self.language)
        self._inbound_leg.on_media(self._forward_caller_audio)
        self._outbound_leg.on_media(self._forward_agent_audio)
        self._started = True

    async def close(self) -> LatencyReport:
        for attr in ("_inbound_leg", "_outbound_leg"):
            leg = getattr(self, attr)
            if leg is None:
                continue
            setattr(self, attr, None)
            try:
                await leg.close()
            except Exception:
                LOGGER.exception("Failed to close media leg %s", attr.strip("_"))

        for session in self._sessions.values():
            await session.close()

        if self._report is None:
            self._report = self._build_report()
        return self._report

    async def _forward_caller_audio(self, message: MediaMessage) -> None:
        await self._sessions[Role.CALLER].send_audio_chunk(message.payload)

    async def _forward_agent_audio(self, message: MediaMessage) -> None:
        if not self._agent_gate_open:
            now = self._clock()
            if self._agent_first_audio_ms is None:
                self._agent_first_audio_ms = now
                return
            if now - self._agent_first_audio_ms < self._guard_window_ms:
                return
            self._agent_gate_open = True
            LOGGER.info("Agent audio guard window elapsed; forwarding agent audio")

        await self._sessions[Role.AGENT].send_audio_chunk(message.payload)

    def _audio_sink(self, role: Role) -> Callable[[str], Awaitable[None]]:
        async def deliver(payload: str) -> None:
            # Caller translations are played to the agent and vice versa.
            leg = self._outbound_leg if role is Role.CALLER else self._inbound_leg
            if leg is None:
                LOGGER.warning("%s translation dropped: destination leg not attached", role.value)
                return
            await leg.send([payload])

        return deliver

    def _build_report(self) -> LatencyReport:
        averages = {}
        for role, tracker in self._trackers.items():
            for record in tracker.records:
                if record.latency_ms is not None:
                    LOGGER.info(
                        "%s message %s time to first audio = %.0f ms",
                        role.value,
                        record.message_id,
                        record.latency_ms,
                    )
            averages[role] = tracker.average_latency()
            LOGGER.info("%s average time to first audio = %s ms", role.value, averages[role])

        combined = (averages[Role.CALLER] + averages[Role.AGENT]) / 2
        if math.isnan(combined):
            LOGGER.info("Combined average time to first audio unavailable (a leg had no translated utterances)")
        else:
            LOGGER.info("Combined average time to first audio = %s ms", combined)

        return LatencyReport(
            caller_average_ms=averages[Role.CALLER],
            agent_average_ms=averages[Role.AGENT],
            combined_average_ms=combined,
        )
