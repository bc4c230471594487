from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from telephony.media_stream import MediaLeg
from translation.errors import DuplicateLegError
from translation.relay import AudioRelay, LatencyReport

LOGGER = logging.getLogger(__name__)

LEG_NAMES = ("inbound", "outbound")

RelayFactory = Callable[[str], AudioRelay]


@dataclass
class CallRelayEntry:
    call_key: str
    relay: AudioRelay
    legs: set[str]


@dataclass(frozen=True)
class CallSummary:
    call_key: str
    language: str
    legs: tuple[str, ...]
    started: bool


class CallRelayStore:
    """In-memory registry holding exactly one AudioRelay per call.

    The first media leg of a call creates the relay; it starts once both
    legs are attached and is closed when the call is released.

    Note: This is a single-process store. Both legs of a call must reach the
    same worker.
    """

    def __init__(self, relay_factory: RelayFactory | None = None) -> None:
        self._lock = asyncio.Lock()
        self._entries: dict[str, CallRelayEntry] = {}
        self._relay_factory = relay_factory or AudioRelay

    async def attach(self, call_key: str, leg_name: str, leg: MediaLeg, language: str) -> AudioRelay:
        if leg_name not in LEG_NAMES:
            raise ValueError(f"Unknown media leg: {leg_name}")

        async with self._lock:
            entry = self._entries.get(call_key)
            if entry is None:
                relay = self._relay_factory(language)
                entry = CallRelayEntry(call_key=call_key, relay=relay, legs=set())
                self._entries[call_key] = entry
                LOGGER.info("Created audio relay for call %s (language=%s)", call_key, language)

            if leg_name in entry.legs:
                raise DuplicateLegError(f"{leg_name} leg already attached to call {call_key}")

            if leg_name == "inbound":
                entry.relay.inbound_leg = leg
            else:
                entry.relay.outbound_leg = leg
            entry.legs.add(leg_name)

            if entry.legs == set(LEG_NAMES) and not entry.relay.started:
                entry.relay.start()
            return entry.relay

    async def release(self, call_key: str) -> LatencyReport | None:
        async with self._lock:
            entry = self._entries.pop(call_key, None)
        if entry is None:
            return None

        LOGGER.info("Releasing audio relay for call %s", call_key)
        return await entry.relay.close()

    async def snapshot(self) -> list[CallSummary]:
        async with self._lock:
            return [
                CallSummary(
                    call_key=entry.call_key,
                    language=entry.relay.language,
                    legs=tuple(sorted(entry.legs)),
                    started=entry.relay.started,
                )
                for entry in self._entries.values()
            ]

    async def close_all(self) -> None:
        async with self._lock:
            keys = list(self._entries)
        for key in keys:
            await self.release(key)


GLOBAL_CALL_RELAY_STORE = CallRelayStore()
