from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(slots=True)
class UtteranceLatency:
    message_id: str | None
    speech_stopped_ms: float
    first_audio_ms: float | None = None

    @property
    def latency_ms(self) -> float | None:
        if self.first_audio_ms is None:
            return None
        return self.first_audio_ms - self.speech_stopped_ms


class LatencyTracker:
    """Time from end-of-speech detection to first translated audio, per utterance.

    Records are kept in arrival order. Only the most recent record can be
    stamped, which relies on the session handling its messages in order.
    """

    def __init__(self, label: str) -> None:
        self.label = label
        self._records: list[UtteranceLatency] = []

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> tuple[UtteranceLatency, ...]:
        return tuple(self._records)

    def record_utterance_start(self, message_id: str | None, timestamp_ms: float) -> None:
        self._records.append(UtteranceLatency(message_id=message_id, speech_stopped_ms=timestamp_ms))

    def record_first_audio(self, timestamp_ms: float) -> bool:
        """Stamp the latest utterance with its first translated audio time.

        Returns False when there is no utterance to stamp. First write wins.
        """

        if not self._records:
            LOGGER.warning("%s: translated audio received before any end of speech", self.label)
            return False

        latest = self._records[-1]
        if latest.first_audio_ms is not None:
            return False
        latest.first_audio_ms = timestamp_ms
        return True

    def average_latency(self) -> float:
        latencies = [r.latency_ms for r in self._records if r.latency_ms is not None]
        if not latencies:
            return math.nan
        return sum(latencies) / len(latencies)
