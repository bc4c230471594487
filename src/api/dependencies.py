"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from integrations.twilio_streaming import GLOBAL_CALL_RELAY_STORE, CallRelayStore


def get_relay_store() -> CallRelayStore:
    return GLOBAL_CALL_RELAY_STORE
