from __future__ import annotations

import asyncio

import pytest

from conftest import FakeConnector, FakeMediaLeg, settle
from integrations.twilio_streaming import CallRelayStore
from translation.errors import DuplicateLegError
from translation.relay import AudioRelay


def _store(settings, connector: FakeConnector) -> CallRelayStore:
    return CallRelayStore(lambda language: AudioRelay(language, settings=settings, connect=connector))


def test_relay_starts_once_both_legs_attach(settings) -> None:
    async def scenario() -> None:
        connector = FakeConnector()
        store = _store(settings, connector)
        inbound, outbound = FakeMediaLeg(), FakeMediaLeg()

        relay = await store.attach("call-1", "inbound", inbound, "French")
        await settle()
        assert relay.started is False
        assert relay.language == "French"

        same = await store.attach("call-1", "outbound", outbound, "ignored")
        assert same is relay
        assert relay.started is True
        assert len(inbound.handlers) == 1
        assert len(outbound.handlers) == 1
        # One relay per call: two translation sessions, no more.
        assert len(connector.calls) == 2

        (summary,) = await store.snapshot()
        assert summary.call_key == "call-1"
        assert summary.legs == ("inbound", "outbound")
        assert summary.started is True

        await store.release("call-1")

    asyncio.run(scenario())


def test_release_closes_relay_once(settings) -> None:
    async def scenario() -> None:
        store = _store(settings, FakeConnector())
        inbound, outbound = FakeMediaLeg(), FakeMediaLeg()
        await store.attach("call-1", "inbound", inbound, "French")
        await store.attach("call-1", "outbound", outbound, "French")
        await settle()

        report = await store.release("call-1")
        assert report is not None
        assert inbound.close_calls == 1
        assert outbound.close_calls == 1

        assert await store.release("call-1") is None
        assert await store.snapshot() == []

    asyncio.run(scenario())


def test_calls_are_isolated(settings) -> None:
    async def scenario() -> None:
        store = _store(settings, FakeConnector())
        first = await store.attach("call-1", "inbound", FakeMediaLeg(), "French")
        second = await store.attach("call-2", "inbound", FakeMediaLeg(), "German")

        assert first is not second
        assert {s.call_key for s in await store.snapshot()} == {"call-1", "call-2"}

        await store.close_all()
        assert await store.snapshot() == []

    asyncio.run(scenario())


def test_unknown_leg_is_rejected(settings) -> None:
    async def scenario() -> None:
        store = _store(settings, FakeConnector())
        with pytest.raises(ValueError):
            await store.attach("call-1", "sideways", FakeMediaLeg(), "French")
        assert await store.snapshot() == []

    asyncio.run(scenario())


def test_duplicate_leg_is_rejected_and_call_keeps_its_first_leg(settings) -> None:
    async def scenario() -> None:
        store = _store(settings, FakeConnector())
        first, duplicate, outbound = FakeMediaLeg(), FakeMediaLeg(), FakeMediaLeg()

        relay = await store.attach("call-1", "inbound", first, "French")
        with pytest.raises(DuplicateLegError):
            await store.attach("call-1", "inbound", duplicate, "French")
        await store.attach("call-1", "outbound", outbound, "French")

        assert relay.inbound_leg is first
        assert len(first.handlers) == 1
        assert duplicate.handlers == []

        await store.release("call-1")
        assert first.close_calls == 1
        assert outbound.close_calls == 1
        assert duplicate.close_calls == 0

    asyncio.run(scenario())
