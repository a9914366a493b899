"""Tests for the live channel poller."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from callcenter.session.models import ChannelSnapshot, SessionStatus
from callcenter.session.poller import LiveChannelPoller, normalize_channel_state
from callcenter.telephony.ari_adapter import AriTelephonyControl
from callcenter.telephony.config import TelephonyConfig
from callcenter.telephony.interface import ChannelDetails
from callcenter.telephony.mock_adapter import MockTelephonyControl


@pytest.fixture
def control() -> MockTelephonyControl:
    return MockTelephonyControl()


@pytest.fixture
def poller(control: MockTelephonyControl) -> LiveChannelPoller:
    config = TelephonyConfig(poll_interval_seconds=1, poll_timeout_seconds=0.1)
    return LiveChannelPoller(control, "101", config=config, agent_id="agent-1")


def on_call_channel(channel_id: str = "c1", state: str = "Up") -> ChannelDetails:
    return ChannelDetails(
        channel_id=channel_id,
        name="PJSIP/101-00000001",
        state=state,
        caller_number="101",
        connected_number="79990001111",
        correlation_id="1715335190.70",
        context="from-queue",
    )


class TestNormalizeChannelState:
    @pytest.mark.parametrize(
        "raw,channel_id,expected",
        [
            ("Ring", "c1", SessionStatus.RINGING),
            ("Ringing", "c1", SessionStatus.RINGING),
            ("Up", "c1", SessionStatus.ON_CALL),
            ("Busy", "c1", SessionStatus.ON_CALL),
            ("  in use ", None, SessionStatus.ON_CALL),
            ("Down", "c1", SessionStatus.AVAILABLE),
            ("online", None, SessionStatus.AVAILABLE),
            ("not in use", None, SessionStatus.AVAILABLE),
            ("unavailable", None, SessionStatus.OFFLINE),
            ("offline", None, SessionStatus.OFFLINE),
            ("Pre-ring", "c1", SessionStatus.ON_CALL),
            ("something odd", None, SessionStatus.AVAILABLE),
            (None, None, SessionStatus.AVAILABLE),
        ],
    )
    def test_mapping(self, raw: str | None, channel_id: str | None, expected: SessionStatus) -> None:
        assert normalize_channel_state(raw, channel_id) == expected


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_idle_endpoint(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.set_endpoint("101", "online")

        snap = await poller.poll_once()

        assert snap is not None
        assert snap.status == SessionStatus.AVAILABLE
        assert snap.channel_id is None
        assert control.requests == [("endpoint", "101")]

    @pytest.mark.asyncio
    async def test_active_channel(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.set_endpoint("101", "online", ["c1"])
        control.set_channel(on_call_channel())

        snap = await poller.poll_once()

        assert snap is not None
        assert snap.status == SessionStatus.ON_CALL
        assert snap.raw_state == "Up"
        assert snap.correlation_hint == "1715335190.70"
        assert snap.caller_number == "79990001111"
        assert snap.queue_hint == "from-queue"

    @pytest.mark.asyncio
    async def test_ringing_channel(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.set_endpoint("101", "online", ["c1"])
        control.set_channel(on_call_channel(state="Ringing"))

        snap = await poller.poll_once()

        assert snap is not None
        assert snap.status == SessionStatus.RINGING

    @pytest.mark.asyncio
    async def test_channel_gone_between_requests(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.set_endpoint("101", "online", ["c1"])

        snap = await poller.poll_once()

        assert snap is not None
        assert snap.status == SessionStatus.AVAILABLE
        assert snap.channel_id is None

    @pytest.mark.asyncio
    async def test_unknown_endpoint_is_offline(self, poller: LiveChannelPoller) -> None:
        snap = await poller.poll_once()

        assert snap is not None
        assert snap.status == SessionStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_failure_yields_none(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.set_endpoint("101", "online")
        control.configure_failure()

        assert await poller.poll_once() is None

    @pytest.mark.asyncio
    async def test_timeout_yields_none(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.set_endpoint("101", "online")
        control.configure_delay(1.0)

        assert await poller.poll_once() is None

        control.configure_delay(0)
        assert await poller.poll_once() is not None

    @pytest.mark.asyncio
    async def test_single_poll_in_flight(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.set_endpoint("101", "online")
        control.configure_delay(0.05)

        first = asyncio.create_task(poller.poll_once())
        await asyncio.sleep(0)
        second = await poller.poll_once()

        assert second is None
        assert (await first) is not None
        assert control.requests == [("endpoint", "101")]

    @pytest.mark.asyncio
    async def test_garbled_ari_response_yields_none(self) -> None:
        config = TelephonyConfig(
            ari_base_url="http://pbx.local:8088/ari/",
            poll_interval_seconds=1,
            poll_timeout_seconds=1,
        )
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>gateway</html>")
            )
        )
        ari = AriTelephonyControl(config=config, http_client=client)
        poller = LiveChannelPoller(ari, "101", config=config, agent_id="agent-1")

        assert await poller.poll_once() is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unexpected_error_yields_none(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.get_endpoint = AsyncMock(side_effect=[KeyError("state"), None])

        assert await poller.poll_once() is None
        snap = await poller.poll_once()
        assert snap is not None
        assert snap.status == SessionStatus.OFFLINE


class TestRunLoop:
    @pytest.mark.asyncio
    async def test_start_and_stop(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.set_endpoint("101", "online")
        received: list[ChannelSnapshot | None] = []
        got_one = asyncio.Event()

        def on_snapshot(snap: ChannelSnapshot | None) -> None:
            received.append(snap)
            got_one.set()

        poller.start(on_snapshot)
        await asyncio.wait_for(got_one.wait(), timeout=1)
        assert poller.running

        await poller.stop()

        assert not poller.running
        assert received[0] is not None
        assert received[0].status == SessionStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_failed_polls_are_delivered_as_none(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.configure_failure()
        received: list[ChannelSnapshot | None] = []
        got_one = asyncio.Event()

        def on_snapshot(snap: ChannelSnapshot | None) -> None:
            received.append(snap)
            got_one.set()

        poller.start(on_snapshot)
        await asyncio.wait_for(got_one.wait(), timeout=1)
        await poller.stop()

        assert received == [None]

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_stop_the_loop(
        self, control: MockTelephonyControl, poller: LiveChannelPoller
    ) -> None:
        control.set_endpoint("101", "online")
        called = asyncio.Event()

        def on_snapshot(snap: ChannelSnapshot | None) -> None:
            called.set()
            raise RuntimeError("handler bug")

        poller.start(on_snapshot)
        await asyncio.wait_for(called.wait(), timeout=1)
        await asyncio.sleep(0)

        assert poller.running
        await poller.stop()
