"""
Mock telephony control adapter for testing and local development.

Endpoint and channel state is scripted in memory; failures and latency
can be injected to exercise the poller's failure policy.
"""

import asyncio

from callcenter.shared.logging import get_logger
from callcenter.telephony.interface import (
    ChannelDetails,
    EndpointInfo,
    TelephonyControl,
    TelephonyControlError,
)

logger = get_logger(__name__)


class MockTelephonyControl(TelephonyControl):
    """In-memory telephony control."""

    def __init__(self, technology: str = "PJSIP") -> None:
        self._technology = technology
        self._endpoints: dict[str, EndpointInfo] = {}
        self._channels: dict[str, ChannelDetails] = {}
        self._requests: list[tuple[str, str]] = []
        self._should_fail: bool = False
        self._fail_error: str = "Mock failure"
        self._fail_code: str = "MOCK_ERROR"
        self._delay_seconds: float = 0.0

    def reset(self) -> None:
        self._endpoints.clear()
        self._channels.clear()
        self._requests.clear()
        self._should_fail = False
        self._fail_error = "Mock failure"
        self._fail_code = "MOCK_ERROR"
        self._delay_seconds = 0.0

    def configure_failure(
        self,
        should_fail: bool = True,
        error_message: str = "Mock failure",
        error_code: str = "MOCK_ERROR",
    ) -> None:
        self._should_fail = should_fail
        self._fail_error = error_message
        self._fail_code = error_code

    def configure_delay(self, seconds: float) -> None:
        self._delay_seconds = seconds

    def set_endpoint(
        self,
        extension: str,
        state: str,
        channel_ids: tuple[str, ...] | list[str] = (),
    ) -> None:
        self._endpoints[extension] = EndpointInfo(
            technology=self._technology,
            resource=extension,
            state=state,
            channel_ids=tuple(channel_ids),
        )

    def remove_endpoint(self, extension: str) -> None:
        self._endpoints.pop(extension, None)

    def set_channel(self, channel: ChannelDetails) -> None:
        self._channels[channel.channel_id] = channel

    def remove_channel(self, channel_id: str) -> None:
        self._channels.pop(channel_id, None)

    @property
    def requests(self) -> list[tuple[str, str]]:
        return self._requests.copy()

    async def _simulate(self, kind: str, key: str) -> None:
        self._requests.append((kind, key))
        if self._delay_seconds:
            await asyncio.sleep(self._delay_seconds)
        if self._should_fail:
            raise TelephonyControlError(
                message=self._fail_error,
                error_code=self._fail_code,
            )

    async def get_endpoint(self, extension: str) -> EndpointInfo | None:
        await self._simulate("endpoint", extension)
        return self._endpoints.get(extension)

    async def get_channel(self, channel_id: str) -> ChannelDetails | None:
        await self._simulate("channel", channel_id)
        return self._channels.get(channel_id)
