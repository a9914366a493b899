"""
Telephony control interface definition.

Two read-only operations are consumed by the live session engine:
- the endpoint state of an operator extension (with its active channels);
- the details of one channel, including the CDR correlation variables,
  since the control interface's own channel id is ephemeral and never
  matches the correlation key later written to the CDR store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class EndpointInfo:
    """State of one operator endpoint."""

    technology: str
    resource: str
    state: str
    channel_ids: tuple[str, ...] = ()
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def active_channel_id(self) -> str | None:
        return self.channel_ids[0] if self.channel_ids else None


@dataclass(frozen=True)
class ChannelDetails:
    """Details of one live channel."""

    channel_id: str
    name: str
    state: str
    caller_number: str | None = None
    connected_number: str | None = None
    correlation_id: str | None = None
    context: str | None = None
    extension: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def remote_number(self) -> str | None:
        """Number of the other party, as seen from the operator's channel."""
        return self.connected_number or self.caller_number


class TelephonyControlError(Exception):
    """Base exception for telephony control errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.provider_response = provider_response or {}


class TelephonyControl(ABC):
    """Abstract read-only interface to the telephony server's live state."""

    @abstractmethod
    async def get_endpoint(self, extension: str) -> EndpointInfo | None:
        """Endpoint state for an extension; None when the endpoint is unknown."""
        ...

    @abstractmethod
    async def get_channel(self, channel_id: str) -> ChannelDetails | None:
        """Channel details; None when the channel has already hung up."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        return None
