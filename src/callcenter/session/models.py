"""
Live session models.

SessionState lives in process memory only, one instance per operator
session; it is never persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class SessionStatus(str, Enum):
    """Operator session states."""

    OFFLINE = "offline"
    AVAILABLE = "available"
    RINGING = "ringing"
    ON_CALL = "on-call"
    WRAP_UP = "wrap-up"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChannelSnapshot:
    """Normalized result of one poll of an operator extension."""

    status: SessionStatus
    raw_state: str = ""
    channel_id: str | None = None
    correlation_hint: str | None = None
    caller_number: str | None = None
    queue_hint: str | None = None
    polled_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ActiveInteraction:
    """The interaction currently tracked by a session."""

    call_id: str
    caller_number: str = ""
    queue: str | None = None
    channel_id: str | None = None
    started_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_snapshot(cls, snapshot: ChannelSnapshot) -> "ActiveInteraction":
        return cls(
            call_id=snapshot.correlation_hint or snapshot.channel_id or "",
            caller_number=snapshot.caller_number or "",
            queue=snapshot.queue_hint,
            channel_id=snapshot.channel_id,
            started_at=snapshot.polled_at,
        )


@dataclass
class SessionState:
    """Mutable state of one operator session."""

    agent_id: str
    extension: str
    status: SessionStatus = SessionStatus.OFFLINE
    interaction: ActiveInteraction | None = None
    wrap_up_deadline: datetime | None = None
    caller_context: Any = None
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def correlation_id(self) -> str | None:
        return self.interaction.call_id if self.interaction else None

    @property
    def caller_number(self) -> str | None:
        return self.interaction.caller_number if self.interaction else None

    @property
    def queue(self) -> str | None:
        return self.interaction.queue if self.interaction else None

    def wrap_up_remaining(self, now: datetime | None = None) -> float:
        """Seconds left in the wrap-up countdown (0 outside wrap-up)."""
        if self.status != SessionStatus.WRAP_UP or self.wrap_up_deadline is None:
            return 0.0
        now = now or utcnow()
        return max(0.0, (self.wrap_up_deadline - now).total_seconds())
