"""
Call models.

- CdrRecord: one raw leg row of the telephony platform's ``cdr`` table
  (read-only, owned by the telephony server).
- Call: the canonical, immutable interaction value every consumer uses.
- CallHistoryQuery / CallPage: list query and paginated result.
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from callcenter.shared.database import CdrBase


class CallStatus(str, Enum):
    """Call status derived from the CDR disposition."""

    ANSWERED = "answered"
    NO_ANSWER = "no-answer"
    BUSY = "busy"
    FAILED = "failed"


class CallType(str, Enum):
    """Disposition class used to filter call history."""

    ANSWERED = "answered"
    OUTGOING = "outgoing"
    MISSED = "missed"


class CdrRecord(CdrBase):
    """Raw detail record, one row per call leg.

    The platform table has no primary key of its own; ``uniqueid`` is unique
    per leg and serves as the mapper identity.
    """

    __tablename__ = "cdr"

    uniqueid: Mapped[str] = mapped_column(String(150), primary_key=True)
    linkedid: Mapped[str] = mapped_column(String(150), nullable=False, index=True, default="")
    calldate: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    clid: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    src: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    dst: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    dcontext: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    channel: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    dstchannel: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    lastapp: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    lastdata: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    billsec: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disposition: Mapped[str] = mapped_column(String(45), nullable=False, default="")
    userfield: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    recordingfile: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    def __repr__(self) -> str:
        return (
            f"<CdrRecord uniqueid={self.uniqueid} linkedid={self.linkedid} "
            f"disposition={self.disposition}>"
        )


class Call(BaseModel):
    """Canonical call, one per surfaced interaction."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Leg unique id of the representative record")
    correlation_id: str = Field(..., description="Interaction-wide linked id")
    caller_number: str = ""
    called_number: str = ""
    operator_extension: str | None = Field(
        default=None,
        description="Extension parsed from the destination channel",
    )
    status: CallStatus
    start_time: datetime
    duration: int = Field(default=0, ge=0)
    talk_time: int = Field(default=0, ge=0)
    wait_time: int = Field(default=0, ge=0)
    queue: str = ""
    is_outgoing: bool = False
    satisfaction_vote: int | None = None
    recording_id: str | None = None

    @model_validator(mode="after")
    def talk_time_within_duration(self) -> "Call":
        if self.talk_time > self.duration:
            raise ValueError("talk_time cannot exceed duration")
        return self


def _coerce_day(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return value


class CallHistoryQuery(BaseModel):
    """Filters for a call history listing."""

    date_from: date
    date_to: date
    operator_extension: str | None = None
    call_type: CallType | None = None
    caller_number: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=1000)
    fetch_all: bool = False

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def accept_datetimes(cls, v: Any) -> Any:
        """Only the day matters: bounds always cover whole days."""
        return _coerce_day(v)

    @field_validator("operator_extension", "caller_number", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_range(self) -> "CallHistoryQuery":
        if self.date_to < self.date_from:
            raise ValueError("date_to must not be before date_from")
        return self

    @property
    def bounds(self) -> tuple[datetime, datetime]:
        return day_bounds(self.date_from, self.date_to)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class CallPage(BaseModel):
    """One page of deduplicated calls plus the total of the filtered set."""

    items: list[Call] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int | None = None


def day_bounds(date_from: date, date_to: date) -> tuple[datetime, datetime]:
    """Expand two days into inclusive local bounds 00:00:00.000 - 23:59:59.999."""
    start = datetime.combine(date_from, time.min)
    end = datetime.combine(date_to, time(23, 59, 59, 999000))
    return start, end
