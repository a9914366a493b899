"""
Appeal models.

An appeal is the operator's annotation of one interaction, keyed by the
interaction's call id (the CDR correlation id). At most one appeal exists
per call id.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from callcenter.shared.database import Base


class AppealCategory(str, Enum):
    """Subject of the caller's request."""

    COMPLAINT = "complaint"
    ATTACHMENT = "attachment"
    APPOINTMENT = "appointment"
    INFORMATION = "information"
    HOSPITALIZATION = "hospitalization"
    LAB_TESTS = "lab_tests"
    OTHER = "other"


class AppealResolution(str, Enum):
    """How the request was handled."""

    ESCALATED = "escalated"
    FULLY_RESOLVED = "fully_resolved"
    PARTIALLY_RESOLVED = "partially_resolved"
    REFUSED = "refused"


class AppealPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Satisfaction(str, Enum):
    YES = "yes"
    NO = "no"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Appeal(Base):
    """Appeal record, unique per call id."""

    __tablename__ = "appeals"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    call_id: Mapped[str] = mapped_column(String(150), nullable=False, unique=True, index=True)
    operator_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    operator_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    caller_number: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    category: Mapped[AppealCategory] = mapped_column(
        SQLEnum(AppealCategory, name="appeal_category", native_enum=False, length=32),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    resolution: Mapped[AppealResolution] = mapped_column(
        SQLEnum(AppealResolution, name="appeal_resolution", native_enum=False, length=32),
        nullable=False,
    )
    priority: Mapped[AppealPriority] = mapped_column(
        SQLEnum(AppealPriority, name="appeal_priority", native_enum=False, length=16),
        nullable=False,
        default=AppealPriority.MEDIUM,
    )
    satisfaction: Mapped[Satisfaction | None] = mapped_column(
        SQLEnum(Satisfaction, name="appeal_satisfaction", native_enum=False, length=8),
        nullable=True,
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    follow_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follow_up_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<Appeal id={self.id} call_id={self.call_id} operator_id={self.operator_id}>"


class AppealCreate(BaseModel):
    """Schema for writing an appeal (insert or update by call id)."""

    call_id: str = Field(..., min_length=1, max_length=150)
    operator_id: str = Field(..., min_length=1, max_length=100)
    operator_name: str = Field(default="", max_length=255)
    caller_number: str = Field(default="", max_length=50)
    category: AppealCategory
    description: str = Field(..., min_length=1)
    resolution: AppealResolution
    priority: AppealPriority = AppealPriority.MEDIUM
    satisfaction: Satisfaction | None = None
    notes: str = ""
    follow_up: bool = False

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description is required")
        return v.strip()

    @field_validator("notes", mode="before")
    @classmethod
    def none_notes_to_empty(cls, v: object) -> object:
        return "" if v is None else v


class AppealRead(BaseModel):
    """Stored appeal as returned by the store."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    call_id: str
    operator_id: str
    operator_name: str
    caller_number: str
    category: AppealCategory
    description: str
    resolution: AppealResolution
    priority: AppealPriority
    satisfaction: Satisfaction | None = None
    notes: str = ""
    follow_up: bool = False
    follow_up_completed: bool = False
    created_at: datetime
    updated_at: datetime
    caller_name: str | None = None
