"""
CRM contact models.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from callcenter.calls.models import Call
from callcenter.shared.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CrmContact(Base):
    """Caller card, one per phone number."""

    __tablename__ = "crm_contacts"

    phone_number: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    contact_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
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
        return f"<CrmContact phone_number={self.phone_number} name={self.name}>"


class CrmContactCreate(BaseModel):
    """Schema for creating or updating a contact."""

    phone_number: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    address: str | None = Field(default=None, max_length=500)
    contact_type: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = None
    notes: str | None = None

    @field_validator("phone_number", "name")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("address", "contact_type", "email", "notes", mode="before")
    @classmethod
    def blank_to_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CrmContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    phone_number: str
    name: str
    address: str | None = None
    contact_type: str | None = None
    email: str | None = None
    notes: str | None = None


class CallerContext(BaseModel):
    """What the operator sees when a call connects."""

    phone_number: str = ""
    contact: CrmContactRead | None = None
    history: list[Call] = Field(default_factory=list)

    @property
    def is_known(self) -> bool:
        return self.contact is not None
