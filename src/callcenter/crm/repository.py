"""
Repository for CRM contact database operations.
"""

from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from callcenter.crm.models import CrmContact, CrmContactCreate


class CrmContactRepository:
    """Repository for CRM contacts."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def get_by_phone(self, phone_number: str) -> CrmContact | None:
        stmt = select(CrmContact).where(CrmContact.phone_number == phone_number)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, data: CrmContactCreate) -> CrmContact:
        """Insert a contact, or overwrite every field of the existing one.

        Args:
            data: Validated contact data.

        Returns:
            The stored contact.
        """
        contact = await self.get_by_phone(data.phone_number)
        values = data.model_dump()
        if contact is None:
            contact = CrmContact(**values)
            self._session.add(contact)
        else:
            for field, value in values.items():
                setattr(contact, field, value)
        await self._session.flush()
        await self._session.refresh(contact)
        return contact

    async def list_all(self) -> Sequence[CrmContact]:
        """All contacts ordered by name."""
        stmt = select(CrmContact).order_by(CrmContact.name.asc())
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def get_names(self, phone_numbers: Sequence[str]) -> dict[str, str]:
        """Map phone number -> contact name for the numbers that are known."""
        if not phone_numbers:
            return {}
        stmt = select(CrmContact.phone_number, CrmContact.name).where(
            CrmContact.phone_number.in_(set(phone_numbers))
        )
        result = await self._session.execute(stmt)
        return {phone: name for phone, name in result.all()}
