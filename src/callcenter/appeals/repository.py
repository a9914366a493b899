"""
Repository for appeal database operations.
"""

from typing import Protocol, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from callcenter.appeals.models import Appeal, AppealCreate
from callcenter.crm.models import CrmContact


class AppealRepositoryProtocol(Protocol):
    """Protocol for appeal repository operations."""

    async def upsert(self, data: AppealCreate) -> Appeal:
        """Insert or update the appeal of one call."""
        ...

    async def get_by_call_id(self, call_id: str) -> Appeal | None:
        ...

    async def list_by_operator(self, operator_id: str) -> Sequence[Appeal]:
        ...


class AppealRepository:
    """Repository for appeal database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def get_by_id(self, appeal_id: UUID) -> Appeal | None:
        stmt = select(Appeal).where(Appeal.id == appeal_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_call_id(self, call_id: str) -> Appeal | None:
        stmt = select(Appeal).where(Appeal.call_id == call_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, data: AppealCreate) -> Appeal:
        """Insert or update the appeal of one call.

        An existing appeal keeps its id and creation time. Clearing the
        follow-up flag also clears its completion mark.

        Args:
            data: Validated appeal data.

        Returns:
            The stored Appeal instance.
        """
        values = data.model_dump()
        appeal = await self.get_by_call_id(data.call_id)
        if appeal is None:
            appeal = Appeal(**values, follow_up_completed=False)
            self._session.add(appeal)
        else:
            for field, value in values.items():
                setattr(appeal, field, value)
            if not data.follow_up:
                appeal.follow_up_completed = False
        await self._session.flush()
        await self._session.refresh(appeal)
        return appeal

    async def list_by_operator(self, operator_id: str) -> Sequence[Appeal]:
        """Appeals written by one operator, newest first."""
        stmt = (
            select(Appeal)
            .where(Appeal.operator_id == operator_id)
            .order_by(Appeal.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_by_call_ids(self, call_ids: Sequence[str]) -> Sequence[Appeal]:
        if not call_ids:
            return []
        stmt = select(Appeal).where(Appeal.call_id.in_(set(call_ids)))
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_follow_ups(self, operator_id: str) -> Sequence[tuple[Appeal, str | None]]:
        """Open follow-ups of one operator with the caller's CRM name, newest first."""
        stmt = (
            select(Appeal, CrmContact.name)
            .outerjoin(CrmContact, CrmContact.phone_number == Appeal.caller_number)
            .where(
                Appeal.operator_id == operator_id,
                Appeal.follow_up.is_(True),
                Appeal.follow_up_completed.is_(False),
            )
            .order_by(Appeal.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [(appeal, name) for appeal, name in result.all()]

    async def toggle_follow_up(self, appeal_id: UUID) -> Appeal | None:
        """Flip the completion mark of a follow-up."""
        appeal = await self.get_by_id(appeal_id)
        if appeal is None:
            return None
        appeal.follow_up_completed = not appeal.follow_up_completed
        await self._session.flush()
        await self._session.refresh(appeal)
        return appeal
