"""
Appeal store: the write contract used by wrap-up auto-commit.

Writes are idempotent per call id (upsert), so submitting the same call
twice, for instance a manual save followed by the wrap-up timer, leaves
a single record.
"""

from typing import Protocol, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from callcenter.appeals.exceptions import AppealNotFoundError, AppealStoreError
from callcenter.appeals.models import AppealCreate, AppealRead
from callcenter.appeals.repository import AppealRepository
from callcenter.shared.database import DatabaseManager, get_app_database_manager
from callcenter.shared.logging import get_logger

logger = get_logger(__name__)


class AppealStoreProtocol(Protocol):
    """Write contract consumed by the session engine."""

    async def save(self, data: AppealCreate) -> AppealRead:
        ...


class AppealStore:
    """Appeal persistence with one short-lived session per operation."""

    def __init__(self, database: DatabaseManager | None = None) -> None:
        self._database = database or get_app_database_manager()

    async def _upsert(self, data: AppealCreate) -> AppealRead:
        async with self._database.session() as session:
            appeal = await AppealRepository(session).upsert(data)
            return AppealRead.model_validate(appeal)

    async def save(self, data: AppealCreate) -> AppealRead:
        """Insert or update the appeal of ``data.call_id``.

        Raises:
            AppealStoreError: If the store fails.
        """
        try:
            try:
                appeal = await self._upsert(data)
            except IntegrityError:
                # A concurrent writer inserted the same call id first
                logger.info("Appeal insert raced, retrying as update", extra={"call_id": data.call_id})
                appeal = await self._upsert(data)
        except SQLAlchemyError as e:
            logger.exception("Failed to save appeal", extra={"call_id": data.call_id})
            raise AppealStoreError(
                message="Failed to save appeal",
                details={"call_id": data.call_id, "error": str(e)},
            ) from e

        logger.info(
            "Appeal saved",
            extra={
                "appeal_id": str(appeal.id),
                "call_id": appeal.call_id,
                "operator_id": appeal.operator_id,
                "follow_up": appeal.follow_up,
            },
        )
        return appeal

    async def get_by_call_id(self, call_id: str) -> AppealRead | None:
        try:
            async with self._database.session() as session:
                appeal = await AppealRepository(session).get_by_call_id(call_id)
                return AppealRead.model_validate(appeal) if appeal else None
        except SQLAlchemyError as e:
            raise AppealStoreError(message="Failed to load appeal", details={"error": str(e)}) from e

    async def list_by_call_ids(self, call_ids: Sequence[str]) -> dict[str, AppealRead]:
        """Appeals of a page of calls, keyed by call id."""
        try:
            async with self._database.session() as session:
                appeals = await AppealRepository(session).list_by_call_ids(call_ids)
                return {a.call_id: AppealRead.model_validate(a) for a in appeals}
        except SQLAlchemyError as e:
            raise AppealStoreError(message="Failed to load appeals", details={"error": str(e)}) from e

    async def list_by_operator(self, operator_id: str) -> list[AppealRead]:
        try:
            async with self._database.session() as session:
                appeals = await AppealRepository(session).list_by_operator(operator_id)
                return [AppealRead.model_validate(a) for a in appeals]
        except SQLAlchemyError as e:
            raise AppealStoreError(
                message="Failed to list appeals",
                details={"operator_id": operator_id, "error": str(e)},
            ) from e

    async def list_follow_ups(self, operator_id: str) -> list[AppealRead]:
        """Open follow-ups of one operator, newest first, with caller names."""
        try:
            async with self._database.session() as session:
                rows = await AppealRepository(session).list_follow_ups(operator_id)
                return [
                    AppealRead.model_validate(appeal).model_copy(update={"caller_name": name})
                    for appeal, name in rows
                ]
        except SQLAlchemyError as e:
            raise AppealStoreError(
                message="Failed to list follow-ups",
                details={"operator_id": operator_id, "error": str(e)},
            ) from e

    async def toggle_follow_up(self, appeal_id: UUID) -> AppealRead:
        """Flip the completion mark of a follow-up.

        Raises:
            AppealNotFoundError: If the appeal does not exist.
            AppealStoreError: If the store fails.
        """
        try:
            async with self._database.session() as session:
                appeal = await AppealRepository(session).toggle_follow_up(appeal_id)
                result = AppealRead.model_validate(appeal) if appeal else None
        except SQLAlchemyError as e:
            raise AppealStoreError(
                message="Failed to update follow-up",
                details={"appeal_id": str(appeal_id), "error": str(e)},
            ) from e

        if result is None:
            raise AppealNotFoundError(appeal_id)
        logger.info(
            "Follow-up toggled",
            extra={"appeal_id": str(appeal_id), "completed": result.follow_up_completed},
        )
        return result
