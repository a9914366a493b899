"""
Call correlator: deduplicated, filtered, paginated call history.

Every public operation opens its own short-lived session on the CDR
store and releases it before returning; no connection is held between
requests.
"""

from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from callcenter.calls.exceptions import CallNotFoundError, CallQueryError
from callcenter.calls.models import Call, CallHistoryQuery, CallPage, CallType
from callcenter.calls.normalizer import normalize_record
from callcenter.calls.repository import CdrRepository
from callcenter.config import Settings, get_settings
from callcenter.shared.database import DatabaseManager, get_cdr_database_manager
from callcenter.shared.logging import get_logger

logger = get_logger(__name__)


class CallCorrelator:
    """Turns raw CDR legs into one canonical Call per interaction."""

    def __init__(
        self,
        database: DatabaseManager | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._database = database or get_cdr_database_manager()
        self._settings = settings or get_settings()

    def _repository(self, session: Any) -> CdrRepository:
        return CdrRepository(
            session,
            queue_context=self._settings.queue_context,
            internal_context=self._settings.internal_context,
        )

    def _normalize(self, row: Any) -> Call:
        call = normalize_record(
            row,
            queue_context=self._settings.queue_context,
            internal_context=self._settings.internal_context,
        )
        # the answering agent leg routes on a non-queue context
        queue = getattr(row, "interaction_queue", None)
        if queue and queue != call.queue:
            call = call.model_copy(update={"queue": queue})
        return call

    async def list_calls(self, query: CallHistoryQuery) -> CallPage:
        """List one representative Call per interaction for a date range.

        Args:
            query: Date range, filters and pagination.

        Returns:
            CallPage with the requested page and the filtered total.

        Raises:
            CallQueryError: If the CDR store fails.
        """
        start, end = query.bounds
        offset = 0 if query.fetch_all else query.offset
        limit = None if query.fetch_all else query.limit

        try:
            async with self._database.session() as session:
                rows, total = await self._repository(session).list_representatives(
                    start,
                    end,
                    operator_extension=query.operator_extension,
                    call_type=query.call_type,
                    caller_number=query.caller_number,
                    offset=offset,
                    limit=limit,
                )
        except SQLAlchemyError as e:
            logger.exception(
                "CDR list query failed",
                extra={
                    "date_from": query.date_from.isoformat(),
                    "date_to": query.date_to.isoformat(),
                    "operator_extension": query.operator_extension,
                    "call_type": query.call_type.value if query.call_type else None,
                },
            )
            raise CallQueryError(
                message="Failed to query call history",
                details={"error": str(e)},
            ) from e

        items = [self._normalize(row) for row in rows]
        logger.debug(
            "Call history listed",
            extra={"total": total, "returned": len(items), "page": query.page},
        )
        return CallPage(
            items=items,
            total=total,
            page=1 if query.fetch_all else query.page,
            limit=limit,
        )

    async def list_missed_calls(
        self,
        date_from: date,
        date_to: date,
        *,
        operator_extension: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> CallPage:
        """Interactions in the range that no leg ever answered."""
        query = CallHistoryQuery(
            date_from=date_from,
            date_to=date_to,
            operator_extension=operator_extension,
            call_type=CallType.MISSED,
            page=page,
            limit=limit,
        )
        return await self.list_calls(query)

    async def get_call(self, call_id: str) -> Call:
        """Resolve a Call from a leg id or a correlation id.

        Lookup order: exact leg id, then correlation id (representative
        priority), then, for composite ``<base>.<suffix>`` ids, the newest
        leg whose id starts with ``<base>.``.

        Raises:
            CallNotFoundError: If nothing matches.
            CallQueryError: If the CDR store fails.
        """
        call_id = (call_id or "").strip()
        if not call_id:
            raise CallNotFoundError(call_id)

        try:
            async with self._database.session() as session:
                repo = self._repository(session)
                row = await repo.get_by_leg_id(call_id)
                if row is None:
                    row = await repo.get_representative(call_id)
                if row is None and "." in call_id:
                    base = call_id.rsplit(".", 1)[0]
                    row = await repo.get_by_id_prefix(f"{base}.")
                    if row is not None:
                        logger.info(
                            "Call resolved by id prefix",
                            extra={"call_id": call_id, "matched_id": row.uniqueid},
                        )
        except SQLAlchemyError as e:
            logger.exception("CDR lookup failed", extra={"call_id": call_id})
            raise CallQueryError(
                message="Failed to resolve call",
                details={"call_id": call_id, "error": str(e)},
            ) from e

        if row is None:
            logger.warning("Call not found", extra={"call_id": call_id})
            raise CallNotFoundError(call_id)
        return self._normalize(row)

    async def get_siblings(self, correlation_id: str) -> list[Call]:
        """All legs of one interaction, oldest first."""
        try:
            async with self._database.session() as session:
                rows = await self._repository(session).get_legs(correlation_id)
        except SQLAlchemyError as e:
            logger.exception(
                "CDR sibling query failed",
                extra={"correlation_id": correlation_id},
            )
            raise CallQueryError(
                message="Failed to load interaction legs",
                details={"correlation_id": correlation_id, "error": str(e)},
            ) from e
        return [self._normalize(row) for row in rows]

    async def get_caller_history(
        self,
        caller_number: str,
        now: datetime | None = None,
    ) -> list[Call]:
        """Most recent interactions of one caller, newest first."""
        if not caller_number or not caller_number.strip():
            return []
        now = now or datetime.now()
        days = self._settings.caller_history_days
        query = CallHistoryQuery(
            date_from=now.date() - timedelta(days=days - 1),
            date_to=now.date(),
            caller_number=caller_number,
            limit=self._settings.caller_history_limit,
        )
        page = await self.list_calls(query)
        return page.items
