"""
Repository for CDR queries.

Deduplication pattern: partition the legs of the requested range by
interaction key, rank them (answered non-queue leg first, then newest),
keep rank 1, then apply the interaction-level filters. Ranked rows also
carry ``interaction_queue``: the destination of the interaction's queue leg.
"""

from datetime import datetime
from typing import Any, Protocol, Sequence

from sqlalchemy import Select, and_, case, func, or_, select
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from callcenter.calls.models import CallType, CdrRecord
from callcenter.calls.normalizer import DEFAULT_INTERNAL_CONTEXT, DEFAULT_QUEUE_CONTEXT

ANSWERED = "ANSWERED"

cdr = CdrRecord.__table__


def interaction_key(table: Any = cdr) -> ColumnElement[str]:
    """Linked id, falling back to the leg id for rows that lack one."""
    return func.coalesce(func.nullif(table.c.linkedid, ""), table.c.uniqueid)


def operator_channel_clause(table: Any, extension: str) -> ColumnElement[bool]:
    """Destination channel belongs to the extension (``PJSIP/101-000a`` or ``PJSIP/101``)."""
    return or_(
        table.c.dstchannel.contains(f"/{extension}-", autoescape=True),
        table.c.dstchannel.endswith(f"/{extension}", autoescape=True),
    )


class CdrRepositoryProtocol(Protocol):
    """Protocol for CDR repository operations."""

    async def list_representatives(
        self,
        start: datetime,
        end: datetime,
        *,
        operator_extension: str | None = None,
        call_type: CallType | None = None,
        caller_number: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[Sequence[Row[Any]], int]:
        """Deduplicated, filtered page plus total count."""
        ...

    async def get_by_leg_id(self, leg_id: str) -> Row[Any] | None:
        ...

    async def get_representative(self, correlation_id: str) -> Row[Any] | None:
        ...

    async def get_by_id_prefix(self, prefix: str) -> Row[Any] | None:
        ...

    async def get_legs(self, correlation_id: str) -> Sequence[Row[Any]]:
        ...


class CdrRepository:
    """Read-only repository over the telephony ``cdr`` table."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        queue_context: str = DEFAULT_QUEUE_CONTEXT,
        internal_context: str = DEFAULT_INTERNAL_CONTEXT,
    ) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
            queue_context: Routing context of abstract queue legs.
            internal_context: Routing context of operator-originated legs.
        """
        self._session = session
        self._queue_context = queue_context
        self._internal_context = internal_context

    # ---- building blocks -------------------------------------------------

    def _priority(self, table: Any = cdr) -> ColumnElement[int]:
        """1 for the agent leg that actually answered, else 0."""
        return case(
            (
                and_(
                    table.c.disposition == ANSWERED,
                    table.c.dcontext != self._queue_context,
                ),
                1,
            ),
            else_=0,
        )

    def _ranked(self, start: datetime, end: datetime) -> Any:
        rank = (
            func.row_number()
            .over(
                partition_by=interaction_key(cdr),
                order_by=(
                    self._priority(cdr).desc(),
                    cdr.c.calldate.desc(),
                    cdr.c.uniqueid.desc(),
                ),
            )
            .label("rn")
        )
        queue = (
            func.max(case((cdr.c.dcontext == self._queue_context, func.nullif(cdr.c.dst, ""))))
            .over(partition_by=interaction_key(cdr))
            .label("interaction_queue")
        )
        return (
            select(*cdr.c, interaction_key(cdr).label("interaction_key"), queue, rank)
            .where(cdr.c.calldate.between(start, end))
            .subquery("ranked")
        )

    def _keys_where(self, start: datetime, end: datetime, *conditions: Any) -> Select[Any]:
        legs = cdr.alias("legs")
        return (
            select(interaction_key(legs))
            .where(legs.c.calldate.between(start, end))
            .where(*[condition(legs) for condition in conditions])
        )

    def _key_filters(
        self,
        start: datetime,
        end: datetime,
        operator_extension: str | None,
        call_type: CallType | None,
        caller_number: str | None,
    ) -> list[tuple[Select[Any], bool]]:
        """Interaction-level filters as (key subquery, negate) pairs."""
        ext = operator_extension
        internal = self._internal_context
        filters: list[tuple[Select[Any], bool]] = []

        def answered_agent_leg(t: Any) -> Any:
            return and_(t.c.disposition == ANSWERED, t.c.dcontext != self._queue_context)

        def operator_answered(t: Any) -> Any:
            return and_(operator_channel_clause(t, ext), t.c.disposition == ANSWERED)

        def operator_offered(t: Any) -> Any:
            return operator_channel_clause(t, ext)

        def operator_originated(t: Any) -> Any:
            return and_(t.c.dcontext == internal, t.c.src == ext)

        def internal_originated(t: Any) -> Any:
            return t.c.dcontext == internal

        def any_answered(t: Any) -> Any:
            return t.c.disposition == ANSWERED

        if call_type == CallType.ANSWERED:
            condition = operator_answered if ext else answered_agent_leg
            filters.append((self._keys_where(start, end, condition), False))
        elif call_type == CallType.OUTGOING:
            condition = operator_originated if ext else internal_originated
            filters.append((self._keys_where(start, end, condition), False))
        elif call_type == CallType.MISSED:
            if ext:
                filters.append((self._keys_where(start, end, operator_offered), False))
            filters.append((self._keys_where(start, end, any_answered), True))
        elif ext:
            filters.append(
                (
                    self._keys_where(
                        start,
                        end,
                        lambda t: or_(operator_offered(t), operator_originated(t)),
                    ),
                    False,
                )
            )

        if caller_number:
            filters.append(
                (self._keys_where(start, end, lambda t: t.c.src == caller_number), False)
            )
        return filters

    # ---- queries ---------------------------------------------------------

    async def list_representatives(
        self,
        start: datetime,
        end: datetime,
        *,
        operator_extension: str | None = None,
        call_type: CallType | None = None,
        caller_number: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[Sequence[Row[Any]], int]:
        """Get one representative leg per interaction with pagination.

        Args:
            start: Inclusive lower bound on the leg start time.
            end: Inclusive upper bound on the leg start time.
            operator_extension: Optional operator filter.
            call_type: Optional disposition class filter.
            caller_number: Optional caller filter.
            offset: Rows to skip.
            limit: Page size, None for all rows.

        Returns:
            Tuple of (representative rows, total deduplicated count).
        """
        ranked = self._ranked(start, end)
        base_query = select(ranked).where(ranked.c.rn == 1)

        for keys, negate in self._key_filters(
            start, end, operator_extension, call_type, caller_number
        ):
            clause = ranked.c.interaction_key.in_(keys)
            base_query = base_query.where(~clause if negate else clause)

        count_stmt = select(func.count()).select_from(base_query.subquery())
        total_result = await self._session.execute(count_stmt)
        total = total_result.scalar() or 0

        stmt = base_query.order_by(ranked.c.calldate.desc(), ranked.c.uniqueid.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return result.all(), int(total)

    async def get_by_leg_id(self, leg_id: str) -> Row[Any] | None:
        stmt = select(cdr).where(cdr.c.uniqueid == leg_id).limit(1)
        result = await self._session.execute(stmt)
        return result.first()

    async def get_representative(self, correlation_id: str) -> Row[Any] | None:
        """Representative leg of one interaction, by the dedup priority."""
        stmt = (
            select(cdr)
            .where(interaction_key(cdr) == correlation_id)
            .order_by(self._priority(cdr).desc(), cdr.c.calldate.desc(), cdr.c.uniqueid.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.first()

    async def get_by_id_prefix(self, prefix: str) -> Row[Any] | None:
        """Newest leg whose own id or linked id starts with ``prefix``."""
        stmt = (
            select(cdr)
            .where(
                or_(
                    cdr.c.uniqueid.startswith(prefix, autoescape=True),
                    cdr.c.linkedid.startswith(prefix, autoescape=True),
                )
            )
            .order_by(cdr.c.calldate.desc(), cdr.c.uniqueid.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.first()

    async def get_legs(self, correlation_id: str) -> Sequence[Row[Any]]:
        """All legs of one interaction, oldest first."""
        stmt = (
            select(cdr)
            .where(interaction_key(cdr) == correlation_id)
            .order_by(cdr.c.calldate.asc(), cdr.c.uniqueid.asc())
        )
        result = await self._session.execute(stmt)
        return result.all()
