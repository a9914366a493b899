"""
Caller lookup: CRM card plus recent call history for an incoming number.
"""

from datetime import datetime
from typing import Sequence

from callcenter.calls.correlator import CallCorrelator
from callcenter.calls.exceptions import CallQueryError
from callcenter.calls.models import Call
from callcenter.crm.models import CallerContext, CrmContactCreate, CrmContactRead
from callcenter.crm.repository import CrmContactRepository
from callcenter.shared.database import DatabaseManager, get_app_database_manager
from callcenter.shared.logging import get_logger

logger = get_logger(__name__)

# Caller ids that never identify a person
ANONYMOUS_NUMBERS = frozenset({"anonymous", "unknown", "restricted"})


class CallerLookupService:
    """Service for CRM contacts and caller context."""

    def __init__(
        self,
        correlator: CallCorrelator,
        database: DatabaseManager | None = None,
    ) -> None:
        self._correlator = correlator
        self._database = database or get_app_database_manager()

    async def lookup(self, phone_number: str, now: datetime | None = None) -> CallerContext:
        """Build the caller context for a phone number.

        Args:
            phone_number: Caller number as reported by the telephony server.
            now: Reference time for the history window (defaults to now).

        Returns:
            CallerContext; empty for anonymous or missing numbers. A failing
            CDR store yields an empty history rather than an error.
        """
        phone_number = (phone_number or "").strip()
        if not phone_number or phone_number.lower() in ANONYMOUS_NUMBERS:
            return CallerContext(phone_number=phone_number)

        async with self._database.session() as session:
            contact = await CrmContactRepository(session).get_by_phone(phone_number)
            contact_read = CrmContactRead.model_validate(contact) if contact else None

        history: list[Call] = []
        try:
            history = await self._correlator.get_caller_history(phone_number, now=now)
        except CallQueryError:
            logger.warning(
                "Caller history unavailable",
                extra={"caller_number": phone_number},
                exc_info=True,
            )

        logger.debug(
            "Caller looked up",
            extra={
                "caller_number": phone_number,
                "known": contact_read is not None,
                "history": len(history),
            },
        )
        return CallerContext(phone_number=phone_number, contact=contact_read, history=history)

    async def save_contact(self, data: CrmContactCreate) -> CrmContactRead:
        async with self._database.session() as session:
            contact = await CrmContactRepository(session).upsert(data)
            result = CrmContactRead.model_validate(contact)
        logger.info("CRM contact saved", extra={"phone_number": result.phone_number})
        return result

    async def list_contacts(self) -> Sequence[CrmContactRead]:
        async with self._database.session() as session:
            contacts = await CrmContactRepository(session).list_all()
            return [CrmContactRead.model_validate(c) for c in contacts]
