"""
Engine entry point.

Builds the stores, the correlator and the live session registry from
settings, and tears them down again. Front-ends (web console, workers)
hold one CallCenterEngine per process.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from callcenter.appeals.models import AppealRead
from callcenter.appeals.store import AppealStore
from callcenter.calls.correlator import CallCorrelator
from callcenter.calls.models import Call, CallHistoryQuery, CallPage
from callcenter.calls.recordings import (
    RecordingLocator,
    recording_content_type,
    recording_path,
)
from callcenter.calls.reports import (
    KpiSummary,
    OperatorReportRow,
    QueueReportRow,
    build_operator_report,
    build_queue_report,
    compute_kpis,
)
from callcenter.config import Settings, get_settings
from callcenter.crm.service import CallerLookupService
from callcenter.session.registry import SessionRegistry
from callcenter.shared.database import DatabaseManager, close_database_managers
from callcenter.shared.logging import get_logger, setup_logging
from callcenter.telephony.config import TelephonyConfig
from callcenter.telephony.factory import get_telephony_control
from callcenter.telephony.interface import TelephonyControl

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecordingFile:
    """Where a call's recording lives and how to serve it."""

    call_id: str
    recording_id: str
    path: str
    content_type: str


@dataclass(frozen=True)
class AnnotatedCall:
    call: Call
    appeal: AppealRead | None = None


class CallCenterEngine:
    """Process-wide container of the engine components."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        control: TelephonyControl | None = None,
        telephony_config: TelephonyConfig | None = None,
        cdr_database: DatabaseManager | None = None,
        app_database: DatabaseManager | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.correlator = CallCorrelator(cdr_database, self.settings)
        self.recordings = RecordingLocator(self.correlator)
        self.appeals = AppealStore(app_database)
        self.callers = CallerLookupService(self.correlator, app_database)
        self.control = control or get_telephony_control()
        self.sessions = SessionRegistry(
            self.control,
            self.appeals,
            caller_lookup=self.callers.lookup,
            telephony_config=telephony_config,
            settings=self.settings,
        )

    @classmethod
    def start(cls, settings: Settings | None = None, **components) -> CallCenterEngine:
        """Configure logging and build the engine."""
        setup_logging()
        engine = cls(settings, **components)
        logger.info(
            "Engine started",
            extra={
                "env": engine.settings.app_env,
                "wrap_up_seconds": engine.settings.wrap_up_seconds,
            },
        )
        return engine

    async def aclose(self) -> None:
        """Close every session, the telephony transport and both database pools."""
        logger.info("Shutting down engine", extra={"open_sessions": len(self.sessions)})
        await self.sessions.close_all()
        await self.control.aclose()
        await close_database_managers()
        logger.info("Engine shutdown complete")

    # ---- call history ----------------------------------------------------

    async def operator_calls(self, query: CallHistoryQuery) -> list[AnnotatedCall]:
        """One page of calls, each with the appeal written for it (if any)."""
        page = await self.correlator.list_calls(query)
        appeals = await self.appeals.list_by_call_ids([c.correlation_id for c in page.items])
        return [AnnotatedCall(call=c, appeal=appeals.get(c.correlation_id)) for c in page.items]

    async def recording_file(self, call_id: str) -> RecordingFile | None:
        """Resolve a call id to its recording location; None without a recording.

        Raises:
            CallNotFoundError: If the call id resolves to nothing.
            RecordingPathError: If the recording name carries no date.
        """
        call = await self.recordings.resolve(call_id)
        if not call.recording_id:
            return None
        return RecordingFile(
            call_id=call.id,
            recording_id=call.recording_id,
            path=recording_path(call.recording_id, self.settings.recordings_base_path),
            content_type=recording_content_type(call.recording_id),
        )

    # ---- reports ---------------------------------------------------------

    async def _all_calls(self, date_from: date, date_to: date) -> CallPage:
        return await self.correlator.list_calls(
            CallHistoryQuery(date_from=date_from, date_to=date_to, fetch_all=True)
        )

    async def queue_report(
        self,
        date_from: date,
        date_to: date,
        queues: list[str] | None = None,
    ) -> list[QueueReportRow]:
        page = await self._all_calls(date_from, date_to)
        return build_queue_report(
            page.items,
            queues=queues,
            sla_target_seconds=self.settings.sla_target_seconds,
            queue_mappings=self.settings.queue_mappings,
        )

    async def operator_report(
        self,
        date_from: date,
        date_to: date,
        extensions: list[str],
    ) -> list[OperatorReportRow]:
        page = await self._all_calls(date_from, date_to)
        return build_operator_report(page.items, extensions)

    async def kpis(self, date_from: date, date_to: date) -> KpiSummary:
        page = await self._all_calls(date_from, date_to)
        return compute_kpis(page.items, self.settings.sla_target_seconds)
