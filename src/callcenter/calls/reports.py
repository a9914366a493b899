"""
Queue, operator and KPI aggregation over deduplicated Calls.

All functions are pure: they take the Calls already produced by the
correlator and never touch a store.
"""

from collections.abc import Iterable, Mapping, Sequence

from pydantic import BaseModel

from callcenter.calls.models import Call, CallStatus

NO_QUEUE = ""


class QueueReportRow(BaseModel):
    queue: str
    display_name: str
    total_calls: int = 0
    answered_calls: int = 0
    missed_calls: int = 0
    abandonment_rate: float = 0.0
    sla: float = 0.0
    avg_wait_time: float = 0.0
    avg_handle_time: float = 0.0


class OperatorReportRow(BaseModel):
    extension: str
    answered_calls: int = 0
    outgoing_calls: int = 0
    missed_calls: int = 0
    total_talk_time: int = 0
    avg_handle_time: float = 0.0


class KpiSummary(BaseModel):
    """Contact-center KPIs for one set of calls."""

    service_level: float = 0.0
    average_speed_of_answer: float = 0.0
    average_handle_time: float = 0.0
    abandonment_rate: float = 0.0
    missed_calls: int = 0
    total_calls: int = 0


def _percent(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole else 0.0


def _mean(values: Sequence[int]) -> float:
    return sum(values) / len(values) if values else 0.0


def compute_kpis(calls: Iterable[Call], sla_target_seconds: int = 30) -> KpiSummary:
    """Service level, ASA, AHT and abandonment for a set of calls.

    Service level is the share of answered calls whose wait time is within
    ``sla_target_seconds``. Everything not answered counts as abandoned.
    """
    calls = list(calls)
    answered = [c for c in calls if c.status == CallStatus.ANSWERED]
    missed = len(calls) - len(answered)
    within_sla = sum(1 for c in answered if c.wait_time <= sla_target_seconds)

    return KpiSummary(
        service_level=_percent(within_sla, len(answered)),
        average_speed_of_answer=_mean([c.wait_time for c in answered]),
        average_handle_time=_mean([c.talk_time for c in answered]),
        abandonment_rate=_percent(missed, len(calls)),
        missed_calls=missed,
        total_calls=len(calls),
    )


def build_queue_report(
    calls: Iterable[Call],
    queues: Iterable[str] | None = None,
    sla_target_seconds: int = 30,
    queue_mappings: Mapping[str, str] | None = None,
) -> list[QueueReportRow]:
    """Per-queue breakdown, busiest queue first.

    Args:
        calls: Deduplicated calls of the reporting period.
        queues: Queues to report on; defaults to every queue seen in ``calls``.
        sla_target_seconds: Answer-time target for the SLA percentage.
        queue_mappings: Optional queue id -> display name.
    """
    calls = list(calls)
    mappings = queue_mappings or {}
    if queues is None:
        queues = sorted({c.queue for c in calls if c.queue != NO_QUEUE})

    rows: list[QueueReportRow] = []
    for queue in queues:
        kpis = compute_kpis((c for c in calls if c.queue == queue), sla_target_seconds)
        rows.append(
            QueueReportRow(
                queue=queue,
                display_name=mappings.get(queue, queue),
                total_calls=kpis.total_calls,
                answered_calls=kpis.total_calls - kpis.missed_calls,
                missed_calls=kpis.missed_calls,
                abandonment_rate=kpis.abandonment_rate,
                sla=kpis.service_level,
                avg_wait_time=kpis.average_speed_of_answer,
                avg_handle_time=kpis.average_handle_time,
            )
        )
    # stable sort keeps the requested queue order among equals
    rows.sort(key=lambda row: row.total_calls, reverse=True)
    return rows


def build_operator_report(
    calls: Iterable[Call],
    extensions: Iterable[str],
) -> list[OperatorReportRow]:
    """Per-operator answered / outgoing / missed counts and talk time."""
    calls = list(calls)
    rows: list[OperatorReportRow] = []
    for ext in extensions:
        answered = [
            c
            for c in calls
            if not c.is_outgoing
            and c.operator_extension == ext
            and c.status == CallStatus.ANSWERED
        ]
        outgoing = [c for c in calls if c.is_outgoing and c.caller_number == ext]
        missed = [
            c
            for c in calls
            if not c.is_outgoing
            and c.operator_extension == ext
            and c.status != CallStatus.ANSWERED
        ]
        talk_time = sum(c.talk_time for c in answered)
        rows.append(
            OperatorReportRow(
                extension=ext,
                answered_calls=len(answered),
                outgoing_calls=len(outgoing),
                missed_calls=len(missed),
                total_talk_time=talk_time,
                avg_handle_time=talk_time / len(answered) if answered else 0.0,
            )
        )
    return rows
