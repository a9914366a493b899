"""Tests for queue, operator and KPI aggregation."""

from datetime import datetime

import pytest

from callcenter.calls.models import Call, CallStatus
from callcenter.calls.reports import build_operator_report, build_queue_report, compute_kpis


def make_call(
    call_id: str,
    *,
    status: CallStatus = CallStatus.ANSWERED,
    queue: str = "305",
    operator: str | None = "101",
    wait: int = 10,
    talk: int = 60,
    outgoing: bool = False,
    caller: str = "79990001111",
) -> Call:
    return Call(
        id=call_id,
        correlation_id=call_id,
        caller_number=caller,
        operator_extension=operator,
        status=status,
        start_time=datetime(2024, 5, 10, 10, 0),
        duration=wait + talk,
        talk_time=talk,
        wait_time=wait,
        queue=queue,
        is_outgoing=outgoing,
    )


@pytest.fixture
def calls() -> list[Call]:
    return [
        make_call("1", wait=5, talk=100),
        make_call("2", wait=40, talk=200),
        make_call("3", status=CallStatus.NO_ANSWER, wait=30, talk=0),
        make_call("4", queue="410", operator="102", wait=20, talk=90),
        make_call(
            "5",
            queue="from-internal",
            operator=None,
            wait=3,
            talk=50,
            outgoing=True,
            caller="101",
        ),
        make_call("6", queue="410", operator="102", status=CallStatus.BUSY, wait=0, talk=0),
    ]


class TestKpis:
    def test_summary(self, calls: list[Call]) -> None:
        kpis = compute_kpis(calls[:3])

        assert kpis.total_calls == 3
        assert kpis.missed_calls == 1
        assert kpis.abandonment_rate == pytest.approx(100 / 3)
        assert kpis.service_level == pytest.approx(50.0)
        assert kpis.average_speed_of_answer == pytest.approx(22.5)
        assert kpis.average_handle_time == pytest.approx(150.0)

    def test_sla_target(self, calls: list[Call]) -> None:
        assert compute_kpis(calls[:2], sla_target_seconds=40).service_level == pytest.approx(100.0)

    def test_empty(self) -> None:
        kpis = compute_kpis([])

        assert kpis.total_calls == 0
        assert kpis.service_level == 0.0
        assert kpis.abandonment_rate == 0.0


class TestQueueReport:
    def test_busiest_queue_first(self, calls: list[Call]) -> None:
        rows = build_queue_report(calls, queue_mappings={"305": "Registry"})

        assert [r.queue for r in rows] == ["305", "410", "from-internal"]
        registry = rows[0]
        assert registry.display_name == "Registry"
        assert registry.total_calls == 3
        assert registry.answered_calls == 2
        assert registry.missed_calls == 1
        assert rows[1].display_name == "410"
        assert rows[1].missed_calls == 1

    def test_requested_queues_only(self, calls: list[Call]) -> None:
        rows = build_queue_report(calls, queues=["410", "999"])

        assert [(r.queue, r.total_calls) for r in rows] == [("410", 2), ("999", 0)]

    def test_ties_keep_requested_order(self) -> None:
        rows = build_queue_report(
            [make_call("1", queue="b"), make_call("2", queue="a")],
            queues=["b", "a"],
        )

        assert [r.queue for r in rows] == ["b", "a"]


class TestOperatorReport:
    def test_counts(self, calls: list[Call]) -> None:
        rows = {r.extension: r for r in build_operator_report(calls, ["101", "102", "103"])}

        assert rows["101"].answered_calls == 2
        assert rows["101"].outgoing_calls == 1
        assert rows["101"].missed_calls == 1
        assert rows["101"].total_talk_time == 300
        assert rows["101"].avg_handle_time == pytest.approx(150.0)

        assert rows["102"].answered_calls == 1
        assert rows["102"].missed_calls == 1

        assert rows["103"].answered_calls == 0
        assert rows["103"].avg_handle_time == 0.0
