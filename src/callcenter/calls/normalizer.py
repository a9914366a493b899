"""
Record normalizer: one raw CDR leg -> one canonical Call.

All helpers are pure and never raise on malformed input; an unparseable
field degrades to "unset" so a single bad row cannot abort a batch.
"""

import posixpath
import re
from datetime import datetime
from typing import Any, Protocol

from callcenter.calls.models import Call, CallStatus

DEFAULT_QUEUE_CONTEXT = "ext-queues"
DEFAULT_INTERNAL_CONTEXT = "from-internal"

OPERATOR_CHANNEL_RE = re.compile(r"(?:PJSIP|SIP)/(\d+)")
SATISFACTION_VOTE_RE = re.compile(r"Vote:\s*(\d+)")

DISPOSITION_MAP: dict[str, CallStatus] = {
    "ANSWERED": CallStatus.ANSWERED,
    "NO ANSWER": CallStatus.NO_ANSWER,
    "BUSY": CallStatus.BUSY,
    "FAILED": CallStatus.FAILED,
}


class RawDetailRecord(Protocol):
    """Attributes read from a CDR leg (ORM instance or result row)."""

    calldate: datetime
    src: str
    dst: str
    dcontext: str
    channel: str
    dstchannel: str
    duration: int
    billsec: int
    disposition: str
    uniqueid: str
    linkedid: str
    userfield: str
    recordingfile: str


def extract_operator_extension(dst_channel: str | None) -> str | None:
    """Return the extension of a ``TECH/<digits>`` channel, else None."""
    if not dst_channel:
        return None
    match = OPERATOR_CHANNEL_RE.search(dst_channel)
    return match.group(1) if match else None


def resolve_queue(
    context: str | None,
    destination: str | None,
    queue_context: str = DEFAULT_QUEUE_CONTEXT,
) -> str:
    """Queue legs carry the queue in ``dst``; direct legs in the context."""
    if context == queue_context:
        return destination or ""
    return context or ""


def decode_satisfaction_vote(userfield: str | None) -> int | None:
    if not userfield:
        return None
    match = SATISFACTION_VOTE_RE.search(userfield)
    if not match:
        return None
    try:
        return int(match.group(1))
    except ValueError:
        return None


def _as_seconds(value: Any) -> int:
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, seconds)


def compute_wait_time(duration: Any, talk_time: Any) -> int:
    """Time before answer; never negative."""
    return max(0, _as_seconds(duration) - _as_seconds(talk_time))


def map_disposition(disposition: str | None) -> CallStatus:
    """Map a CDR disposition; anything unrecognised counts as failed."""
    key = (disposition or "").strip().upper()
    return DISPOSITION_MAP.get(key, CallStatus.FAILED)


def recording_basename(recording_file: str | None) -> str | None:
    if not recording_file or not recording_file.strip():
        return None
    name = posixpath.basename(recording_file.strip().replace("\\", "/"))
    return name or None


def normalize_record(
    record: RawDetailRecord,
    *,
    queue_context: str = DEFAULT_QUEUE_CONTEXT,
    internal_context: str = DEFAULT_INTERNAL_CONTEXT,
) -> Call:
    """Build the canonical Call for one raw leg."""
    duration = _as_seconds(record.duration)
    talk_time = min(_as_seconds(record.billsec), duration)
    context = record.dcontext or ""

    return Call(
        id=record.uniqueid,
        correlation_id=record.linkedid or record.uniqueid,
        caller_number=record.src or "",
        called_number=record.dst or "",
        operator_extension=extract_operator_extension(record.dstchannel),
        status=map_disposition(record.disposition),
        start_time=record.calldate,
        duration=duration,
        talk_time=talk_time,
        wait_time=compute_wait_time(duration, talk_time),
        queue=resolve_queue(context, record.dst, queue_context),
        is_outgoing=context == internal_context,
        satisfaction_vote=decode_satisfaction_vote(record.userfield),
        recording_id=recording_basename(record.recordingfile),
    )
