"""
Recording locator.

The representative leg of an interaction does not always carry the
recording reference; the queue leg sometimes holds it instead (or the
other way round). The locator falls back to the sibling legs.
"""

import posixpath
import re

from callcenter.calls.correlator import CallCorrelator
from callcenter.calls.exceptions import RecordingPathError
from callcenter.calls.models import Call
from callcenter.shared.logging import get_logger

logger = get_logger(__name__)

RECORDING_DATE_RE = re.compile(r"(?<!\d)(\d{4})(\d{2})(\d{2})-\d{6}(?!\d)")


class RecordingLocator:
    """Attach a recording id to a resolved Call."""

    def __init__(self, correlator: CallCorrelator) -> None:
        self._correlator = correlator

    async def locate(self, call: Call) -> Call:
        """Return the call with its recording id filled in when one exists.

        The call itself wins; otherwise the oldest sibling leg with a
        recording is used. Without any recording the call is returned
        unchanged.
        """
        if call.recording_id:
            return call

        siblings = await self._correlator.get_siblings(call.correlation_id)
        for sibling in siblings:
            if sibling.recording_id:
                logger.debug(
                    "Recording found on sibling leg",
                    extra={
                        "call_id": call.id,
                        "sibling_id": sibling.id,
                        "recording_id": sibling.recording_id,
                    },
                )
                return call.model_copy(update={"recording_id": sibling.recording_id})

        logger.debug(
            "No recording for interaction",
            extra={"call_id": call.id, "correlation_id": call.correlation_id},
        )
        return call

    async def resolve(self, call_id: str) -> Call:
        """get_call + locate."""
        call = await self._correlator.get_call(call_id)
        return await self.locate(call)


def recording_path(recording_id: str, base_path: str) -> str:
    """Storage path ``<base>/<YYYY>/<MM>/<DD>/<file>`` of a recording.

    Raises:
        RecordingPathError: If the file name carries no ``YYYYMMDD-HHMMSS`` stamp.
    """
    name = posixpath.basename((recording_id or "").strip())
    match = RECORDING_DATE_RE.search(name)
    if not name or not match:
        raise RecordingPathError(recording_id)
    year, month, day = match.groups()
    return posixpath.join(base_path.rstrip("/") or "/", year, month, day, name)


def recording_content_type(recording_id: str) -> str:
    if recording_id.lower().endswith(".mp3"):
        return "audio/mpeg"
    return "audio/wav"
