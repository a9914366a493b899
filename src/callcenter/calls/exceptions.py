"""
Call history exceptions.

Callers must be able to tell "no data" (CallNotFoundError) apart from a
failing store (CallQueryError).
"""

from typing import Any

from callcenter.shared.exceptions import AppError, NotFoundError


class CallNotFoundError(NotFoundError):
    """Raised when no leg matches a call id, even with the prefix fallback."""

    def __init__(self, call_id: str) -> None:
        super().__init__(message=f"Call not found: {call_id}", details={"call_id": call_id})
        self.call_id = call_id


class CallQueryError(AppError):
    """Raised when the CDR store fails to answer a query."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, details=details)


class RecordingPathError(AppError):
    """Raised when a recording id does not carry a recognisable date."""

    def __init__(self, recording_id: str) -> None:
        super().__init__(
            message=f"Could not determine date part from recording: {recording_id}",
            details={"recording_id": recording_id},
        )
        self.recording_id = recording_id
