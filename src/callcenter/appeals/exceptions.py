"""
Appeal store exceptions.
"""

from typing import Any

from callcenter.shared.exceptions import AppError, NotFoundError


class AppealStoreError(AppError):
    """Raised when the application store fails to read or write appeals."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, details=details)


class AppealNotFoundError(NotFoundError):
    def __init__(self, appeal_id: Any) -> None:
        super().__init__(
            message=f"Appeal not found: {appeal_id}",
            details={"appeal_id": str(appeal_id)},
        )
        self.appeal_id = appeal_id
