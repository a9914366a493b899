"""
Wrap-up auto-commit.

The annotation draft of the active interaction is written to the appeal
store either when the operator submits it or when the wrap-up countdown
expires. On expiry an incomplete draft is discarded (no partial record)
and a store failure never blocks the operator.
"""

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as SchemaValidationError

from callcenter.appeals.exceptions import AppealStoreError
from callcenter.appeals.models import (
    AppealCategory,
    AppealCreate,
    AppealPriority,
    AppealRead,
    AppealResolution,
    Satisfaction,
)
from callcenter.appeals.store import AppealStoreProtocol
from callcenter.session.models import ActiveInteraction
from callcenter.shared.exceptions import ValidationError
from callcenter.shared.logging import get_logger

logger = get_logger(__name__)


class AnnotationDraft(BaseModel):
    """In-progress annotation form of one interaction."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    category: AppealCategory | None = None
    description: str = ""
    resolution: AppealResolution | None = None
    priority: AppealPriority = AppealPriority.MEDIUM
    satisfaction: Satisfaction | None = None
    notes: str = ""
    follow_up: bool = False

    @property
    def missing_fields(self) -> list[str]:
        missing = []
        if self.category is None:
            missing.append("category")
        if not self.description.strip():
            missing.append("description")
        if self.resolution is None:
            missing.append("resolution")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields

    def to_appeal(
        self,
        interaction: ActiveInteraction,
        operator_id: str,
        operator_name: str = "",
    ) -> AppealCreate:
        return AppealCreate(
            call_id=interaction.call_id,
            operator_id=operator_id,
            operator_name=operator_name,
            caller_number=interaction.caller_number,
            category=self.category,
            description=self.description,
            resolution=self.resolution,
            priority=self.priority,
            satisfaction=self.satisfaction,
            notes=self.notes,
            follow_up=self.follow_up,
        )


class WrapUpCommitter:
    """Writes annotation drafts through the appeal store."""

    def __init__(
        self,
        store: AppealStoreProtocol,
        operator_id: str,
        operator_name: str = "",
    ) -> None:
        self._store = store
        self._operator_id = operator_id
        self._operator_name = operator_name

    async def auto_commit(
        self,
        interaction: ActiveInteraction,
        draft: AnnotationDraft,
    ) -> AppealRead | None:
        """Timer-expiry path: write a complete draft, drop anything else.

        Never raises on store failure; the loss is logged.
        """
        extra = {"operator_id": self._operator_id, "call_id": interaction.call_id}
        if not draft.is_complete:
            logger.info(
                "Wrap-up expired with incomplete annotation, discarded",
                extra={**extra, "missing_fields": draft.missing_fields},
            )
            return None

        try:
            data = draft.to_appeal(interaction, self._operator_id, self._operator_name)
        except SchemaValidationError as e:
            logger.warning(
                "Wrap-up annotation rejected, discarded",
                extra={**extra, "errors": e.errors()},
            )
            return None

        try:
            appeal = await self._store.save(data)
        except AppealStoreError:
            logger.exception("Wrap-up auto-commit failed", extra=extra)
            return None

        logger.info("Wrap-up annotation auto-committed", extra={**extra, "appeal_id": str(appeal.id)})
        return appeal

    async def submit(self, interaction: ActiveInteraction, draft: AnnotationDraft) -> AppealRead:
        """Manual path: the operator pressed save.

        Raises:
            ValidationError: If a mandatory field is missing.
            AppealStoreError: If the store fails.
        """
        if not draft.is_complete:
            raise ValidationError(
                message="Annotation is missing mandatory fields",
                details={"missing_fields": draft.missing_fields},
            )
        appeal = await self._store.save(
            draft.to_appeal(interaction, self._operator_id, self._operator_name)
        )
        logger.info(
            "Annotation submitted",
            extra={
                "operator_id": self._operator_id,
                "call_id": interaction.call_id,
                "appeal_id": str(appeal.id),
            },
        )
        return appeal
