"""
Operator session state machine.

    offline -> available -> ringing -> on-call -> wrap-up -> available

- on-call is entered whenever the poller reports on-call; the caller
  lookup runs once per caller number per session.
- Any non-on-call report while an interaction is tracked enters wrap-up
  and starts the countdown. No explicit hangup event is needed.
- A new ringing/on-call report during wrap-up cancels the countdown
  without writing anything and starts handling the new call.
- Countdown expiry writes the draft (when complete) and returns the
  session to available; a manual submit during wrap-up does the same
  immediately.
- A missing snapshot (failed poll) changes nothing.

Each session owns its timer and lookup tasks; sessions share no state.
"""

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from callcenter.appeals.models import AppealRead
from callcenter.config import Settings, get_settings
from callcenter.session.models import (
    ActiveInteraction,
    ChannelSnapshot,
    SessionState,
    SessionStatus,
    utcnow,
)
from callcenter.session.wrapup import AnnotationDraft, WrapUpCommitter
from callcenter.shared.exceptions import ValidationError
from callcenter.shared.logging import correlation_id_var, get_logger

logger = get_logger(__name__)

CallerLookup = Callable[[str], Awaitable[Any]]


class OperatorSession:
    """State machine of one operator workspace."""

    def __init__(
        self,
        agent_id: str,
        extension: str,
        committer: WrapUpCommitter,
        *,
        caller_lookup: CallerLookup | None = None,
        wrap_up_seconds: float | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._state = SessionState(agent_id=agent_id, extension=extension)
        self._committer = committer
        self._caller_lookup = caller_lookup
        self._wrap_up_seconds = (
            wrap_up_seconds if wrap_up_seconds is not None else settings.wrap_up_seconds
        )
        self._draft = AnnotationDraft()
        self._wrap_up_task: asyncio.Task[AppealRead | None] | None = None
        self._lookup_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._looked_up_caller: str | None = None
        self._closed = False

    # ---- read side -------------------------------------------------------

    @property
    def agent_id(self) -> str:
        return self._state.agent_id

    @property
    def extension(self) -> str:
        return self._state.extension

    @property
    def state(self) -> SessionState:
        """A copy of the current state."""
        return dataclasses.replace(self._state)

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def draft(self) -> AnnotationDraft:
        return self._draft

    @property
    def wrap_up_task(self) -> asyncio.Task[AppealRead | None] | None:
        return self._wrap_up_task

    @property
    def closed(self) -> bool:
        return self._closed

    def _log_extra(self, **extra: Any) -> dict[str, Any]:
        return {
            "agent_id": self._state.agent_id,
            "extension": self._state.extension,
            "call_id": self._state.correlation_id,
            **extra,
        }

    # ---- transitions -----------------------------------------------------

    def apply(self, snapshot: ChannelSnapshot | None) -> SessionState:
        """Feed one poll result into the state machine.

        Args:
            snapshot: Normalized poll result; None when the poll failed.

        Returns:
            The resulting state (a copy).
        """
        if self._closed or snapshot is None:
            return self.state

        current = self._state.status
        incoming = snapshot.status

        if current == SessionStatus.WRAP_UP:
            if incoming in (SessionStatus.RINGING, SessionStatus.ON_CALL):
                self._cancel_wrap_up("new call arrived")
                self._begin_interaction(snapshot)
                if incoming == SessionStatus.ON_CALL:
                    self._schedule_lookup()
            # available/offline during wrap-up: the countdown keeps running
            return self.state

        if incoming == SessionStatus.ON_CALL:
            if current == SessionStatus.ON_CALL and self._state.interaction is not None:
                self._refresh_interaction(self._state.interaction, snapshot)
            else:
                self._begin_interaction(snapshot)
            self._schedule_lookup()
        elif current == SessionStatus.ON_CALL and self._state.interaction is not None:
            self._enter_wrap_up(self._state.interaction)
        elif incoming == SessionStatus.RINGING:
            interaction = self._state.interaction
            hint = snapshot.correlation_hint or snapshot.channel_id
            if current != SessionStatus.RINGING or interaction is None or interaction.call_id != hint:
                self._begin_interaction(snapshot)
        else:
            self._clear_interaction()
            self._set_status(incoming)

        return self.state

    def _set_status(self, status: SessionStatus) -> None:
        previous = self._state.status
        self._state.status = status
        self._state.updated_at = utcnow()
        if previous != status:
            logger.info(
                "Session state changed",
                extra=self._log_extra(from_status=previous.value, to_status=status.value),
            )

    def _begin_interaction(self, snapshot: ChannelSnapshot) -> None:
        interaction = ActiveInteraction.from_snapshot(snapshot)
        previous = self._state.interaction
        if previous is None or previous.call_id != interaction.call_id:
            self._draft = AnnotationDraft()
            self._state.caller_context = None
            self._looked_up_caller = None
        else:
            interaction = dataclasses.replace(interaction, started_at=previous.started_at)
        self._state.interaction = interaction
        self._state.wrap_up_deadline = None
        self._set_status(snapshot.status)

    def _refresh_interaction(self, interaction: ActiveInteraction, snapshot: ChannelSnapshot) -> None:
        call_id = snapshot.correlation_hint or snapshot.channel_id or interaction.call_id
        caller = snapshot.caller_number or interaction.caller_number
        if call_id != interaction.call_id:
            logger.info(
                "Interaction changed while on call",
                extra=self._log_extra(new_call_id=call_id),
            )
        if call_id != interaction.call_id or caller != interaction.caller_number:
            self._state.interaction = dataclasses.replace(
                interaction,
                call_id=call_id,
                caller_number=caller,
                queue=snapshot.queue_hint or interaction.queue,
                channel_id=snapshot.channel_id or interaction.channel_id,
            )
            self._state.updated_at = utcnow()

    def _clear_interaction(self) -> None:
        self._state.interaction = None
        self._state.caller_context = None
        self._state.wrap_up_deadline = None
        self._looked_up_caller = None
        self._draft = AnnotationDraft()

    # ---- wrap-up countdown -------------------------------------------------

    def _enter_wrap_up(self, interaction: ActiveInteraction) -> None:
        self._state.wrap_up_deadline = utcnow() + timedelta(seconds=self._wrap_up_seconds)
        self._set_status(SessionStatus.WRAP_UP)
        task = asyncio.create_task(self._wrap_up_countdown(interaction))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        self._wrap_up_task = task
        logger.info(
            "Wrap-up started",
            extra=self._log_extra(wrap_up_seconds=self._wrap_up_seconds),
        )

    async def _wrap_up_countdown(self, interaction: ActiveInteraction) -> AppealRead | None:
        correlation_id_var.set(interaction.call_id)
        await asyncio.sleep(self._wrap_up_seconds)

        # Past this point the countdown can no longer be cancelled by a new
        # call: the session is released first, then the draft is written.
        draft = self._draft
        self._wrap_up_task = None
        self._clear_interaction()
        self._set_status(SessionStatus.AVAILABLE)
        logger.info("Wrap-up expired", extra=self._log_extra(call_id=interaction.call_id))

        return await self._committer.auto_commit(interaction, draft)

    def _cancel_wrap_up(self, reason: str) -> None:
        task = self._wrap_up_task
        self._wrap_up_task = None
        if task is not None and not task.done():
            task.cancel()
            logger.info("Wrap-up cancelled", extra=self._log_extra(reason=reason))

    # ---- caller lookup -----------------------------------------------------

    def _schedule_lookup(self) -> None:
        """Look the caller up once per interaction."""
        caller = self._state.caller_number
        if not caller or self._caller_lookup is None or caller == self._looked_up_caller:
            return
        self._looked_up_caller = caller
        if self._lookup_task is not None and not self._lookup_task.done():
            self._lookup_task.cancel()
        self._lookup_task = asyncio.create_task(self._run_lookup(self._caller_lookup, caller))

    async def _run_lookup(self, lookup: CallerLookup, caller: str) -> None:
        correlation_id_var.set(self._state.correlation_id)
        try:
            context = await lookup(caller)
        except Exception:
            logger.exception("Caller lookup failed", extra=self._log_extra(caller_number=caller))
            return
        if self._state.caller_number == caller:
            self._state.caller_context = context

    # ---- annotation --------------------------------------------------------

    def update_annotation(self, **fields: Any) -> AnnotationDraft:
        """Merge form fields into the draft of the active interaction."""
        if self._state.interaction is None:
            raise ValidationError(message="No active interaction to annotate")
        draft = self._draft.model_copy()
        for name, value in fields.items():
            setattr(draft, name, value)
        self._draft = draft
        return draft

    async def submit_annotation(self) -> AppealRead:
        """Write the draft now.

        During wrap-up a successful write ends the wrap-up immediately. While
        still on the call the session stays on-call.

        Raises:
            ValidationError: If no interaction is active or fields are missing.
            AppealStoreError: If the store fails.
        """
        interaction = self._state.interaction
        if interaction is None:
            raise ValidationError(message="No active interaction to annotate")

        appeal = await self._committer.submit(interaction, self._draft)

        if self._state.status == SessionStatus.WRAP_UP and self._state.interaction is interaction:
            self._cancel_wrap_up("annotation submitted")
            self._clear_interaction()
            self._set_status(SessionStatus.AVAILABLE)
        return appeal

    # ---- teardown ----------------------------------------------------------

    async def close(self) -> None:
        """Cancel the countdown and lookup; nothing is written."""
        if self._closed:
            return
        self._closed = True
        tasks = [
            t for t in (self._wrap_up_task, self._lookup_task) if t is not None and not t.done()
        ]
        self._cancel_wrap_up("session closed")
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._lookup_task = None
        self._clear_interaction()
        self._set_status(SessionStatus.OFFLINE)
        logger.info("Session closed", extra=self._log_extra())
