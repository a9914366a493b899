"""
Live channel poller.

Queries the telephony control interface for one operator extension at a
fixed interval and maps the raw endpoint/channel state onto the session
vocabulary.

Failure policy: a failed or timed-out poll yields None ("no new
information"), never a forced offline state.
"""

import asyncio
from collections.abc import Callable
from typing import Any

import anyio

from callcenter.session.models import ChannelSnapshot, SessionStatus
from callcenter.shared.logging import get_logger
from callcenter.telephony.config import TelephonyConfig, get_telephony_config
from callcenter.telephony.interface import TelephonyControl, TelephonyControlError

logger = get_logger(__name__)

RAW_STATE_MAP: dict[str, SessionStatus] = {
    "ring": SessionStatus.RINGING,
    "ringing": SessionStatus.RINGING,
    "ring,in use": SessionStatus.RINGING,
    "up": SessionStatus.ON_CALL,
    "busy": SessionStatus.ON_CALL,
    "offhook": SessionStatus.ON_CALL,
    "dialing": SessionStatus.ON_CALL,
    "in use": SessionStatus.ON_CALL,
    "on hold": SessionStatus.ON_CALL,
    "down": SessionStatus.AVAILABLE,
    "rsrvd": SessionStatus.AVAILABLE,
    "online": SessionStatus.AVAILABLE,
    "not in use": SessionStatus.AVAILABLE,
    "not_inuse": SessionStatus.AVAILABLE,
    "unavailable": SessionStatus.OFFLINE,
    "invalid": SessionStatus.OFFLINE,
    "offline": SessionStatus.OFFLINE,
}


def normalize_channel_state(raw_state: str | None, channel_id: str | None) -> SessionStatus:
    """Map a raw endpoint/channel state string to a session status.

    Unknown strings count as on-call while a channel is up, else available.
    """
    key = (raw_state or "").strip().lower()
    status = RAW_STATE_MAP.get(key)
    if status is not None:
        return status
    return SessionStatus.ON_CALL if channel_id else SessionStatus.AVAILABLE


class LiveChannelPoller:
    """Polls one extension; at most one poll in flight at a time."""

    def __init__(
        self,
        control: TelephonyControl,
        extension: str,
        config: TelephonyConfig | None = None,
        agent_id: str | None = None,
    ) -> None:
        self._control = control
        self._extension = extension
        self._config = config or get_telephony_config()
        self._agent_id = agent_id
        self._in_flight = False
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def extension(self) -> str:
        return self._extension

    @property
    def running(self) -> bool:
        return self._running

    def _log_extra(self, **extra: Any) -> dict[str, Any]:
        return {"agent_id": self._agent_id, "extension": self._extension, **extra}

    async def _query(self) -> ChannelSnapshot:
        endpoint = await self._control.get_endpoint(self._extension)
        if endpoint is None:
            return ChannelSnapshot(status=SessionStatus.OFFLINE)

        channel_id = endpoint.active_channel_id
        details = await self._control.get_channel(channel_id) if channel_id else None
        if details is None:
            # no channel, or it hung up between the two requests
            return ChannelSnapshot(
                status=normalize_channel_state(endpoint.state, None),
                raw_state=endpoint.state,
            )

        raw_state = details.state or endpoint.state
        return ChannelSnapshot(
            status=normalize_channel_state(raw_state, details.channel_id),
            raw_state=raw_state,
            channel_id=details.channel_id,
            correlation_hint=details.correlation_id,
            caller_number=details.remote_number,
            queue_hint=details.context,
        )

    async def poll_once(self) -> ChannelSnapshot | None:
        """Run one bounded poll.

        Returns:
            The snapshot, or None when the poll failed, timed out, or a
            previous poll is still outstanding.
        """
        if self._in_flight:
            logger.debug("Previous poll still outstanding, skipping", extra=self._log_extra())
            return None

        self._in_flight = True
        try:
            with anyio.fail_after(self._config.poll_timeout_seconds):
                return await self._query()
        except TimeoutError:
            logger.warning(
                "Channel poll timed out",
                extra=self._log_extra(timeout_seconds=self._config.poll_timeout_seconds),
            )
            return None
        except TelephonyControlError as e:
            logger.warning(
                "Channel poll failed",
                extra=self._log_extra(error=str(e), error_code=e.error_code),
            )
            return None
        except Exception:
            logger.exception("Channel poll raised unexpectedly", extra=self._log_extra())
            return None
        finally:
            self._in_flight = False

    async def run(self, on_snapshot: Callable[[ChannelSnapshot | None], Any]) -> None:
        """Poll forever, handing every result (None included) to ``on_snapshot``."""
        self._running = True
        try:
            while self._running:
                snapshot = await self.poll_once()
                try:
                    on_snapshot(snapshot)
                except Exception:
                    logger.exception("Snapshot handler failed", extra=self._log_extra())
                await asyncio.sleep(self._config.poll_interval_seconds)
        finally:
            self._running = False

    def start(self, on_snapshot: Callable[[ChannelSnapshot | None], Any]) -> None:
        """Start the poll loop as a background task."""
        if self._task is not None and not self._task.done():
            logger.warning("Poller already running", extra=self._log_extra())
            return
        self._task = asyncio.create_task(self.run(on_snapshot))
        logger.info("Poller started", extra=self._log_extra())

    async def stop(self) -> None:
        """Stop the poll loop background task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Poller stopped", extra=self._log_extra())
