"""
Session registry: one isolated OperatorSession and poll loop per agent.
"""

from dataclasses import dataclass

from callcenter.appeals.store import AppealStoreProtocol
from callcenter.config import Settings, get_settings
from callcenter.session.poller import LiveChannelPoller
from callcenter.session.state_machine import CallerLookup, OperatorSession
from callcenter.session.wrapup import WrapUpCommitter
from callcenter.shared.logging import get_logger
from callcenter.telephony.config import TelephonyConfig
from callcenter.telephony.interface import TelephonyControl

logger = get_logger(__name__)


@dataclass
class _Entry:
    session: OperatorSession
    poller: LiveChannelPoller


class SessionRegistry:
    """Arena of operator sessions keyed by agent id."""

    def __init__(
        self,
        control: TelephonyControl,
        store: AppealStoreProtocol,
        *,
        caller_lookup: CallerLookup | None = None,
        telephony_config: TelephonyConfig | None = None,
        settings: Settings | None = None,
        wrap_up_seconds: float | None = None,
    ) -> None:
        self._control = control
        self._store = store
        self._caller_lookup = caller_lookup
        self._telephony_config = telephony_config
        self._settings = settings or get_settings()
        self._wrap_up_seconds = wrap_up_seconds
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._entries

    async def open(
        self,
        agent_id: str,
        extension: str,
        operator_name: str = "",
        *,
        start_polling: bool = True,
    ) -> OperatorSession:
        """Open (or return the already open) session of an agent.

        Reopening with a different extension closes the previous session.
        """
        entry = self._entries.get(agent_id)
        if entry is not None:
            if entry.session.extension == extension:
                return entry.session
            logger.info(
                "Agent moved to another extension, reopening session",
                extra={"agent_id": agent_id, "old": entry.session.extension, "new": extension},
            )
            await self.close(agent_id)

        session = OperatorSession(
            agent_id,
            extension,
            WrapUpCommitter(self._store, agent_id, operator_name),
            caller_lookup=self._caller_lookup,
            wrap_up_seconds=self._wrap_up_seconds,
            settings=self._settings,
        )
        poller = LiveChannelPoller(
            self._control,
            extension,
            config=self._telephony_config,
            agent_id=agent_id,
        )
        self._entries[agent_id] = _Entry(session=session, poller=poller)
        if start_polling:
            poller.start(session.apply)
        logger.info("Session opened", extra={"agent_id": agent_id, "extension": extension})
        return session

    def get(self, agent_id: str) -> OperatorSession | None:
        entry = self._entries.get(agent_id)
        return entry.session if entry else None

    def get_poller(self, agent_id: str) -> LiveChannelPoller | None:
        entry = self._entries.get(agent_id)
        return entry.poller if entry else None

    async def close(self, agent_id: str) -> bool:
        """Stop polling and cancel the timers of one agent's session."""
        entry = self._entries.pop(agent_id, None)
        if entry is None:
            return False
        await entry.poller.stop()
        await entry.session.close()
        return True

    async def close_all(self) -> None:
        for agent_id in list(self._entries):
            await self.close(agent_id)
