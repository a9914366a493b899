"""
Pytest configuration and fixtures.

Both stores run on throwaway SQLite files (aiosqlite) created per test.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import pytest_asyncio

# Register every ORM table on its metadata
import callcenter.appeals.models  # noqa: F401
import callcenter.crm.models  # noqa: F401
from callcenter.appeals.models import AppealRead
from callcenter.calls.correlator import CallCorrelator
from callcenter.calls.models import CdrRecord
from callcenter.config import Settings
from callcenter.session.models import ChannelSnapshot, SessionStatus
from callcenter.shared.database import Base, CdrBase, DatabaseManager


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings."""
    return Settings(
        app_env="dev",
        debug=False,
        cdr_database_url=f"sqlite+aiosqlite:///{tmp_path / 'cdr.db'}",
        app_database_url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        queue_context="ext-queues",
        internal_context="from-internal",
        wrap_up_seconds=60,
        caller_history_limit=5,
        caller_history_days=1,
        queue_mappings={"305": "Registry"},
    )


@pytest_asyncio.fixture
async def cdr_db(test_settings: Settings) -> AsyncGenerator[DatabaseManager, None]:
    """CDR store with an empty ``cdr`` table."""
    manager = DatabaseManager(test_settings.cdr_database_url)
    async with manager.engine.begin() as conn:
        await conn.run_sync(CdrBase.metadata.create_all)
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def app_db(test_settings: Settings) -> AsyncGenerator[DatabaseManager, None]:
    """Application store with appeals and CRM tables."""
    manager = DatabaseManager(test_settings.app_database_url)
    async with manager.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield manager
    await manager.close()


@pytest.fixture
def correlator(cdr_db: DatabaseManager, test_settings: Settings) -> CallCorrelator:
    return CallCorrelator(cdr_db, test_settings)


def make_leg(**overrides: Any) -> CdrRecord:
    """Build one CDR leg with neutral defaults."""
    uniqueid = overrides.pop("uniqueid", f"{uuid4().int % 10**10}.1")
    values: dict[str, Any] = {
        "uniqueid": uniqueid,
        "linkedid": uniqueid,
        "calldate": datetime(2024, 5, 10, 10, 0, 0),
        "clid": "",
        "src": "79990001111",
        "dst": "305",
        "dcontext": "ext-queues",
        "channel": "PJSIP/trunk-00000001",
        "dstchannel": "",
        "lastapp": "Queue",
        "lastdata": "",
        "duration": 60,
        "billsec": 0,
        "disposition": "NO ANSWER",
        "userfield": "",
        "recordingfile": "",
    }
    values.update(overrides)
    return CdrRecord(**values)


async def add_legs(db: DatabaseManager, *legs: CdrRecord) -> None:
    async with db.session() as session:
        session.add_all(legs)


@pytest.fixture
def seed_legs(cdr_db: DatabaseManager):
    async def _seed(*legs: CdrRecord) -> None:
        await add_legs(cdr_db, *legs)

    return _seed


def snapshot(
    status: SessionStatus,
    hint: str | None = None,
    caller: str | None = None,
    channel_id: str | None = None,
) -> ChannelSnapshot:
    """Poller result as the state machine receives it."""
    return ChannelSnapshot(
        status=status,
        raw_state=status.value,
        channel_id=channel_id or (f"chan-{hint}" if hint else None),
        correlation_hint=hint,
        caller_number=caller,
    )


def make_appeal_read(call_id: str = "1700000000.1", operator_id: str = "agent-1") -> AppealRead:
    now = datetime(2024, 5, 10, 10, 5, 0)
    return AppealRead(
        id=uuid4(),
        call_id=call_id,
        operator_id=operator_id,
        operator_name="",
        caller_number="79990001111",
        category="information",
        description="Asked about opening hours",
        resolution="fully_resolved",
        priority="medium",
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def appeal_store() -> AsyncMock:
    """Appeal store double recording every save."""
    store = AsyncMock(name="appeal_store")
    store.save = AsyncMock(side_effect=lambda data: make_appeal_read(data.call_id))
    return store
