"""Tests for the appeal store (SQLite via aiosqlite)."""

import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError

from callcenter.appeals.exceptions import AppealNotFoundError, AppealStoreError
from callcenter.appeals.models import (
    AppealCategory,
    AppealCreate,
    AppealPriority,
    AppealResolution,
)
from callcenter.appeals.store import AppealStore
from callcenter.crm.models import CrmContactCreate
from callcenter.crm.repository import CrmContactRepository
from callcenter.shared.database import DatabaseManager
from conftest import make_appeal_read


@pytest.fixture
def store(app_db: DatabaseManager) -> AppealStore:
    return AppealStore(app_db)


def appeal_data(call_id: str = "1715335190.70", **overrides) -> AppealCreate:
    values = {
        "call_id": call_id,
        "operator_id": "agent-1",
        "operator_name": "Anna",
        "caller_number": "79990001111",
        "category": AppealCategory.INFORMATION,
        "description": "Asked about opening hours",
        "resolution": AppealResolution.FULLY_RESOLVED,
    }
    values.update(overrides)
    return AppealCreate(**values)


class TestAppealCreate:
    def test_blank_description_rejected(self) -> None:
        with pytest.raises(ValidationError):
            appeal_data(description="   ")

    def test_defaults(self) -> None:
        data = appeal_data(notes=None)

        assert data.notes == ""
        assert data.priority == AppealPriority.MEDIUM
        assert data.follow_up is False


class TestSave:
    @pytest.mark.asyncio
    async def test_insert(self, store: AppealStore) -> None:
        appeal = await store.save(appeal_data())

        assert appeal.call_id == "1715335190.70"
        assert appeal.category == AppealCategory.INFORMATION
        assert appeal.follow_up_completed is False
        stored = await store.get_by_call_id("1715335190.70")
        assert stored is not None and stored.id == appeal.id

    @pytest.mark.asyncio
    async def test_second_save_updates_same_record(self, store: AppealStore) -> None:
        first = await store.save(appeal_data())
        second = await store.save(
            appeal_data(
                category=AppealCategory.COMPLAINT,
                description="Complained about waiting time",
                priority=AppealPriority.HIGH,
            )
        )

        assert second.id == first.id
        assert second.category == AppealCategory.COMPLAINT
        assert second.priority == AppealPriority.HIGH
        assert len(await store.list_by_operator("agent-1")) == 1

    @pytest.mark.asyncio
    async def test_insert_race_retried_as_update(self, store: AppealStore) -> None:
        stored = make_appeal_read()
        store._upsert = AsyncMock(
            side_effect=[IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), stored]
        )

        assert await store.save(appeal_data()) is stored
        assert store._upsert.await_count == 2

    @pytest.mark.asyncio
    async def test_store_failure(self, store: AppealStore) -> None:
        store._upsert = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("locked")))

        with pytest.raises(AppealStoreError) as exc_info:
            await store.save(appeal_data())

        assert exc_info.value.details["call_id"] == "1715335190.70"


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_by_call_ids(self, store: AppealStore) -> None:
        await store.save(appeal_data("a"))
        await store.save(appeal_data("b"))

        found = await store.list_by_call_ids(["a", "c"])

        assert list(found) == ["a"]
        assert await store.list_by_call_ids([]) == {}

    @pytest.mark.asyncio
    async def test_list_by_operator_newest_first(self, store: AppealStore) -> None:
        await store.save(appeal_data("a"))
        await asyncio.sleep(0.01)
        await store.save(appeal_data("b"))
        await store.save(appeal_data("c", operator_id="agent-2"))

        appeals = await store.list_by_operator("agent-1")

        assert [a.call_id for a in appeals] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_get_missing(self, store: AppealStore) -> None:
        assert await store.get_by_call_id("nope") is None


class TestFollowUps:
    @pytest.mark.asyncio
    async def test_open_follow_ups_with_caller_name(
        self, store: AppealStore, app_db: DatabaseManager
    ) -> None:
        async with app_db.session() as session:
            await CrmContactRepository(session).upsert(
                CrmContactCreate(phone_number="79990001111", name="Ivan Petrov")
            )
        await store.save(appeal_data("a", follow_up=True))
        await store.save(appeal_data("b", follow_up=True, caller_number="79001112233"))
        await store.save(appeal_data("c"))

        follow_ups = await store.list_follow_ups("agent-1")

        assert {f.call_id: f.caller_name for f in follow_ups} == {
            "a": "Ivan Petrov",
            "b": None,
        }

    @pytest.mark.asyncio
    async def test_toggle(self, store: AppealStore) -> None:
        appeal = await store.save(appeal_data(follow_up=True))

        done = await store.toggle_follow_up(appeal.id)

        assert done.follow_up_completed is True
        assert await store.list_follow_ups("agent-1") == []

        reopened = await store.toggle_follow_up(appeal.id)
        assert reopened.follow_up_completed is False

    @pytest.mark.asyncio
    async def test_clearing_follow_up_resets_completion(self, store: AppealStore) -> None:
        appeal = await store.save(appeal_data(follow_up=True))
        await store.toggle_follow_up(appeal.id)

        updated = await store.save(appeal_data(follow_up=False))

        assert updated.follow_up_completed is False

    @pytest.mark.asyncio
    async def test_toggle_unknown(self, store: AppealStore) -> None:
        with pytest.raises(AppealNotFoundError):
            await store.toggle_follow_up(uuid4())
