import asyncio
from unittest.mock import AsyncMock

import pytest

from voicewarden.database.kv_store import MemoryKeyValueStore
from voicewarden.datatypes.state_datatypes import RoomOwnership
from voicewarden.state.state_store import MEMBERS_KEY, OWNERSHIPS_KEY, StateStore

ROOM = "600000000000000006"
OWNER = "100000000000000001"
OTHER = "700000000000000007"


async def _loaded_store(storage=None, debounce=0.01) -> StateStore:
    store = StateStore(storage or MemoryKeyValueStore(), debounce_seconds=debounce)
    await store.load()
    return store


class TestLoading:
    @pytest.mark.asyncio
    async def test_load_restores_both_maps(self):
        storage = MemoryKeyValueStore({
            OWNERSHIPS_KEY: {ROOM: {"creator_id": OWNER, "created_at": 5.0}},
            MEMBERS_KEY: {OWNER: {"banned_users": [OTHER], "is_locked": True}},
        })
        store = await _loaded_store(storage)

        ownership = store.get_ownership(ROOM)
        assert ownership.room_id == ROOM
        assert ownership.effective_owner == OWNER
        config = store.get_member_config(OWNER)
        assert config.banned_users == [OTHER]
        assert config.is_locked is True

    @pytest.mark.asyncio
    async def test_load_failure_leaves_usable_empty_store(self):
        storage = MemoryKeyValueStore()
        storage.get = AsyncMock(side_effect=OSError("disk gone"))

        store = await _loaded_store(storage)

        assert store.loaded is True
        assert store.get_all_ownerships() == []
        store.set_ownership(ROOM, {"creator_id": OWNER})
        assert store.get_effective_owner(ROOM) == OWNER

    @pytest.mark.asyncio
    async def test_changes_before_load_are_not_persisted(self):
        storage = MemoryKeyValueStore()
        store = StateStore(storage, debounce_seconds=0.01)

        store.update_member_config(OWNER, is_locked=True)
        await asyncio.sleep(0.05)

        assert storage.write_count == 0


class TestOwnership:
    def test_set_ownership_merges_fields(self):
        store = StateStore(MemoryKeyValueStore())
        store.set_ownership(ROOM, {"creator_id": OWNER, "created_at": 1.0})
        store.set_ownership(ROOM, {"claimant_id": OTHER, "claimed_at": 2.0})

        record = store.get_ownership(ROOM)
        assert record.creator_id == OWNER
        assert record.claimant_id == OTHER
        assert record.created_at == 1.0
        assert store.get_effective_owner(ROOM) == OTHER

    def test_set_ownership_none_removes_record(self):
        store = StateStore(MemoryKeyValueStore())
        store.set_ownership(ROOM, RoomOwnership(room_id=ROOM, creator_id=OWNER))

        assert store.set_ownership(ROOM, None) is None
        assert store.get_ownership(ROOM) is None
        assert store.get_effective_owner(ROOM) is None

    def test_set_ownership_rejects_unknown_fields(self):
        store = StateStore(MemoryKeyValueStore())
        with pytest.raises(ValueError):
            store.set_ownership(ROOM, {"owner": OWNER})

    def test_get_ownership_returns_copy(self):
        store = StateStore(MemoryKeyValueStore())
        store.set_ownership(ROOM, {"creator_id": OWNER})

        store.get_ownership(ROOM).creator_id = OTHER

        assert store.get_effective_owner(ROOM) == OWNER

    def test_get_ownerships_for_user(self):
        store = StateStore(MemoryKeyValueStore())
        store.set_ownership("1", {"creator_id": OWNER})
        store.set_ownership("2", {"creator_id": OTHER, "claimant_id": OWNER})
        store.set_ownership("3", {"creator_id": OTHER})

        rooms = sorted(r.room_id for r in store.get_ownerships_for_user(OWNER))

        assert rooms == ["1", "2"]


class TestMemberConfig:
    def test_config_is_created_lazily(self):
        store = StateStore(MemoryKeyValueStore())
        assert store.has_member_config(OWNER) is False

        config = store.get_member_config(OWNER)

        assert config.user_id == OWNER
        assert config.banned_users == []
        assert store.has_member_config(OWNER) is True

    def test_mutating_a_returned_config_does_not_change_the_store(self):
        store = StateStore(MemoryKeyValueStore())
        store.get_member_config(OWNER).banned_users.append(OTHER)

        assert store.get_member_config(OWNER).banned_users == []

    def test_update_member_config_merges(self):
        store = StateStore(MemoryKeyValueStore())
        store.update_member_config(OWNER, banned_users=[OTHER])
        store.update_member_config(OWNER, user_limit=4)

        config = store.get_member_config(OWNER)
        assert config.banned_users == [OTHER]
        assert config.user_limit == 4

    def test_update_member_config_rejects_unknown_fields(self):
        store = StateStore(MemoryKeyValueStore())
        with pytest.raises(ValueError):
            store.update_member_config(OWNER, favourite_colour="blue")

    def test_reset_state_clears_everything(self):
        store = StateStore(MemoryKeyValueStore())
        store.set_ownership(ROOM, {"creator_id": OWNER})
        store.update_member_config(OWNER, is_locked=True)

        store.reset_state()

        assert store.get_all_ownerships() == []
        assert store.has_member_config(OWNER) is False


class TestPersistence:
    @pytest.mark.asyncio
    async def test_burst_of_changes_produces_one_write(self):
        storage = MemoryKeyValueStore()
        store = await _loaded_store(storage, debounce=0.02)

        for index in range(10):
            store.update_member_config(OWNER, user_limit=index)
        store.set_ownership(ROOM, {"creator_id": OWNER})
        await asyncio.sleep(0.1)

        assert storage.write_count == 1
        snapshot = storage.snapshot()
        assert snapshot[MEMBERS_KEY][OWNER]["user_limit"] == 9
        assert snapshot[OWNERSHIPS_KEY][ROOM]["creator_id"] == OWNER

    @pytest.mark.asyncio
    async def test_flush_writes_immediately(self):
        storage = MemoryKeyValueStore()
        store = await _loaded_store(storage, debounce=10)

        store.update_member_config(OWNER, is_locked=True)
        assert await store.flush() is True

        assert storage.write_count == 1
        assert storage.snapshot()[MEMBERS_KEY][OWNER]["is_locked"] is True

    @pytest.mark.asyncio
    async def test_failed_save_is_retried_on_next_flush(self):
        storage = MemoryKeyValueStore()
        store = await _loaded_store(storage, debounce=10)
        original = storage.set_many
        storage.set_many = AsyncMock(side_effect=OSError("locked"))

        store.update_member_config(OWNER, is_locked=True)
        assert await store.flush() is False

        storage.set_many = original
        assert await store.flush() is True
        assert storage.snapshot()[MEMBERS_KEY][OWNER]["is_locked"] is True

    @pytest.mark.asyncio
    async def test_shutdown_flushes_pending_changes(self):
        storage = MemoryKeyValueStore()
        store = await _loaded_store(storage, debounce=10)
        store.set_ownership(ROOM, {"creator_id": OWNER})

        await store.shutdown()

        assert storage.snapshot()[OWNERSHIPS_KEY][ROOM]["creator_id"] == OWNER

    @pytest.mark.asyncio
    async def test_persisted_values_are_plain_data(self):
        storage = MemoryKeyValueStore()
        store = await _loaded_store(storage, debounce=10)
        store.update_member_config(OWNER, banned_users=(OTHER,))
        await store.flush()

        members = storage.snapshot()[MEMBERS_KEY]
        assert members[OWNER]["banned_users"] == [OTHER]
        assert isinstance(members[OWNER], dict)
