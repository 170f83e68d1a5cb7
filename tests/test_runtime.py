import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import LOCAL_USER, ROOM
from voicewarden.datatypes.event_datatypes import CoreEvent
from voicewarden.runtime import VoiceWardenRuntime
from voicewarden.services.member_directory import DiscordMemberDirectory
from voicewarden.state.state_store import MEMBERS_KEY, OWNERSHIPS_KEY

GUEST = "111111111111111111"


def test_modules_register_in_order(runtime):
    assert [module.name for module in runtime.registry.modules] == [
        "command_queue",
        "blacklist",
        "whitelist",
        "ban_policy",
        "role_enforcement",
        "permit",
        "name_rotation",
        "ownership",
        "vote_ban",
        "remote_operators",
        "auto_claim",
        "command_cleanup",
        "reconciliation",
    ]


@pytest.mark.asyncio
async def test_state_is_persisted_and_reloaded(config, storage, directory, clock):
    runtime = VoiceWardenRuntime(config, storage=storage, directory=directory, clock=clock)
    await runtime.start()
    runtime.state.set_ownership(ROOM, {"creator_id": LOCAL_USER})
    runtime.state.update_member_config(LOCAL_USER, banned_users=[GUEST])
    await runtime.shutdown()

    saved = storage.snapshot()
    assert saved[OWNERSHIPS_KEY][ROOM]["creator_id"] == LOCAL_USER
    assert saved[MEMBERS_KEY][LOCAL_USER]["banned_users"] == [GUEST]

    restarted = VoiceWardenRuntime(config, storage=storage, directory=directory, clock=clock)
    await restarted.start()
    assert restarted.state.get_effective_owner(ROOM) == LOCAL_USER
    assert restarted.state.get_member_config(LOCAL_USER).banned_users == [GUEST]
    await restarted.shutdown()


@pytest.mark.asyncio
async def test_start_twice_is_ignored(runtime):
    await runtime.start()
    await runtime.start()

    assert runtime.started is True
    await runtime.shutdown()
    assert runtime.started is False


@pytest.mark.asyncio
async def test_whitelist_mirror_synced_on_start(runtime):
    runtime.config.set("local_user_whitelist", [GUEST])
    await runtime.start()

    assert runtime.state.get_member_config(LOCAL_USER).whitelisted_users == [GUEST]
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_enabling_queue_drains_pending_commands(runtime):
    sender = AsyncMock(return_value=SimpleNamespace(id=42))
    runtime.queue.set_sender(sender)
    await runtime.start()
    updates = []
    runtime.registry.subscribe(CoreEvent.SETTINGS_UPDATED, updates.append)

    runtime.ownership.lock_room(ROOM)
    await asyncio.sleep(0.01)
    sender.assert_not_awaited()

    runtime.update_settings(queue_enabled=True)
    await asyncio.sleep(0.05)

    sender.assert_awaited_once_with("!v lock", ROOM)
    assert runtime.queue.pending_count == 0
    assert updates[0].changed == {"queue_enabled": True}
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_changing_local_user_updates_presence(runtime):
    await runtime.start()

    runtime.update_settings(local_user_id=GUEST)

    assert runtime.presence.local_user_id == GUEST
    await runtime.shutdown()


def test_send_notice_enqueues_text(runtime):
    runtime.send_notice(ROOM, "hello")
    runtime.send_notice(ROOM, "")

    assert [(i.command, i.room_id, i.priority) for i in runtime.queue.pending_items()] == [("hello", ROOM, False)]


def test_blocked_users_follow_settings(config, storage, clock):
    directory = DiscordMemberDirectory(MagicMock(), config)
    runtime = VoiceWardenRuntime(config, storage=storage, directory=directory, clock=clock)
    assert "Blocked" not in runtime.ban_policy.failed_checks(GUEST)

    runtime.update_settings(blocked_user_ids=[GUEST])

    assert "Blocked" in runtime.ban_policy.failed_checks(GUEST)
