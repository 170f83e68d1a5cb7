import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import ROOM
from voicewarden.datatypes.event_datatypes import ActionPayload, CoreEvent
from voicewarden.datatypes.queue_datatypes import QueueItem


def _executed(runtime, message_id="900000000000000009"):
    item = QueueItem(command="!v kick 1", room_id=ROOM, message_id=message_id)
    runtime.registry.publish(CoreEvent.ACTION_EXECUTED, ActionPayload(item=item))


@pytest.mark.asyncio
async def test_sent_command_is_deleted_after_delay(runtime):
    deleter = AsyncMock()
    runtime.cleanup.set_deleter(deleter)
    runtime.config.update({"command_cleanup": True, "command_cleanup_delay_seconds": 0.01})
    await runtime.start()

    _executed(runtime)
    deleter.assert_not_awaited()
    await asyncio.sleep(0.05)

    deleter.assert_awaited_once_with(ROOM, "900000000000000009")
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_disabled_cleanup_does_nothing(runtime):
    deleter = AsyncMock()
    runtime.cleanup.set_deleter(deleter)
    runtime.config.set("command_cleanup_delay_seconds", 0)
    await runtime.start()

    _executed(runtime)
    await asyncio.sleep(0.02)

    deleter.assert_not_awaited()
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_unknown_message_id_is_skipped(runtime):
    deleter = AsyncMock()
    runtime.cleanup.set_deleter(deleter)
    runtime.config.update({"command_cleanup": True, "command_cleanup_delay_seconds": 0})
    await runtime.start()

    _executed(runtime, message_id=None)
    await asyncio.sleep(0.02)

    deleter.assert_not_awaited()
    assert not any(key.startswith("cleanup:") for key in runtime.scheduler.keys)
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_delete_failure_is_logged_not_raised(runtime):
    deleter = AsyncMock(side_effect=RuntimeError("gone"))
    runtime.cleanup.set_deleter(deleter)
    runtime.config.update({"command_cleanup": True, "command_cleanup_delay_seconds": 0})
    await runtime.start()

    _executed(runtime)
    await asyncio.sleep(0.02)

    deleter.assert_awaited_once()
    await runtime.shutdown()
