import pytest

from conftest import LOCAL_USER, ROOM, pending_commands
from voicewarden.moderation.name_rotation import TASK_PREFIX


@pytest.fixture
def rotation(runtime):
    runtime.config.update({"channel_name_rotation_names": ["Alpha", "Beta", "Gamma"]})
    return runtime.name_rotation


class TestScheduling:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, rotation, runtime):
        assert rotation.start_rotation(ROOM) is True
        assert rotation.is_rotating(ROOM)
        assert runtime.scheduler.keys == [TASK_PREFIX + ROOM]

        rotation.stop_rotation(ROOM)

        assert not rotation.is_rotating(ROOM)
        await runtime.scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_interval_below_minimum_is_refused(self, rotation, runtime):
        runtime.config.set("channel_name_rotation_interval_minutes", 5)

        assert rotation.start_rotation(ROOM) is False
        assert not rotation.is_rotating(ROOM)

    @pytest.mark.asyncio
    async def test_disabled_or_empty_list_is_refused(self, rotation, runtime):
        runtime.config.set("channel_name_rotation_enabled", False)
        assert rotation.start_rotation(ROOM) is False

        runtime.config.update({"channel_name_rotation_enabled": True, "channel_name_rotation_names": []})
        assert rotation.start_rotation(ROOM) is False


class TestRotation:
    def test_rotate_cycles_through_names(self, rotation, runtime):
        names = [rotation.rotate_next_name(ROOM) for _ in range(4)]

        assert names == ["Alpha", "Beta", "Gamma", "Alpha"]
        assert pending_commands(runtime.queue) == [
            "!v name Alpha", "!v name Beta", "!v name Gamma", "!v name Alpha",
        ]
        assert not any(item.priority for item in runtime.queue.pending_items())
        assert runtime.state.get_member_config(LOCAL_USER).name_rotation_index == 1

    def test_owner_list_takes_precedence(self, rotation, runtime):
        rotation.add_name(LOCAL_USER, "Mine")

        assert rotation.names_for(LOCAL_USER) == ["Mine"]
        assert rotation.rotate_next_name(ROOM) == "Mine"

    def test_index_survives_list_shrinking(self, rotation, runtime):
        runtime.state.update_member_config(LOCAL_USER, name_rotation_index=7)

        assert rotation.rotate_next_name(ROOM) == "Beta"

    def test_add_and_remove_names(self, rotation):
        assert rotation.add_name(LOCAL_USER, "One") is True
        assert rotation.add_name(LOCAL_USER, "One") is False
        assert rotation.remove_name(LOCAL_USER, "One") is True
        assert rotation.remove_name(LOCAL_USER, "One") is False
        assert rotation.names_for(LOCAL_USER) == ["Alpha", "Beta", "Gamma"]

    def test_missing_template_skips_rename(self, rotation, runtime):
        runtime.config.set("set_channel_name_command", "")

        assert rotation.rotate_next_name(ROOM) is None
        assert runtime.queue.pending_count == 0
