from __future__ import annotations

from typing import List

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import VoiceModule
from voicewarden.scheduler.task_scheduler import TaskScheduler
from voicewarden.services.command_queue import CommandDispatchQueue
from voicewarden.state.state_store import StateStore
from voicewarden.util.format_utils import append_unique, format_command, remove_value
from voicewarden.util.logger import get_logger

logger = get_logger("name_rotation")

# The voice bot rate-limits renames; anything faster just fails
MIN_INTERVAL_MINUTES = 11
TASK_PREFIX = "name_rotation:"


class NameRotationModule(VoiceModule):
    """
    Periodically renames rooms owned by the local user.

    Names come from the owner's ``name_rotation_list`` if it has any entries,
    else from ``channel_name_rotation_names``. The position in the list is
    stored in ``name_rotation_index`` so rotation resumes where it stopped.
    """

    name = "name_rotation"

    def __init__(
        self,
        config: AppConfig,
        state: StateStore,
        queue: CommandDispatchQueue,
        scheduler: TaskScheduler,
    ) -> None:
        self._config = config
        self._state = state
        self._queue = queue
        self._scheduler = scheduler

    def init(self, config: AppConfig) -> None:
        self._config = config

    def stop(self) -> None:
        self._scheduler.cancel_prefix(TASK_PREFIX)

    def names_for(self, owner_id: str) -> List[str]:
        own = self._state.get_member_config(owner_id).name_rotation_list
        return own if own else self._config.channel_name_rotation_names

    def is_rotating(self, room_id: str) -> bool:
        return self._scheduler.is_scheduled(TASK_PREFIX + room_id)

    def start_rotation(self, room_id: str) -> bool:
        """Start (or restart) rotating ``room_id``. Returns False if nothing was scheduled."""
        if not self._config.channel_name_rotation_enabled:
            return False

        owner = self._config.local_user_id
        if not owner:
            logger.warning("[NAME ROTATION] local_user_id is not configured")
            return False

        interval = self._config.channel_name_rotation_interval_minutes
        if interval < MIN_INTERVAL_MINUTES:
            logger.warning(
                "[NAME ROTATION] Interval of %s minute(s) is below the %d minute minimum; not rotating",
                interval, MIN_INTERVAL_MINUTES,
            )
            return False

        if not self.names_for(owner):
            logger.warning("[NAME ROTATION] Rotation requested for %s but the name list is empty", room_id)
            return False

        self._scheduler.schedule_repeating(
            TASK_PREFIX + room_id,
            interval * 60,
            lambda: self.rotate_next_name(room_id),
        )
        logger.info("[NAME ROTATION] Rotating names in %s every %s minute(s)", room_id, interval)
        return True

    def stop_rotation(self, room_id: str) -> None:
        if self._scheduler.cancel(TASK_PREFIX + room_id):
            logger.info("[NAME ROTATION] Stopped rotation in %s", room_id)

    def rotate_next_name(self, room_id: str) -> str | None:
        """Queue a rename to the next name in the list and advance the cursor."""
        if not self._config.channel_name_rotation_enabled:
            return None
        owner = self._config.local_user_id
        names = self.names_for(owner)
        if not names:
            return None

        template = self._config.command_template("set_channel_name")
        if not template:
            logger.warning("[NAME ROTATION] No set_channel_name command configured")
            return None

        index = self._state.get_member_config(owner).name_rotation_index % len(names)
        next_name = names[index]
        self._state.update_member_config(owner, name_rotation_index=(index + 1) % len(names))

        self._queue.enqueue(format_command(template, name=next_name, channel_id=room_id), room_id)
        logger.debug("[NAME ROTATION] Renaming %s to %r", room_id, next_name)
        return next_name

    def add_name(self, owner_id: str, name: str) -> bool:
        names = self._state.get_member_config(owner_id).name_rotation_list
        if name in names:
            return False
        self._state.update_member_config(owner_id, name_rotation_list=append_unique(names, name))
        return True

    def remove_name(self, owner_id: str, name: str) -> bool:
        names = self._state.get_member_config(owner_id).name_rotation_list
        if name not in names:
            return False
        self._state.update_member_config(owner_id, name_rotation_list=remove_value(names, name))
        return True
