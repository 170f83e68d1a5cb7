from __future__ import annotations

from typing import Iterable

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import VoiceModule
from voicewarden.services.command_queue import CommandDispatchQueue, Notifier
from voicewarden.state.state_store import StateStore
from voicewarden.util.format_utils import append_unique, extract_id, format_command, remove_value
from voicewarden.util.logger import get_logger

logger = get_logger("permit")


class PermitModule(VoiceModule):
    """
    Permit list management for the local user's rooms.

    The permit list is ordered oldest first. With ``permit_rotate_enabled``,
    permitting a new user while the list is at ``permit_limit`` unpermits the
    oldest entry first.
    """

    name = "permit"

    def __init__(
        self,
        config: AppConfig,
        state: StateStore,
        queue: CommandDispatchQueue,
        notify: Notifier | None = None,
    ) -> None:
        self._config = config
        self._state = state
        self._queue = queue
        self._notify = notify

    def init(self, config: AppConfig) -> None:
        self._config = config
        logger.info("[PERMIT] Module initialised (rotation %s)", "on" if config.permit_rotate_enabled else "off")

    def _notice(self, room_id: str, text: str) -> None:
        if not text:
            return
        if self._notify is None:
            logger.info("[PERMIT] %s", text)
            return
        try:
            self._notify(room_id, text)
        except Exception:
            logger.exception("[PERMIT] Failed to deliver notice in %s", room_id)

    def apply_permit_rotation(self, user_id: str, room_id: str) -> bool:
        """Record ``user_id`` as permitted, evicting the oldest entry if the list is full.

        Returns False when the user was already permitted or no owner is configured.
        """
        owner = self._config.local_user_id
        if not owner:
            logger.warning("[PERMIT] local_user_id is not configured; cannot permit %s", user_id)
            return False

        permitted = self._state.get_member_config(owner).permitted_users
        if user_id in permitted:
            logger.debug("[PERMIT] %s already permitted", user_id)
            return False

        if self._config.permit_rotate_enabled and permitted and len(permitted) >= self._config.permit_limit:
            unpermit_template = self._config.command_template("unpermit")
            if not unpermit_template:
                logger.warning("[PERMIT] Permit list full but no unpermit command configured; not rotating")
            else:
                oldest = permitted.pop(0)
                logger.info("[PERMIT] Permit list full; unpermitting %s to make room for %s", oldest, user_id)
                self._queue.enqueue(
                    format_command(unpermit_template, user_id=oldest, channel_id=room_id),
                    room_id,
                    priority=True,
                )
                self._notice(
                    room_id,
                    format_command(self._config.permit_rotation_message, user_id=oldest, user_id_new=user_id, channel_id=room_id),
                )

        self._state.update_member_config(owner, permitted_users=append_unique(permitted, user_id))
        return True

    def permit_users(self, users: Iterable[str], room_id: str) -> int:
        template = self._config.command_template("permit")
        count = 0
        for raw in users:
            user_id = extract_id(raw)
            if not user_id:
                continue
            if not self.apply_permit_rotation(user_id, room_id):
                continue
            if template:
                self._queue.enqueue(format_command(template, user_id=user_id, channel_id=room_id), room_id)
            count += 1
        return count

    def unpermit_users(self, users: Iterable[str], room_id: str) -> int:
        owner = self._config.local_user_id
        template = self._config.command_template("unpermit")
        count = 0
        for raw in users:
            user_id = extract_id(raw)
            if not user_id:
                continue
            if template:
                self._queue.enqueue(format_command(template, user_id=user_id, channel_id=room_id), room_id)
            if owner:
                permitted = self._state.get_member_config(owner).permitted_users
                if user_id in permitted:
                    self._state.update_member_config(owner, permitted_users=remove_value(permitted, user_id))
            count += 1
        return count
