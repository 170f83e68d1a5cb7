from __future__ import annotations

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import ModuleRegistry, VoiceModule
from voicewarden.datatypes.event_datatypes import CoreEvent, RoomEventPayload
from voicewarden.services.command_queue import CommandDispatchQueue
from voicewarden.state.state_store import StateStore
from voicewarden.state.voice_presence import VoicePresence
from voicewarden.util.format_utils import format_command
from voicewarden.util.logger import get_logger

logger = get_logger("auto_claim")


class AutoClaimModule(VoiceModule):
    """Claims a room for the local user when its owner walks out."""

    name = "auto_claim"

    def __init__(
        self,
        config: AppConfig,
        registry: ModuleRegistry,
        state: StateStore,
        queue: CommandDispatchQueue,
        presence: VoicePresence,
    ) -> None:
        self._config = config
        self._registry = registry
        self._state = state
        self._queue = queue
        self._presence = presence

    def init(self, config: AppConfig) -> None:
        self._config = config
        self._registry.subscribe(CoreEvent.USER_LEFT_OWNED_ROOM, self.on_user_left)

    def on_user_left(self, payload: RoomEventPayload) -> bool:
        """Queue a claim if the room was just disbanded by its owner.

        Returns True when a claim was queued.
        """
        if not self._config.auto_claim_disbanded:
            return False

        local_user = self._config.local_user_id
        if not local_user or payload.user_id == local_user:
            return False

        ownership = self._state.get_ownership(payload.room_id)
        if ownership is None or ownership.effective_owner != payload.user_id:
            return False
        if not self._presence.is_user_in_room(local_user, payload.room_id):
            return False

        owners = {ownership.creator_id, ownership.claimant_id} - {None, ""}
        if any(self._presence.is_user_in_room(owner, payload.room_id) for owner in owners):
            return False

        template = self._config.command_template("claim")
        if not template:
            return False
        logger.info("[AUTO CLAIM] Owner %s left %s; claiming", payload.user_id, payload.room_id)
        self._queue.enqueue(format_command(template, channel_id=payload.room_id), payload.room_id, priority=True)
        return True
