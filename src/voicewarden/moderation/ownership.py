"""
Ownership module.

Turns the membership-change feed into room events, runs the join pipeline
for rooms the local user owns, reacts to ownership changes (announcement,
name rotation, info refresh) and offers the room actions the local user can
trigger by hand.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import ModuleRegistry, VoiceModule
from voicewarden.datatypes.event_datatypes import (
    CoreEvent,
    JoinEvaluation,
    MembershipChange,
    OwnershipChangedPayload,
    RoomEventPayload,
)
from voicewarden.datatypes.queue_datatypes import QueueItem
from voicewarden.moderation.name_rotation import NameRotationModule
from voicewarden.services.command_queue import CommandDispatchQueue, Notifier
from voicewarden.services.member_directory import MemberDirectory
from voicewarden.state.state_store import StateStore
from voicewarden.state.voice_presence import VoicePresence
from voicewarden.util.format_utils import extract_id, format_command
from voicewarden.util.logger import get_logger

logger = get_logger("ownership")


class OwnershipModule(VoiceModule):
    name = "ownership"

    def __init__(
        self,
        config: AppConfig,
        registry: ModuleRegistry,
        state: StateStore,
        queue: CommandDispatchQueue,
        presence: VoicePresence,
        name_rotation: NameRotationModule,
        directory: MemberDirectory | None = None,
        notify: Notifier | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._state = state
        self._queue = queue
        self._presence = presence
        self._name_rotation = name_rotation
        self._directory = directory
        self._notify = notify

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self, config: AppConfig) -> None:
        self._config = config
        self._registry.subscribe(CoreEvent.ROOM_OWNERSHIP_CHANGED, self._on_ownership_changed)
        logger.info("[OWNERSHIP] Module initialised")

    @property
    def local_user_id(self) -> str:
        return self._config.local_user_id

    def is_local_owner(self, room_id: str) -> bool:
        owner = self._state.get_effective_owner(room_id)
        return bool(owner) and owner == self.local_user_id

    # ------------------------------------------------------------------
    # Membership feed
    # ------------------------------------------------------------------

    def handle_membership_change(self, change: MembershipChange) -> Optional[JoinEvaluation]:
        """Process one voice-state transition.

        Returns the join evaluation when the change triggered the join pipeline.
        """
        if not change.is_move:
            return None

        self._presence.apply(change)

        if change.old_room_id and change.old_managed:
            self._handle_left(change.user_id, change.old_room_id, change.guild_id)

        if change.new_room_id and change.new_managed:
            return self._handle_joined(change.user_id, change.new_room_id, change.guild_id)
        return None

    def _handle_joined(self, user_id: str, room_id: str, guild_id: str) -> Optional[JoinEvaluation]:
        ownership = self._state.get_ownership(room_id)

        if user_id == self.local_user_id:
            logger.info("[OWNERSHIP] Local user joined managed room %s", room_id)
            self._registry.publish(
                CoreEvent.LOCAL_USER_JOINED_MANAGED_ROOM,
                RoomEventPayload(room_id=room_id, user_id=user_id, guild_id=guild_id),
            )
            if ownership is not None:
                if ownership.effective_owner == user_id:
                    self._name_rotation.start_rotation(room_id)
            elif room_id != self._config.creation_channel_id:
                logger.debug("[OWNERSHIP] Unknown room %s joined; requesting info", room_id)
                self.request_room_info(room_id)
            return None

        if ownership is None or not self.is_local_owner(room_id):
            return None

        evaluation = JoinEvaluation(room_id=room_id, user_id=user_id, guild_id=guild_id or self._config.guild_id)
        return self._registry.evaluate_join(evaluation)

    def _handle_left(self, user_id: str, room_id: str, guild_id: str) -> None:
        payload = RoomEventPayload(room_id=room_id, user_id=user_id, guild_id=guild_id)

        if user_id == self.local_user_id:
            logger.info("[OWNERSHIP] Local user left managed room %s", room_id)
            self._registry.publish(CoreEvent.LOCAL_USER_LEFT_MANAGED_ROOM, payload)
            self._name_rotation.stop_rotation(room_id)

        ownership = self._state.get_ownership(room_id)
        if ownership is None:
            return
        if ownership.effective_owner == user_id:
            logger.info("[OWNERSHIP] Owner %s left room %s", user_id, room_id)
        self._registry.publish(CoreEvent.USER_LEFT_OWNED_ROOM, payload)

    # ------------------------------------------------------------------
    # Ownership changes
    # ------------------------------------------------------------------

    def _on_ownership_changed(self, payload: OwnershipChangedPayload) -> None:
        if not payload.owner_id:
            self._name_rotation.stop_rotation(payload.room_id)
            return

        self.announce_owner(payload.room_id, payload.owner_id, payload.reason)

        if payload.owner_id == self.local_user_id:
            self._name_rotation.start_rotation(payload.room_id)
            self.request_room_info(payload.room_id)
        else:
            self._name_rotation.stop_rotation(payload.room_id)

    def announce_owner(self, room_id: str, owner_id: str, reason: str) -> None:
        template = self._config.ownership_change_message
        if not template:
            return
        user_name = self._directory.display_name(self._config.guild_id, owner_id) if self._directory else owner_id
        text = format_command(template, user_id=owner_id, user_name=user_name, channel_id=room_id, reason=reason)
        if self._notify is None:
            logger.info("[OWNERSHIP] %s", text)
            return
        try:
            self._notify(room_id, text)
        except Exception:
            logger.exception("[OWNERSHIP] Failed to announce owner of %s", room_id)

    # ------------------------------------------------------------------
    # Room actions
    # ------------------------------------------------------------------

    def _enqueue_template(self, template_name: str, room_id: str, priority: bool = False, **values) -> Optional[QueueItem]:
        template = self._config.command_template(template_name)
        if not template:
            logger.warning("[OWNERSHIP] No %s command configured", template_name)
            return None
        return self._queue.enqueue(format_command(template, channel_id=room_id, **values), room_id, priority=priority)

    def claim_room(self, room_id: str) -> Optional[QueueItem]:
        return self._enqueue_template("claim", room_id, priority=True)

    def lock_room(self, room_id: str) -> Optional[QueueItem]:
        return self._enqueue_template("lock", room_id, priority=True)

    def unlock_room(self, room_id: str) -> Optional[QueueItem]:
        return self._enqueue_template("unlock", room_id, priority=True)

    def reset_room(self, room_id: str) -> Optional[QueueItem]:
        return self._enqueue_template("reset", room_id)

    def request_room_info(self, room_id: str) -> Optional[QueueItem]:
        return self._enqueue_template("info", room_id)

    def set_room_size(self, room_id: str, size: int) -> Optional[QueueItem]:
        if size < 0:
            raise ValueError(f"Room size must not be negative, got {size}")
        return self._enqueue_template("set_size", room_id, size=size, channel_limit=size)

    def rename_room(self, room_id: str, name: str) -> Optional[QueueItem]:
        return self._enqueue_template("set_channel_name", room_id, priority=True, name=name)

    def kick_users(self, room_id: str, users: Iterable[str], reason: str = "") -> int:
        """Queue a kick for each user, dropped at send time if they already left."""
        template = self._config.command_template("kick")
        if not template:
            logger.warning("[OWNERSHIP] No kick command configured")
            return 0
        count = 0
        for raw in users:
            user_id = extract_id(raw)
            if not user_id:
                continue
            self._queue.enqueue(
                format_command(template, user_id=user_id, channel_id=room_id, reason=reason),
                room_id,
                precondition=lambda uid=user_id: self._presence.is_user_in_room(uid, room_id),
            )
            count += 1
        return count

    def kick_banned_users(self, room_id: str) -> int:
        """Kick every occupant of ``room_id`` who is on the local user's ban list.

        Returns -1 when the local user has no member config yet.
        """
        owner = self.local_user_id
        if not owner or not self._state.has_member_config(owner):
            return -1
        banned = set(self._state.get_member_config(owner).banned_users)
        targets = sorted(self._presence.occupants(room_id) & banned)
        if targets:
            self.kick_users(room_id, targets, reason="Banned")
        return len(targets)

    async def fetch_all_owners(self, room_ids: Iterable[str]) -> int:
        """Request info for every room, spaced by ``fetch_owners_spacing_seconds``."""
        rooms = list(room_ids)
        logger.info("[OWNERSHIP] Requesting owners of %d room(s)", len(rooms))
        for index, room_id in enumerate(rooms):
            if index:
                await asyncio.sleep(self._config.fetch_owners_spacing_seconds)
            self.request_room_info(room_id)
        return len(rooms)

    def reset_state(self) -> None:
        """Forget all ownership and member state and stop every rotation."""
        for record in self._state.get_all_ownerships():
            self._name_rotation.stop_rotation(record.room_id)
        self._state.reset_state()
