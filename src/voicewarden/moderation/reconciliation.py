"""
Reconciliation of local state with the voice bot's replies.

Each recognised reply updates exactly one slice of state: ownership for
created/claimed replies, the owner's member config for everything else.
Applying the same reply twice leaves the state unchanged.
"""

from __future__ import annotations

import re
from typing import Optional

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import ModuleRegistry, VoiceModule
from voicewarden.datatypes.bot_reply_datatypes import BotMessage, BotReply, BotReplyKind
from voicewarden.datatypes.event_datatypes import CoreEvent, OwnershipChangedPayload
from voicewarden.state.state_store import StateStore
from voicewarden.util.bot_reply_parsing import parse_bot_reply, parse_info_description
from voicewarden.util.format_utils import append_unique, remove_value
from voicewarden.util.logger import get_logger

logger = get_logger("reconciliation")

DIGITS_PATTERN = re.compile(r"(\d+)")


class ReplyReconciler(VoiceModule):
    name = "reconciliation"

    def __init__(self, config: AppConfig, registry: ModuleRegistry, state: StateStore) -> None:
        self._config = config
        self._registry = registry
        self._state = state

    def init(self, config: AppConfig) -> None:
        self._config = config

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def handle_message(self, message: BotMessage) -> BotReply:
        """Parse a message from the voice bot and apply it."""
        reply = parse_bot_reply(message, self._config.bot_user_id)
        self.apply(reply)
        return reply

    def apply(self, reply: BotReply) -> bool:
        """Apply a parsed reply. Returns True if any state changed."""
        if reply.kind is BotReplyKind.UNKNOWN:
            return False

        handlers = {
            BotReplyKind.CREATED: self._apply_created,
            BotReplyKind.CLAIMED: self._apply_claimed,
            BotReplyKind.INFO: self._apply_info,
            BotReplyKind.BANNED: self._apply_banned,
            BotReplyKind.UNBANNED: self._apply_unbanned,
            BotReplyKind.PERMITTED: self._apply_permitted,
            BotReplyKind.UNPERMITTED: self._apply_unpermitted,
            BotReplyKind.SIZE_SET: self._apply_size,
            BotReplyKind.LOCKED: lambda r: self._apply_lock(r, True),
            BotReplyKind.UNLOCKED: lambda r: self._apply_lock(r, False),
        }

        try:
            changed = handlers[reply.kind](reply)
        except Exception:
            logger.exception("[RECONCILIATION] Failed to apply %s reply in %s", reply.kind, reply.room_id)
            changed = False

        self._registry.publish(CoreEvent.BOT_REPLY_RECEIVED, reply)
        return changed

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def _publish_ownership_change(self, room_id: str, previous: Optional[str], reason: str) -> None:
        current = self._state.get_effective_owner(room_id)
        if current == previous:
            return
        logger.info("[RECONCILIATION] Owner of %s is now %s (%s)", room_id, current, reason)
        self._registry.publish(
            CoreEvent.ROOM_OWNERSHIP_CHANGED,
            OwnershipChangedPayload(room_id=room_id, owner_id=current, previous_owner_id=previous, reason=reason),
        )

    def _apply_created(self, reply: BotReply) -> bool:
        if not reply.initiator_id:
            logger.debug("[RECONCILIATION] Created reply in %s without a creator", reply.room_id)
            return False
        existing = self._state.get_ownership(reply.room_id)
        if existing is not None and existing.creator_id == reply.initiator_id:
            return False

        previous = existing.effective_owner if existing else None
        self._state.set_ownership(
            reply.room_id,
            {"creator_id": reply.initiator_id, "created_at": reply.timestamp},
        )
        self._publish_ownership_change(reply.room_id, previous, "Created")
        return True

    def _apply_claimed(self, reply: BotReply) -> bool:
        if not reply.initiator_id:
            logger.debug("[RECONCILIATION] Claimed reply in %s without a claimant", reply.room_id)
            return False
        existing = self._state.get_ownership(reply.room_id)
        if existing is not None and existing.claimant_id == reply.initiator_id:
            return False

        previous = existing.effective_owner if existing else None
        self._state.set_ownership(
            reply.room_id,
            {"claimant_id": reply.initiator_id, "claimed_at": reply.timestamp},
        )
        self._publish_ownership_change(reply.room_id, previous, "Claimed")
        return True

    # ------------------------------------------------------------------
    # Member config
    # ------------------------------------------------------------------

    def _config_owner(self, reply: BotReply) -> Optional[str]:
        owner = reply.initiator_id or self._state.get_effective_owner(reply.room_id)
        if not owner:
            logger.debug("[RECONCILIATION] No owner known for %s reply in %s", reply.kind, reply.room_id)
        return owner

    def _target(self, reply: BotReply) -> Optional[str]:
        target = reply.target_id
        if not target or not target.isdigit():
            logger.debug("[RECONCILIATION] %s reply in %s has no usable target (%r)", reply.kind, reply.room_id, target)
            return None
        return target

    def _apply_info(self, reply: BotReply) -> bool:
        owner = self._config_owner(reply)
        info = parse_info_description(reply.embed.description if reply.embed else "")
        if not owner or info is None:
            return False

        current = self._state.get_member_config(owner)
        updates = {}
        if info.name is not None and info.name != current.custom_name:
            updates["custom_name"] = info.name
        if info.limit is not None and info.limit != current.user_limit:
            updates["user_limit"] = info.limit
        if info.is_locked is not None and info.is_locked != current.is_locked:
            updates["is_locked"] = info.is_locked
        if info.has_permitted_section and info.permitted != current.permitted_users:
            updates["permitted_users"] = info.permitted
        if info.has_banned_section and info.banned != current.banned_users:
            updates["banned_users"] = info.banned

        if not updates:
            return False
        self._state.update_member_config(owner, **updates)
        logger.info("[RECONCILIATION] Synchronised info for %s (%s)", owner, ", ".join(sorted(updates)))
        return True

    def _add_to_list(self, reply: BotReply, field_name: str) -> bool:
        owner, target = self._config_owner(reply), self._target(reply)
        if not owner or not target:
            return False
        values = getattr(self._state.get_member_config(owner), field_name)
        if target in values:
            return False
        self._state.update_member_config(owner, **{field_name: append_unique(values, target)})
        return True

    def _remove_from_list(self, reply: BotReply, field_name: str) -> bool:
        owner, target = self._config_owner(reply), self._target(reply)
        if not owner or not target:
            return False
        values = getattr(self._state.get_member_config(owner), field_name)
        if target not in values:
            return False
        self._state.update_member_config(owner, **{field_name: remove_value(values, target)})
        return True

    def _apply_banned(self, reply: BotReply) -> bool:
        return self._add_to_list(reply, "banned_users")

    def _apply_unbanned(self, reply: BotReply) -> bool:
        return self._remove_from_list(reply, "banned_users")

    def _apply_permitted(self, reply: BotReply) -> bool:
        return self._add_to_list(reply, "permitted_users")

    def _apply_unpermitted(self, reply: BotReply) -> bool:
        return self._remove_from_list(reply, "permitted_users")

    def _apply_size(self, reply: BotReply) -> bool:
        owner = self._config_owner(reply)
        match = DIGITS_PATTERN.search(reply.embed.description if reply.embed else "")
        if not owner or not match:
            return False
        size = int(match.group(1))
        if self._state.get_member_config(owner).user_limit == size:
            return False
        self._state.update_member_config(owner, user_limit=size)
        return True

    def _apply_lock(self, reply: BotReply, locked: bool) -> bool:
        owner = self._config_owner(reply)
        if not owner or self._state.get_member_config(owner).is_locked == locked:
            return False
        self._state.update_member_config(owner, is_locked=locked)
        return True
