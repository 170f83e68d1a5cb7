"""
Ban/kick policy engine.

Decides whether a user joining a room owned by the local user must be
removed, and escalates from kick to ban on repeat joins. Bans go into the
owner's ban list; when that list is full the oldest entry is unbanned first
to make room (ban rotation).
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import BAN_POLICY_ORDER, ModuleRegistry, VoiceModule
from voicewarden.datatypes.event_datatypes import CoreEvent, JoinDecision, JoinEvaluation
from voicewarden.moderation.blacklist import BlacklistModule
from voicewarden.moderation.role_enforcement import check_required_roles
from voicewarden.services.command_queue import CommandDispatchQueue, Notifier
from voicewarden.services.member_directory import MemberDirectory
from voicewarden.state.state_store import StateStore
from voicewarden.state.voice_presence import VoicePresence
from voicewarden.util.format_utils import append_unique, extract_id, format_command, remove_value
from voicewarden.util.logger import get_logger

logger = get_logger("ban_policy")

Clock = Callable[[], float]


class BanPolicyModule(VoiceModule):
    name = "ban_policy"

    def __init__(
        self,
        config: AppConfig,
        registry: ModuleRegistry,
        state: StateStore,
        queue: CommandDispatchQueue,
        presence: VoicePresence,
        directory: MemberDirectory,
        blacklist: BlacklistModule,
        notify: Notifier | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._config = config
        self._registry = registry
        self._state = state
        self._queue = queue
        self._presence = presence
        self._directory = directory
        self._blacklist = blacklist
        self._notify = notify
        self._clock = clock
        # user_id -> epoch seconds of the last kick issued for a failed join
        self.recently_kicked: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self, config: AppConfig) -> None:
        self._config = config
        self._registry.register_join_policy(self.name, self.evaluate_join, BAN_POLICY_ORDER)
        self._registry.subscribe(CoreEvent.LOCAL_USER_LEFT_MANAGED_ROOM, self._on_local_user_left)
        logger.info("[BAN POLICY] Module initialised")

    def stop(self) -> None:
        self._registry.unregister_join_policy(self.name)
        self.recently_kicked.clear()

    def _on_local_user_left(self, _payload: Any) -> None:
        if self.recently_kicked:
            logger.debug("[BAN POLICY] Local user left; forgetting %d kick(s)", len(self.recently_kicked))
        self.recently_kicked.clear()

    # ------------------------------------------------------------------
    # Join evaluation
    # ------------------------------------------------------------------

    def is_recently_kicked(self, user_id: str) -> bool:
        """True while the user's last kick is still inside the cooldown window.

        With a cooldown of zero or less any remembered kick counts.
        """
        kicked_at = self.recently_kicked.get(user_id)
        if kicked_at is None:
            return False
        cooldown = self._config.ban_rotate_cooldown_seconds
        if cooldown <= 0:
            return True
        if (self._clock() - kicked_at) < cooldown:
            return True
        del self.recently_kicked[user_id]
        return False

    def failed_checks(self, user_id: str, guild_id: str = "") -> List[str]:
        """Names of every policy input the user fails, in a stable order."""
        owner = self._config.local_user_id
        reasons: List[str] = []

        if owner and user_id in self._state.get_member_config(owner).banned_users:
            reasons.append("Banned")
        if self._config.ban_in_local_blacklist and self._blacklist.is_blacklisted(user_id):
            reasons.append("Blacklisted")
        if self._config.ban_blocked_users and self._directory.is_blocked(user_id):
            reasons.append("Blocked")
        if self._config.ban_not_in_roles and self._config.required_role_ids:
            roles = self._directory.get_member_roles(guild_id or self._config.guild_id, user_id)
            if not check_required_roles(roles, self._config.required_role_ids, self._config.required_role_mode):
                reasons.append("Missing Role")
        if self.is_recently_kicked(user_id):
            reasons.append("Repeat Join")
        return reasons

    def evaluate_join(self, evaluation: JoinEvaluation) -> JoinDecision:
        if evaluation.user_id == self._config.local_user_id:
            return JoinDecision.proceed()

        reasons = self.failed_checks(evaluation.user_id, evaluation.guild_id)
        if not reasons:
            return JoinDecision.proceed()

        reason = ", ".join(reasons)
        logger.info("[BAN POLICY] %s failed join check in %s: %s", evaluation.user_id, evaluation.room_id, reason)
        self.enforce_ban_policy(evaluation.user_id, evaluation.room_id, kick_first=True, reason=reason)
        return JoinDecision.deny(reason)

    # ------------------------------------------------------------------
    # Enforcement
    # ------------------------------------------------------------------

    def _presence_check(self, user_id: str, room_id: str) -> Callable[[], bool]:
        return lambda: self._presence.is_user_in_room(user_id, room_id)

    def _send_notice(self, room_id: str, text: str) -> None:
        if not text:
            return
        if self._notify is None:
            logger.info("[BAN POLICY] %s", text)
            return
        try:
            self._notify(room_id, text)
        except Exception:
            logger.exception("[BAN POLICY] Failed to deliver notice in %s", room_id)

    def enforce_ban_policy(
        self,
        user_id: str,
        room_id: str,
        kick_first: bool = False,
        reason: str = "",
        require_presence: bool = True,
    ) -> Optional[str]:
        """Kick or ban ``user_id`` from ``room_id``.

        With ``kick_first`` the user is kicked unless they were kicked recently,
        in which case the kick escalates to a ban. Without it the user is banned
        straight away.

        Args:
            require_presence: Attach a precondition to the kick or ban so it is
                dropped if the user already left the room.

        Returns:
            ``"kick"`` or ``"ban"`` for the action queued, or None if nothing was.
        """
        if kick_first and not self.is_recently_kicked(user_id):
            template = self._config.command_template("kick")
            if not template:
                logger.warning("[BAN POLICY] No kick command configured")
                return None
            self._queue.enqueue(
                format_command(template, user_id=user_id, channel_id=room_id, reason=reason),
                room_id,
                priority=True,
                precondition=self._presence_check(user_id, room_id) if require_presence else None,
            )
            self.recently_kicked[user_id] = self._clock()
            logger.info("[BAN POLICY] Kicking %s from %s (%s)", user_id, room_id, reason or "no reason")
            return "kick"

        owner = self._config.local_user_id
        if not owner:
            logger.warning("[BAN POLICY] local_user_id is not configured; cannot ban %s", user_id)
            return None

        ban_template = self._config.command_template("ban")
        if not ban_template:
            logger.warning("[BAN POLICY] No ban command configured")
            return None

        banned = self._state.get_member_config(owner).banned_users
        unban_template = self._config.command_template("unban")
        if (
            self._config.ban_rotate_enabled
            and user_id not in banned
            and banned
            and len(banned) >= self._config.ban_limit
        ):
            if not unban_template:
                logger.warning("[BAN POLICY] Ban list full but no unban command configured; not rotating")
            else:
                oldest = banned.pop(0)
                logger.info("[BAN POLICY] Ban list full; unbanning %s to make room for %s", oldest, user_id)
                self._queue.enqueue(
                    format_command(unban_template, user_id=oldest, channel_id=room_id),
                    room_id,
                    priority=True,
                )
                self._send_notice(
                    room_id,
                    format_command(self._config.ban_rotation_message, user_id=oldest, user_id_new=user_id, channel_id=room_id),
                )

        self._state.update_member_config(owner, banned_users=append_unique(banned, user_id))

        self._queue.enqueue(
            format_command(ban_template, user_id=user_id, channel_id=room_id, reason=reason),
            room_id,
            priority=True,
            precondition=self._presence_check(user_id, room_id) if require_presence else None,
        )
        self.recently_kicked.pop(user_id, None)
        logger.info("[BAN POLICY] Banning %s from %s (%s)", user_id, room_id, reason or "no reason")
        return "ban"

    def ban_users(self, users: Iterable[str], room_id: str, reason: str = "") -> int:
        """Ban each user immediately. Accepts IDs or mentions; returns the number banned."""
        count = 0
        for raw in users:
            user_id = extract_id(raw)
            if user_id and self.enforce_ban_policy(user_id, room_id, kick_first=False, reason=reason, require_presence=False):
                count += 1
        return count

    def unban_users(self, users: Iterable[str], room_id: str) -> int:
        """Unban each user and remove them from the ban list and the blacklist."""
        owner = self._config.local_user_id
        template = self._config.command_template("unban")
        count = 0
        for raw in users:
            user_id = extract_id(raw)
            if not user_id:
                continue
            if template:
                self._queue.enqueue(format_command(template, user_id=user_id, channel_id=room_id), room_id)
            if owner:
                banned = self._state.get_member_config(owner).banned_users
                if user_id in banned:
                    self._state.update_member_config(owner, banned_users=remove_value(banned, user_id))
            self._blacklist.unblacklist_user(user_id)
            self.recently_kicked.pop(user_id, None)
            count += 1
        return count
