"""Required-role checks and the kick-only role enforcement join policy."""

from __future__ import annotations

from typing import Iterable, Optional

from voicewarden.configuration.app_configuration import AppConfig, RequiredRoleMode
from voicewarden.core.module_registry import ROLE_ENFORCEMENT_ORDER, ModuleRegistry, VoiceModule
from voicewarden.datatypes.event_datatypes import JoinDecision, JoinEvaluation
from voicewarden.services.command_queue import CommandDispatchQueue
from voicewarden.services.member_directory import MemberDirectory
from voicewarden.state.voice_presence import VoicePresence
from voicewarden.util.format_utils import format_command
from voicewarden.util.logger import get_logger

logger = get_logger("role_enforcement")


def check_required_roles(
    member_roles: Optional[Iterable[str]],
    required_roles: Iterable[str],
    mode: RequiredRoleMode,
) -> bool:
    """Return True when the member satisfies the role requirement.

    An empty requirement always passes. Missing role data (``None``) always
    fails, whatever the mode.
    """
    required = set(required_roles)
    if not required:
        return True
    if member_roles is None:
        return False

    roles = set(member_roles)
    if mode is RequiredRoleMode.ALL:
        return required.issubset(roles)
    if mode is RequiredRoleMode.NONE:
        return not (required & roles)
    return bool(required & roles)


class RoleEnforcementModule(VoiceModule):
    """
    Kick users who lack the required roles without escalating to a ban.

    Only active while ``ban_not_in_roles`` is off; when it is on, missing
    roles are a ban-policy input and the ban policy decides first.
    """

    name = "role_enforcement"

    def __init__(
        self,
        config: AppConfig,
        registry: ModuleRegistry,
        queue: CommandDispatchQueue,
        directory: MemberDirectory,
        presence: VoicePresence,
    ) -> None:
        self._config = config
        self._registry = registry
        self._queue = queue
        self._directory = directory
        self._presence = presence

    def init(self, config: AppConfig) -> None:
        self._config = config
        self._registry.register_join_policy(self.name, self.evaluate_join, ROLE_ENFORCEMENT_ORDER)
        logger.info("[ROLE ENFORCEMENT] Module initialised")

    def stop(self) -> None:
        self._registry.unregister_join_policy(self.name)

    def has_required_roles(self, guild_id: str, user_id: str) -> bool:
        return check_required_roles(
            self._directory.get_member_roles(guild_id or self._config.guild_id, user_id),
            self._config.required_role_ids,
            self._config.required_role_mode,
        )

    def evaluate_join(self, evaluation: JoinEvaluation) -> JoinDecision:
        if self._config.ban_not_in_roles or not self._config.required_role_ids:
            return JoinDecision.proceed()
        if self.has_required_roles(evaluation.guild_id, evaluation.user_id):
            return JoinDecision.proceed()

        template = self._config.command_template("kick")
        if not template:
            logger.warning("[ROLE ENFORCEMENT] No kick command configured; cannot remove %s", evaluation.user_id)
            return JoinDecision.proceed()

        room_id, user_id = evaluation.room_id, evaluation.user_id
        logger.info("[ROLE ENFORCEMENT] %s is missing required roles; kicking from %s", user_id, room_id)
        self._queue.enqueue(
            format_command(template, user_id=user_id, channel_id=room_id, reason="Missing Role"),
            room_id,
            priority=True,
            precondition=lambda: self._presence.is_user_in_room(user_id, room_id),
        )
        return JoinDecision.deny("Missing Role")
