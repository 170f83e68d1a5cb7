from __future__ import annotations

from typing import List

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import WHITELIST_ORDER, ModuleRegistry, VoiceModule
from voicewarden.datatypes.event_datatypes import JoinDecision, JoinEvaluation
from voicewarden.state.state_store import StateStore
from voicewarden.util.format_utils import append_unique, remove_value
from voicewarden.util.logger import get_logger

logger = get_logger("whitelist")


class WhitelistModule(VoiceModule):
    """
    Global whitelist stored in ``local_user_whitelist``.

    Whitelisted users are allowed by the first join policy, so no later
    policy can kick or ban them. The list is mirrored into the local user's
    ``whitelisted_users`` for display.
    """

    name = "whitelist"

    def __init__(self, config: AppConfig, registry: ModuleRegistry, state: StateStore) -> None:
        self._config = config
        self._registry = registry
        self._state = state

    def init(self, config: AppConfig) -> None:
        self._config = config
        self._registry.register_join_policy(self.name, self.evaluate_join, WHITELIST_ORDER)
        logger.info("[WHITELIST] Module initialised with %d entr(ies)", len(self.get_whitelist()))

    def stop(self) -> None:
        self._registry.unregister_join_policy(self.name)

    def get_whitelist(self) -> List[str]:
        return self._config.local_user_whitelist

    def is_whitelisted(self, user_id: str) -> bool:
        return user_id in self.get_whitelist()

    def whitelist_user(self, user_id: str) -> bool:
        entries = self.get_whitelist()
        if user_id in entries:
            return False
        self._config.set("local_user_whitelist", append_unique(entries, user_id))
        self.sync_owner_mirror()
        logger.info("[WHITELIST] Added %s", user_id)
        return True

    def unwhitelist_user(self, user_id: str) -> bool:
        entries = self.get_whitelist()
        if user_id not in entries:
            return False
        self._config.set("local_user_whitelist", remove_value(entries, user_id))
        self.sync_owner_mirror()
        logger.info("[WHITELIST] Removed %s", user_id)
        return True

    def sync_owner_mirror(self) -> None:
        """Copy the global whitelist into the local user's member config."""
        owner = self._config.local_user_id
        if not owner:
            return
        entries = self.get_whitelist()
        if not entries and not self._state.has_member_config(owner):
            return
        if self._state.get_member_config(owner).whitelisted_users != entries:
            self._state.update_member_config(owner, whitelisted_users=entries)

    def evaluate_join(self, evaluation: JoinEvaluation) -> JoinDecision:
        if self.is_whitelisted(evaluation.user_id):
            return JoinDecision.allow("Whitelisted")
        return JoinDecision.proceed()
