from __future__ import annotations

from typing import List

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import VoiceModule
from voicewarden.util.format_utils import append_unique, remove_value
from voicewarden.util.logger import get_logger

logger = get_logger("blacklist")


class BlacklistModule(VoiceModule):
    """Global local-user blacklist stored in ``local_user_blacklist``."""

    name = "blacklist"

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def init(self, config: AppConfig) -> None:
        self._config = config
        logger.info("[BLACKLIST] Module initialised with %d entr(ies)", len(self.get_blacklist()))

    def get_blacklist(self) -> List[str]:
        return self._config.local_user_blacklist

    def is_blacklisted(self, user_id: str) -> bool:
        return user_id in self.get_blacklist()

    def blacklist_user(self, user_id: str) -> bool:
        entries = self.get_blacklist()
        if user_id in entries:
            return False
        self._config.set("local_user_blacklist", append_unique(entries, user_id))
        logger.info("[BLACKLIST] Added %s", user_id)
        return True

    def unblacklist_user(self, user_id: str) -> bool:
        entries = self.get_blacklist()
        if user_id not in entries:
            return False
        self._config.set("local_user_blacklist", remove_value(entries, user_id))
        logger.info("[BLACKLIST] Removed %s", user_id)
        return True
