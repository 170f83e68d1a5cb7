from __future__ import annotations

import copy
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

import yaml

from voicewarden.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class RequiredRoleMode(Enum):
    """How the configured role list is matched against a member's roles."""

    ALL = "all"
    ANY = "any"
    NONE = "none"

    def __str__(self) -> str:
        return self.value


DEFAULT_BAN_ROTATION_MESSAGE = "♻️ Ban rotated: <@{user_id}> was unbanned to make room for <@{user_id_new}>"
DEFAULT_PERMIT_ROTATION_MESSAGE = "♻️ Permit rotated: <@{user_id}> was unpermitted to make room for <@{user_id_new}>"
DEFAULT_OWNERSHIP_MESSAGE = "✨ <@{user_id}> is now the owner of <#{channel_id}> (Reason: {reason})"

DEFAULTS: Dict[str, Any] = {
    # Identity
    "bot_user_id": "",
    "local_user_id": "",
    "guild_id": "",
    "category_id": "",
    "creation_channel_id": "",
    # Dispatch queue
    "queue_enabled": True,
    "queue_interval_seconds": 2.0,
    "send_timeout_seconds": 10.0,
    # Command templates
    "claim_command": "!v claim",
    "info_command": "!v info",
    "lock_command": "!v lock",
    "unlock_command": "!v unlock",
    "reset_command": "!v reset",
    "kick_command": "!v kick {user_id}",
    "ban_command": "!v ban {user_id}",
    "unban_command": "!v unban {user_id}",
    "permit_command": "!v permit {user_id}",
    "unpermit_command": "!v unpermit {user_id}",
    "set_size_command": "!v limit {size}",
    "set_channel_name_command": "!v name {name}",
    # Ban policy
    "ban_limit": 5,
    "ban_rotate_enabled": True,
    "ban_rotate_cooldown_seconds": 0.0,
    "ban_rotation_message": DEFAULT_BAN_ROTATION_MESSAGE,
    "ban_in_local_blacklist": True,
    "ban_blocked_users": True,
    "ban_not_in_roles": True,
    "required_role_ids": [],
    "required_role_mode": "any",
    # Local lists
    "local_user_blacklist": [],
    "local_user_whitelist": [],
    "blocked_user_ids": [],
    # Permits
    "permit_limit": 5,
    "permit_rotate_enabled": False,
    "permit_rotation_message": DEFAULT_PERMIT_ROTATION_MESSAGE,
    # Ownership
    "ownership_change_message": DEFAULT_OWNERSHIP_MESSAGE,
    "auto_claim_disbanded": False,
    "fetch_owners_spacing_seconds": 0.5,
    # Name rotation
    "channel_name_rotation_enabled": True,
    "channel_name_rotation_names": [],
    "channel_name_rotation_interval_minutes": 11,
    # Vote ban
    "vote_ban_command": "!vote ban",
    "vote_ban_percentage": 50,
    "vote_ban_window_seconds": 300,
    "vote_ban_sweep_seconds": 60,
    # Remote operators
    "remote_operators_enabled": True,
    "external_command_prefix": "@",
    "remote_operator_list": [],
    # Command cleanup
    "command_cleanup": True,
    "command_cleanup_delay_seconds": 1.0,
    # State persistence
    "database_path": "./data/state.db",
    "state_save_debounce_seconds": 0.5,
}


def as_id_list(value: Any) -> List[str]:
    """Normalise a list setting into a list of non-empty strings.

    Accepts a YAML list, a newline/comma separated string, or ``None``.
    Order is preserved and duplicates are dropped.
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw: Iterable[Any] = value.replace(",", "\n").splitlines()
    elif isinstance(value, (list, tuple, set)):
        raw = value
    else:
        raw = [value]

    result: List[str] = []
    for entry in raw:
        text = str(entry).strip()
        if text and text not in result:
            result.append(text)
    return result


class AppConfig:
    """Live accessor around the YAML application configuration.

    Values come from ``./config/app_config.yml`` layered over :data:`DEFAULTS`.
    Callers read through the typed properties on every use rather than taking a
    snapshot, so changes made with :meth:`set` or :meth:`update` (or a
    :meth:`reload`) are observed immediately.
    """

    def __init__(self, config_path: Path | None = None, overrides: Mapping[str, Any] | None = None) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()
        if overrides:
            self._data.update(overrides)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None = None) -> "AppConfig":
        """Build a configuration from an in-memory mapping, skipping the disk."""
        return cls(config_path=None, overrides=values or {})

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        if self.config_path is None:
            return {}
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
            if data is None:
                return {}
            if not isinstance(data, dict):
                logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
                return {}
            return data
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _float(self, key: str) -> float:
        value = self.get(key)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Invalid number for %s: %r, using default", key, value)
            return float(DEFAULTS[key])

    def _int(self, key: str) -> int:
        value = self.get(key)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Invalid integer for %s: %r, using default", key, value)
            return int(DEFAULTS[key])

    def _str(self, key: str) -> str:
        value = self.get(key)
        return "" if value is None else str(value)

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the effective configuration (defaults merged with loaded values)."""
        merged = copy.deepcopy(DEFAULTS)
        merged.update(self._data)
        return merged

    def get(self, key: str, default: Any = None) -> Any:
        """Look up ``key`` in the loaded values, then in :data:`DEFAULTS`."""
        if key in self._data:
            return self._data[key]
        if key in DEFAULTS:
            return DEFAULTS[key]
        return default

    def set(self, key: str, value: Any) -> None:
        """Change a single option at runtime."""
        self._data[key] = value
        logger.debug("[APP CONFIGURATION] %s set to %r", key, value)

    def update(self, values: Mapping[str, Any]) -> None:
        """Change several options at runtime."""
        for key, value in values.items():
            self.set(key, value)

    # --------------------------
    # Identity
    # --------------------------
    @property
    def bot_user_id(self) -> str:
        return self._str("bot_user_id")

    @property
    def local_user_id(self) -> str:
        return self._str("local_user_id")

    @property
    def guild_id(self) -> str:
        return self._str("guild_id")

    @property
    def category_id(self) -> str:
        return self._str("category_id")

    @property
    def creation_channel_id(self) -> str:
        return self._str("creation_channel_id")

    # --------------------------
    # Dispatch queue
    # --------------------------
    @property
    def queue_enabled(self) -> bool:
        return bool(self.get("queue_enabled"))

    @property
    def queue_interval_seconds(self) -> float:
        """Minimum spacing between two sends. Negative values are clamped to 0."""
        return max(0.0, self._float("queue_interval_seconds"))

    @property
    def send_timeout_seconds(self) -> float:
        return max(0.0, self._float("send_timeout_seconds"))

    # --------------------------
    # Templates
    # --------------------------
    def command_template(self, name: str) -> str:
        """Return the command template stored under ``<name>_command``."""
        return self._str(f"{name}_command")

    # --------------------------
    # Ban policy
    # --------------------------
    @property
    def ban_limit(self) -> int:
        return self._int("ban_limit")

    @property
    def ban_rotate_enabled(self) -> bool:
        return bool(self.get("ban_rotate_enabled"))

    @property
    def ban_rotate_cooldown_seconds(self) -> float:
        return self._float("ban_rotate_cooldown_seconds")

    @property
    def ban_rotation_message(self) -> str:
        return self._str("ban_rotation_message")

    @property
    def ban_in_local_blacklist(self) -> bool:
        return bool(self.get("ban_in_local_blacklist"))

    @property
    def ban_blocked_users(self) -> bool:
        return bool(self.get("ban_blocked_users"))

    @property
    def ban_not_in_roles(self) -> bool:
        return bool(self.get("ban_not_in_roles"))

    @property
    def required_role_ids(self) -> List[str]:
        return as_id_list(self.get("required_role_ids"))

    @property
    def required_role_mode(self) -> RequiredRoleMode:
        raw = str(self.get("required_role_mode") or "").strip().lower()
        try:
            return RequiredRoleMode(raw)
        except ValueError:
            logger.warning("[APP CONFIGURATION] Unknown required_role_mode %r, falling back to 'any'", raw)
            return RequiredRoleMode.ANY

    # --------------------------
    # Local lists
    # --------------------------
    @property
    def local_user_blacklist(self) -> List[str]:
        return as_id_list(self.get("local_user_blacklist"))

    @property
    def local_user_whitelist(self) -> List[str]:
        return as_id_list(self.get("local_user_whitelist"))

    @property
    def blocked_user_ids(self) -> List[str]:
        """Users the local user has blocked; the gateway does not expose this to bots."""
        return as_id_list(self.get("blocked_user_ids"))

    # --------------------------
    # Permits
    # --------------------------
    @property
    def permit_limit(self) -> int:
        return self._int("permit_limit")

    @property
    def permit_rotate_enabled(self) -> bool:
        return bool(self.get("permit_rotate_enabled"))

    @property
    def permit_rotation_message(self) -> str:
        return self._str("permit_rotation_message") or DEFAULT_PERMIT_ROTATION_MESSAGE

    # --------------------------
    # Ownership
    # --------------------------
    @property
    def ownership_change_message(self) -> str:
        return self._str("ownership_change_message")

    @property
    def auto_claim_disbanded(self) -> bool:
        return bool(self.get("auto_claim_disbanded"))

    @property
    def fetch_owners_spacing_seconds(self) -> float:
        return max(0.0, self._float("fetch_owners_spacing_seconds"))

    # --------------------------
    # Name rotation
    # --------------------------
    @property
    def channel_name_rotation_enabled(self) -> bool:
        return bool(self.get("channel_name_rotation_enabled"))

    @property
    def channel_name_rotation_names(self) -> List[str]:
        value = self.get("channel_name_rotation_names")
        if isinstance(value, str):
            return [line.strip() for line in value.splitlines() if line.strip()]
        return [str(name).strip() for name in (value or []) if str(name).strip()]

    @property
    def channel_name_rotation_interval_minutes(self) -> float:
        return self._float("channel_name_rotation_interval_minutes")

    # --------------------------
    # Vote ban
    # --------------------------
    @property
    def vote_ban_command(self) -> str:
        return self._str("vote_ban_command")

    @property
    def vote_ban_percentage(self) -> float:
        return self._float("vote_ban_percentage")

    @property
    def vote_ban_window_seconds(self) -> float:
        return self._float("vote_ban_window_seconds")

    @property
    def vote_ban_sweep_seconds(self) -> float:
        return self._float("vote_ban_sweep_seconds")

    # --------------------------
    # Remote operators
    # --------------------------
    @property
    def remote_operators_enabled(self) -> bool:
        return bool(self.get("remote_operators_enabled"))

    @property
    def external_command_prefix(self) -> str:
        return self._str("external_command_prefix")

    @property
    def remote_operator_list(self) -> List[str]:
        return as_id_list(self.get("remote_operator_list"))

    # --------------------------
    # Command cleanup
    # --------------------------
    @property
    def command_cleanup(self) -> bool:
        return bool(self.get("command_cleanup"))

    @property
    def command_cleanup_delay_seconds(self) -> float:
        return max(0.0, self._float("command_cleanup_delay_seconds"))

    # --------------------------
    # Persistence
    # --------------------------
    @property
    def database_path(self) -> Path:
        return Path(self._str("database_path") or DEFAULTS["database_path"]).resolve()

    @property
    def state_save_debounce_seconds(self) -> float:
        return max(0.0, self._float("state_save_debounce_seconds"))
