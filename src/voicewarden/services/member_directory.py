"""
Lookups about guild members needed by the join policies.

Policies only ask three questions: which roles a member has, whether the
local user has blocked them, and what to call them in a message. The
:class:`MemberDirectory` protocol keeps those lookups independent of py-cord.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, Set

import discord

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.util.logger import get_logger

logger = get_logger("member_directory")


class MemberDirectory(Protocol):
    def get_member_roles(self, guild_id: str, user_id: str) -> Optional[List[str]]:
        """Role IDs of the member, or None when the member is unknown."""
        ...

    def is_blocked(self, user_id: str) -> bool: ...

    def display_name(self, guild_id: str, user_id: str) -> str: ...


class StaticMemberDirectory:
    """Directory backed by plain dicts."""

    def __init__(
        self,
        roles: Dict[str, List[str]] | None = None,
        blocked: Iterable[str] = (),
        names: Dict[str, str] | None = None,
    ) -> None:
        self.roles: Dict[str, List[str]] = dict(roles or {})
        self.blocked: Set[str] = set(blocked)
        self.names: Dict[str, str] = dict(names or {})

    def get_member_roles(self, guild_id: str, user_id: str) -> Optional[List[str]]:
        roles = self.roles.get(user_id)
        return list(roles) if roles is not None else None

    def is_blocked(self, user_id: str) -> bool:
        return user_id in self.blocked

    def display_name(self, guild_id: str, user_id: str) -> str:
        return self.names.get(user_id, user_id)


class DiscordMemberDirectory:
    """
    Directory that reads members from the py-cord gateway cache.

    The block list is not exposed to bots by the gateway, so it is read from
    the ``blocked_user_ids`` option on every check.
    """

    def __init__(self, bot: discord.Bot, config: AppConfig) -> None:
        self.bot = bot
        self._config = config

    def _member(self, guild_id: str, user_id: str) -> Optional[discord.Member]:
        try:
            guild = self.bot.get_guild(int(guild_id)) if guild_id else None
            if guild is None:
                return None
            return guild.get_member(int(user_id))
        except (TypeError, ValueError):
            logger.warning("[MEMBER DIRECTORY] Invalid IDs guild=%r user=%r", guild_id, user_id)
            return None

    def get_member_roles(self, guild_id: str, user_id: str) -> Optional[List[str]]:
        member = self._member(guild_id, user_id)
        if member is None:
            return None
        return [str(role.id) for role in member.roles]

    def is_blocked(self, user_id: str) -> bool:
        return user_id in self._config.blocked_user_ids

    def display_name(self, guild_id: str, user_id: str) -> str:
        member = self._member(guild_id, user_id)
        if member is not None:
            return member.display_name
        user = self.bot.get_user(int(user_id)) if user_id.isdigit() else None
        return user.name if user is not None else user_id
