"""
Plain representations of messages posted by the external moderation bot.

The Discord adapter converts ``discord.Message`` objects into
:class:`BotMessage` so parsing and reconciliation never touch py-cord types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class BotReplyKind(Enum):
    """Recognised kinds of moderation-bot reply."""

    CREATED = "created"
    CLAIMED = "claimed"
    INFO = "info"
    BANNED = "banned"
    UNBANNED = "unbanned"
    PERMITTED = "permitted"
    UNPERMITTED = "unpermitted"
    SIZE_SET = "size_set"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class EmbedData:
    title: str = ""
    description: str = ""
    author_name: str = ""
    author_icon_url: str = ""


@dataclass(slots=True)
class BotMessage:
    """A message as seen by the reply parser.

    Attributes:
        message_id: ID of the reply message.
        room_id: Channel the reply was posted in (voice text chat).
        author_id: ID of the message author.
        content: Raw message content.
        mentions: IDs of mentioned users, in message order.
        embeds: Embeds attached to the message.
        referenced_author_id: Author of the message this replies to, if any.
        timestamp: Epoch seconds the message was created.
    """
    message_id: str
    room_id: str
    author_id: str
    content: str = ""
    mentions: List[str] = field(default_factory=list)
    embeds: List[EmbedData] = field(default_factory=list)
    referenced_author_id: Optional[str] = None
    timestamp: float = 0.0


@dataclass(slots=True)
class BotReply:
    kind: BotReplyKind
    room_id: str
    message_id: str = ""
    initiator_id: Optional[str] = None
    target_id: Optional[str] = None
    timestamp: float = 0.0
    embed: Optional[EmbedData] = None


@dataclass(slots=True)
class RoomInfo:
    """Fields extracted from an "info" reply's description."""
    name: Optional[str] = None
    limit: Optional[int] = None
    status: Optional[str] = None
    permitted: List[str] = field(default_factory=list)
    banned: List[str] = field(default_factory=list)
    # Whether the description carried a Permitted / Banned heading at all
    has_permitted_section: bool = False
    has_banned_section: bool = False

    @property
    def is_locked(self) -> Optional[bool]:
        if self.status is None:
            return None
        return "lock" in self.status.lower() and "unlock" not in self.status.lower()
