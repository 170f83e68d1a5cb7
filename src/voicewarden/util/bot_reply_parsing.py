"""
Parsing of replies posted by the external voice-room bot.

Every function here is pure: it takes a :class:`BotMessage` (or a raw embed
description) and returns plain data. Side effects live in
``voicewarden.moderation.reconciliation``.
"""

from __future__ import annotations

import re
from typing import Optional

from voicewarden.datatypes.bot_reply_datatypes import (
    BotMessage,
    BotReply,
    BotReplyKind,
    EmbedData,
    RoomInfo,
)
from voicewarden.util.format_utils import MENTION_PATTERN, first_mention
from voicewarden.util.logger import get_logger

logger = get_logger("bot_reply_parsing")

USERNAME_PATTERN = re.compile(r"@([a-zA-Z0-9_.]+)")
NAME_PATTERN = re.compile(r"\*\*Name:\*\* (.*)")
LIMIT_PATTERN = re.compile(r"\*\*Limit:\*\* (\d+)")
STATUS_PATTERN = re.compile(r"\*\*Status:\*\* (.*)")

# Kinds whose replies never name a target user
_NO_TARGET_KINDS = frozenset({
    BotReplyKind.INFO,
    BotReplyKind.CREATED,
    BotReplyKind.SIZE_SET,
    BotReplyKind.LOCKED,
    BotReplyKind.UNLOCKED,
    BotReplyKind.CLAIMED,
})


def classify_reply(message: BotMessage) -> BotReplyKind:
    """Determine the reply kind from the first embed and the message content.

    Error embeds and "voice help" embeds are always UNKNOWN. The remaining
    checks run in a fixed order; the first match wins.
    """
    if not message.embeds:
        return BotReplyKind.UNKNOWN

    embed = message.embeds[0]
    author = embed.author_name.lower()
    title = embed.title.lower()
    description = embed.description.lower()
    content = message.content.lower()

    def heading(text: str) -> bool:
        return text in author or text in title

    def anywhere(text: str) -> bool:
        return heading(text) or text in description or text in content

    if "error" in title or "error" in author:
        return BotReplyKind.UNKNOWN
    if "voice help" in author:
        return BotReplyKind.UNKNOWN

    if anywhere("channel created"):
        return BotReplyKind.CREATED
    if anywhere("channel claimed"):
        return BotReplyKind.CLAIMED
    # "View your channel settings" appears in help text, so settings is heading-only
    if heading("channel settings") or anywhere("channel info updated"):
        return BotReplyKind.INFO
    if heading("unbanned successfully") or "__unbanned__" in description:
        return BotReplyKind.UNBANNED
    if heading("banned successfully") or "__banned__" in description:
        return BotReplyKind.BANNED
    if heading("unpermitted successfully") or "__unpermitted" in description:
        return BotReplyKind.UNPERMITTED
    if heading("permitted successfully") or "__permitted" in description:
        return BotReplyKind.PERMITTED
    if "__channel size__" in description or anywhere("size set"):
        return BotReplyKind.SIZE_SET
    if anywhere("unlocked"):
        return BotReplyKind.UNLOCKED
    if anywhere("locked"):
        return BotReplyKind.LOCKED
    return BotReplyKind.UNKNOWN


def avatar_user_id(icon_url: str) -> Optional[str]:
    """Pull the user ID out of a CDN avatar URL (``.../avatars/<id>/<hash>.png``)."""
    if not icon_url or "/avatars/" not in icon_url:
        return None
    fragment = icon_url.split("/avatars/", 1)[1].split("/", 1)[0]
    # Default avatars (/embed/avatars/0.png) carry no user ID
    return fragment if fragment.isdigit() else None


def find_initiator(message: BotMessage, kind: BotReplyKind) -> Optional[str]:
    embed = message.embeds[0] if message.embeds else EmbedData()

    if kind is BotReplyKind.CREATED:
        if message.mentions:
            return message.mentions[0]
        mention = first_mention(message.content) or first_mention(embed.description)
        if mention:
            return mention

    from_icon = avatar_user_id(embed.author_icon_url)
    if from_icon:
        return from_icon

    if kind is BotReplyKind.CREATED:
        mention = first_mention(embed.author_name)
        if mention:
            return mention

    return message.referenced_author_id


def find_target(message: BotMessage, kind: BotReplyKind) -> Optional[str]:
    if kind in _NO_TARGET_KINDS or kind is BotReplyKind.UNKNOWN:
        return None

    description = message.embeds[0].description if message.embeds else ""
    mention = first_mention(description) or first_mention(message.content)
    if mention:
        return mention

    if message.mentions:
        return message.mentions[-1]

    for text in (description, message.content):
        match = USERNAME_PATTERN.search(text or "")
        if match:
            return f"@{match.group(1)}"
    return None


def parse_bot_reply(message: BotMessage, bot_id: str) -> BotReply:
    """Parse a message into a :class:`BotReply`.

    Messages not authored by ``bot_id`` or lacking an embed parse as UNKNOWN.
    """
    embed = message.embeds[0] if message.embeds else None
    reply = BotReply(
        kind=BotReplyKind.UNKNOWN,
        room_id=message.room_id,
        message_id=message.message_id,
        timestamp=message.timestamp,
        embed=embed,
    )
    if message.author_id != bot_id or embed is None:
        return reply

    reply.kind = classify_reply(message)
    if reply.kind is BotReplyKind.UNKNOWN:
        return reply

    reply.initiator_id = find_initiator(message, reply.kind)
    reply.target_id = find_target(message, reply.kind)
    logger.debug(
        "[BOT REPLY PARSING] %s in %s (initiator=%s, target=%s)",
        reply.kind, reply.room_id, reply.initiator_id, reply.target_id,
    )
    return reply


def parse_info_description(text: str) -> Optional[RoomInfo]:
    """Extract room settings from an info reply's embed description.

    Permitted and banned users are listed as ``> <@id>`` lines below a
    ``**Permitted**`` / ``**Banned**`` heading.
    """
    if not text:
        return None

    info = RoomInfo()

    name_match = NAME_PATTERN.search(text)
    if name_match:
        info.name = name_match.group(1).strip()

    limit_match = LIMIT_PATTERN.search(text)
    if limit_match:
        info.limit = int(limit_match.group(1))

    status_match = STATUS_PATTERN.search(text)
    if status_match:
        info.status = status_match.group(1).strip()

    section: Optional[str] = None
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if "**Permitted**" in line:
            section = "permitted"
            info.has_permitted_section = True
            continue
        if "**Banned**" in line:
            section = "banned"
            info.has_banned_section = True
            continue
        if section and line.startswith("> <@"):
            id_match = MENTION_PATTERN.search(line)
            if id_match:
                target = info.permitted if section == "permitted" else info.banned
                if id_match.group(1) not in target:
                    target.append(id_match.group(1))

    return info
