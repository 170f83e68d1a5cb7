"""
py-cord glue between the runtime and Discord.

The runtime only knows plain IDs and :class:`BotMessage` records. This
module resolves channels, posts and deletes command messages, and converts
gateway messages and voice states into the runtime's types.
"""

from __future__ import annotations

from typing import Optional

import discord

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.datatypes.bot_reply_datatypes import BotMessage, EmbedData
from voicewarden.datatypes.event_datatypes import MembershipChange
from voicewarden.util.logger import get_logger

logger = get_logger("discord_transport")


class DiscordTransport:
    """Sends and deletes messages in voice-room text chats."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    async def _resolve_channel(self, room_id: str) -> discord.abc.Messageable:
        channel = self.bot.get_channel(int(room_id))
        if channel is None:
            channel = await self.bot.fetch_channel(int(room_id))
        return channel

    async def send_command(self, command: str, room_id: str) -> discord.Message:
        channel = await self._resolve_channel(room_id)
        return await channel.send(command)

    async def delete_message(self, room_id: str, message_id: str) -> None:
        channel = await self._resolve_channel(room_id)
        message = await channel.fetch_message(int(message_id))
        await message.delete()


def is_managed_channel(channel: Optional[discord.abc.GuildChannel], config: AppConfig) -> bool:
    """True for channels in the managed category and for the creation channel."""
    if channel is None:
        return False
    if config.creation_channel_id and str(channel.id) == config.creation_channel_id:
        return True
    category_id = getattr(channel, "category_id", None)
    return bool(config.category_id) and category_id is not None and str(category_id) == config.category_id


def to_membership_change(
    member: discord.Member,
    before: discord.VoiceState,
    after: discord.VoiceState,
    config: AppConfig,
) -> MembershipChange:
    return MembershipChange(
        user_id=str(member.id),
        old_room_id=str(before.channel.id) if before.channel else None,
        new_room_id=str(after.channel.id) if after.channel else None,
        guild_id=str(member.guild.id) if member.guild else "",
        old_managed=is_managed_channel(before.channel, config),
        new_managed=is_managed_channel(after.channel, config),
    )


def _embed_data(embed: discord.Embed) -> EmbedData:
    author = embed.author
    return EmbedData(
        title=embed.title or "",
        description=embed.description or "",
        author_name=getattr(author, "name", None) or "",
        author_icon_url=str(getattr(author, "icon_url", None) or ""),
    )


def to_bot_message(message: discord.Message) -> BotMessage:
    referenced_author_id = None
    reference = message.reference
    if reference is not None and isinstance(reference.resolved, discord.Message):
        referenced_author_id = str(reference.resolved.author.id)

    return BotMessage(
        message_id=str(message.id),
        room_id=str(message.channel.id),
        author_id=str(message.author.id),
        content=message.content or "",
        mentions=[str(user.id) for user in message.mentions],
        embeds=[_embed_data(embed) for embed in message.embeds],
        referenced_author_id=referenced_author_id,
        timestamp=message.created_at.timestamp(),
    )
