"""Voice listener Cog for VoiceWarden.

This cog has exactly ONE responsibility: turn gateway voice events into the
runtime's membership-change feed. On ready it also seeds voice presence from
the gateway cache and asks the voice bot for the owners of rooms we know
nothing about.
"""

from __future__ import annotations

import discord
from discord.ext import commands

from voicewarden.runtime import VoiceWardenRuntime
from voicewarden.services.discord_transport import is_managed_channel, to_membership_change
from voicewarden.util.logger import get_logger

logger = get_logger("voice_listener")


class VoiceListenerCog(commands.Cog):
    """Forwards voice-state updates to the ownership module."""

    def __init__(self, bot: discord.Bot, runtime: VoiceWardenRuntime) -> None:
        self.bot = bot
        self.runtime = runtime
        logger.info("[VOICE LISTENER] Voice listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        config = self.runtime.config
        guild = self.bot.get_guild(int(config.guild_id)) if config.guild_id else None
        if guild is None:
            logger.warning("[VOICE LISTENER] Guild %r not available; presence not seeded", config.guild_id)
            return

        unknown_rooms = []
        for channel in guild.voice_channels:
            if not is_managed_channel(channel, config):
                continue
            room_id = str(channel.id)
            self.runtime.presence.set_occupants(room_id, {str(member.id) for member in channel.members})
            if room_id != config.creation_channel_id and self.runtime.state.get_ownership(room_id) is None:
                unknown_rooms.append(room_id)

        logger.info(
            "[VOICE LISTENER] Seeded presence for guild %s; %d room(s) without a known owner",
            guild.name, len(unknown_rooms),
        )
        if unknown_rooms:
            await self.runtime.ownership.fetch_all_owners(unknown_rooms)

    @commands.Cog.listener(name="on_voice_state_update")
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        config = self.runtime.config
        if config.guild_id and str(member.guild.id) != config.guild_id:
            return

        change = to_membership_change(member, before, after, config)
        if not change.is_move or not (change.old_managed or change.new_managed):
            return

        logger.debug(
            "[VOICE LISTENER] %s moved %s -> %s", change.user_id, change.old_room_id, change.new_room_id,
        )
        self.runtime.handle_membership_change(change)


def setup(bot: discord.Bot, runtime: VoiceWardenRuntime) -> None:
    """Register the VoiceListenerCog with the bot."""
    bot.add_cog(VoiceListenerCog(bot, runtime))
