"""Message listener Cog for VoiceWarden.

Forwards replies from the voice bot to the reconciler, runs remote operator
commands and counts vote-ban commands typed by room occupants. Parsing and
state changes live in the runtime, not here.
"""

from __future__ import annotations

import discord
from discord.ext import commands

from voicewarden.runtime import VoiceWardenRuntime
from voicewarden.services.discord_transport import is_managed_channel, to_bot_message
from voicewarden.util.logger import get_logger

logger = get_logger("message_listener")


class MessageListenerCog(commands.Cog):
    def __init__(self, bot: discord.Bot, runtime: VoiceWardenRuntime) -> None:
        self.bot = bot
        self.runtime = runtime
        logger.info("[MESSAGE LISTENER] Message listener cog loaded")

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        config = self.runtime.config
        if message.guild is None or not is_managed_channel(message.channel, config):
            return

        author_id = str(message.author.id)
        if author_id == config.bot_user_id:
            reply = self.runtime.handle_bot_message(to_bot_message(message))
            logger.debug("[MESSAGE LISTENER] Bot reply %s in %s", reply.kind, reply.room_id)
            return

        if message.author.bot or not message.content:
            return
        room_id = str(message.channel.id)
        if self.runtime.handle_remote_command(message.content, author_id, room_id):
            return
        self.runtime.handle_vote_command(message.content, author_id, room_id)

    @commands.Cog.listener(name="on_message_edit")
    async def on_message_edit(self, before: discord.Message, after: discord.Message) -> None:
        """The voice bot edits its info embed in place; re-read it."""
        config = self.runtime.config
        if after.guild is None or str(after.author.id) != config.bot_user_id:
            return
        if not is_managed_channel(after.channel, config):
            return
        self.runtime.handle_bot_message(to_bot_message(after))


def setup(bot: discord.Bot, runtime: VoiceWardenRuntime) -> None:
    """Register the MessageListenerCog with the bot."""
    bot.add_cog(MessageListenerCog(bot, runtime))
