from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from conftest import CATEGORY, CREATION_CHANNEL, ROOM
from voicewarden.services.discord_transport import (
    DiscordTransport,
    is_managed_channel,
    to_bot_message,
    to_membership_change,
)

USER = "111111111111111111"


def _channel(channel_id, category_id=None):
    return SimpleNamespace(id=int(channel_id), category_id=int(category_id) if category_id else None)


class TestManagedChannels:
    def test_category_and_creation_channel_are_managed(self, config):
        assert is_managed_channel(_channel(ROOM, CATEGORY), config) is True
        assert is_managed_channel(_channel(CREATION_CHANNEL), config) is True

    def test_other_channels_are_not(self, config):
        assert is_managed_channel(None, config) is False
        assert is_managed_channel(_channel(ROOM, "999999999999"), config) is False
        assert is_managed_channel(_channel(ROOM), config) is False

    def test_no_category_configured(self, config):
        config.set("category_id", "")

        assert is_managed_channel(_channel(ROOM, CATEGORY), config) is False


def test_to_membership_change(config):
    member = SimpleNamespace(id=int(USER), guild=SimpleNamespace(id=42))
    before = SimpleNamespace(channel=None)
    after = SimpleNamespace(channel=_channel(ROOM, CATEGORY))

    change = to_membership_change(member, before, after, config)

    assert change.user_id == USER
    assert change.old_room_id is None
    assert change.new_room_id == ROOM
    assert change.guild_id == "42"
    assert change.new_managed is True and change.old_managed is False
    assert change.is_move


class TestToBotMessage:
    def _message(self, **overrides):
        values = dict(
            id=77,
            channel=SimpleNamespace(id=int(ROOM)),
            author=SimpleNamespace(id=5),
            content="<@111111111111111111> has been banned",
            mentions=[SimpleNamespace(id=int(USER))],
            embeds=[],
            reference=None,
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_plain_message(self):
        message = to_bot_message(self._message())

        assert message.message_id == "77"
        assert message.room_id == ROOM
        assert message.author_id == "5"
        assert message.mentions == [USER]
        assert message.referenced_author_id is None
        assert message.timestamp == datetime(2025, 1, 1, tzinfo=timezone.utc).timestamp()

    def test_embed_fields_are_copied(self):
        embed = discord.Embed(title="Channel Info", description="**Owner:** <@1>")
        embed.set_author(name="someone", icon_url="https://cdn.discordapp.com/avatars/123/abc.png")

        message = to_bot_message(self._message(embeds=[embed], content=None))

        assert message.content == ""
        assert message.embeds[0].title == "Channel Info"
        assert message.embeds[0].description == "**Owner:** <@1>"
        assert message.embeds[0].author_name == "someone"
        assert message.embeds[0].author_icon_url == "https://cdn.discordapp.com/avatars/123/abc.png"

    def test_embed_without_author(self):
        message = to_bot_message(self._message(embeds=[discord.Embed(title="Locked")]))

        assert message.embeds[0].author_name == ""
        assert message.embeds[0].author_icon_url == ""

    def test_referenced_author_from_resolved_message(self):
        resolved = MagicMock(spec=discord.Message)
        resolved.author = SimpleNamespace(id=int(USER))

        message = to_bot_message(self._message(reference=SimpleNamespace(resolved=resolved)))

        assert message.referenced_author_id == USER

    def test_unresolved_reference_is_ignored(self):
        message = to_bot_message(self._message(reference=SimpleNamespace(resolved=None)))

        assert message.referenced_author_id is None


class TestDiscordTransport:
    @pytest.mark.asyncio
    async def test_send_uses_cached_channel(self):
        channel = MagicMock()
        channel.send = AsyncMock(return_value="sent")
        bot = MagicMock()
        bot.get_channel.return_value = channel

        result = await DiscordTransport(bot).send_command("!v lock", ROOM)

        assert result == "sent"
        bot.get_channel.assert_called_once_with(int(ROOM))
        channel.send.assert_awaited_once_with("!v lock")

    @pytest.mark.asyncio
    async def test_send_fetches_uncached_channel(self):
        channel = MagicMock()
        channel.send = AsyncMock()
        bot = MagicMock()
        bot.get_channel.return_value = None
        bot.fetch_channel = AsyncMock(return_value=channel)

        await DiscordTransport(bot).send_command("!v info", ROOM)

        bot.fetch_channel.assert_awaited_once_with(int(ROOM))
        channel.send.assert_awaited_once_with("!v info")

    @pytest.mark.asyncio
    async def test_delete_message(self):
        message = MagicMock()
        message.delete = AsyncMock()
        channel = MagicMock()
        channel.fetch_message = AsyncMock(return_value=message)
        bot = MagicMock()
        bot.get_channel.return_value = channel

        await DiscordTransport(bot).delete_message(ROOM, "900")

        channel.fetch_message.assert_awaited_once_with(900)
        message.delete.assert_awaited_once()
