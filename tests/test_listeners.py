from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import BOT_USER, CATEGORY, CREATION_CHANNEL, GUILD, LOCAL_USER, ROOM
from voicewarden.cog.listener.message_listener import MessageListenerCog
from voicewarden.cog.listener.voice_listener import VoiceListenerCog

USER = "111111111111111111"
OTHER_ROOM = "800000000000000008"


def _voice_channel(channel_id, category_id=CATEGORY, members=()):
    return SimpleNamespace(
        id=int(channel_id),
        category_id=int(category_id) if category_id else None,
        members=[SimpleNamespace(id=int(m)) for m in members],
    )


def _member(user_id=USER, guild_id=GUILD):
    return SimpleNamespace(id=int(user_id), guild=SimpleNamespace(id=int(guild_id)))


def _message(author_id, content="", channel=None, bot=False):
    return SimpleNamespace(
        id=1,
        guild=SimpleNamespace(id=int(GUILD)),
        channel=channel or _voice_channel(ROOM),
        author=SimpleNamespace(id=int(author_id), bot=bot),
        content=content,
        mentions=[],
        embeds=[],
        reference=None,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


class TestVoiceListener:
    @pytest.mark.asyncio
    async def test_moves_into_managed_rooms_are_forwarded(self, runtime):
        runtime.handle_membership_change = MagicMock()
        cog = VoiceListenerCog(SimpleNamespace(), runtime)

        await cog.on_voice_state_update(
            _member(), SimpleNamespace(channel=None), SimpleNamespace(channel=_voice_channel(ROOM)),
        )

        change = runtime.handle_membership_change.call_args.args[0]
        assert change.user_id == USER
        assert change.new_room_id == ROOM
        assert change.new_managed is True

    @pytest.mark.asyncio
    async def test_irrelevant_updates_are_dropped(self, runtime):
        runtime.handle_membership_change = MagicMock()
        cog = VoiceListenerCog(SimpleNamespace(), runtime)
        room = _voice_channel(ROOM)
        unmanaged = _voice_channel(OTHER_ROOM, category_id="999999999999")

        # Mute/deafen toggles keep the same channel
        await cog.on_voice_state_update(_member(), SimpleNamespace(channel=room), SimpleNamespace(channel=room))
        await cog.on_voice_state_update(_member(), SimpleNamespace(channel=None), SimpleNamespace(channel=unmanaged))
        await cog.on_voice_state_update(
            _member(guild_id="12345678"), SimpleNamespace(channel=None), SimpleNamespace(channel=room),
        )

        runtime.handle_membership_change.assert_not_called()

    @pytest.mark.asyncio
    async def test_ready_seeds_presence_and_fetches_unknown_owners(self, runtime):
        runtime.state.set_ownership(OTHER_ROOM, {"creator_id": LOCAL_USER})
        runtime.ownership.fetch_all_owners = AsyncMock(return_value=1)
        guild = SimpleNamespace(
            name="Test Guild",
            voice_channels=[
                _voice_channel(ROOM, members=[USER, LOCAL_USER]),
                _voice_channel(OTHER_ROOM),
                _voice_channel(CREATION_CHANNEL, category_id=None),
                _voice_channel("700000000000000007", category_id="999999999999", members=[USER]),
            ],
        )
        bot = SimpleNamespace(get_guild=MagicMock(return_value=guild))
        cog = VoiceListenerCog(bot, runtime)

        await cog.on_ready()

        bot.get_guild.assert_called_once_with(int(GUILD))
        assert runtime.presence.occupants(ROOM) == {USER, LOCAL_USER}
        assert runtime.presence.room_of(USER) == ROOM
        runtime.ownership.fetch_all_owners.assert_awaited_once_with([ROOM])

    @pytest.mark.asyncio
    async def test_ready_without_guild(self, runtime):
        runtime.ownership.fetch_all_owners = AsyncMock()
        cog = VoiceListenerCog(SimpleNamespace(get_guild=MagicMock(return_value=None)), runtime)

        await cog.on_ready()

        runtime.ownership.fetch_all_owners.assert_not_awaited()


class TestMessageListener:
    @pytest.mark.asyncio
    async def test_bot_replies_are_reconciled(self, runtime):
        runtime.handle_bot_message = MagicMock(return_value=SimpleNamespace(kind="banned", room_id=ROOM))
        cog = MessageListenerCog(SimpleNamespace(), runtime)

        await cog.on_message(_message(BOT_USER, f"<@{USER}> has been banned", bot=True))

        parsed = runtime.handle_bot_message.call_args.args[0]
        assert parsed.author_id == BOT_USER
        assert parsed.room_id == ROOM

    @pytest.mark.asyncio
    async def test_user_messages_are_checked_for_votes(self, runtime):
        runtime.handle_vote_command = MagicMock(return_value=False)
        cog = MessageListenerCog(SimpleNamespace(), runtime)

        await cog.on_message(_message(USER, "!vote ban <@222222222222222222>"))
        await cog.on_message(_message("333333333333333333", "!vote ban 1", bot=True))
        await cog.on_message(_message(USER, ""))

        runtime.handle_vote_command.assert_called_once_with("!vote ban <@222222222222222222>", USER, ROOM)

    @pytest.mark.asyncio
    async def test_remote_commands_skip_vote_parsing(self, runtime):
        runtime.handle_remote_command = MagicMock(return_value=True)
        runtime.handle_vote_command = MagicMock()
        cog = MessageListenerCog(SimpleNamespace(), runtime)

        await cog.on_message(_message(USER, "@lock"))

        runtime.handle_remote_command.assert_called_once_with("@lock", USER, ROOM)
        runtime.handle_vote_command.assert_not_called()


    @pytest.mark.asyncio
    async def test_unmanaged_channels_and_dms_are_ignored(self, runtime):
        runtime.handle_bot_message = MagicMock()
        runtime.handle_vote_command = MagicMock()
        cog = MessageListenerCog(SimpleNamespace(), runtime)
        dm = _message(BOT_USER, "hi")
        dm.guild = None

        await cog.on_message(dm)
        await cog.on_message(_message(USER, "!vote ban 1", channel=_voice_channel(OTHER_ROOM, category_id=None)))

        runtime.handle_bot_message.assert_not_called()
        runtime.handle_vote_command.assert_not_called()

    @pytest.mark.asyncio
    async def test_edits_by_the_bot_are_reread(self, runtime):
        runtime.handle_bot_message = MagicMock()
        cog = MessageListenerCog(SimpleNamespace(), runtime)

        await cog.on_message_edit(None, _message(BOT_USER, "edited", bot=True))
        await cog.on_message_edit(None, _message(USER, "edited"))

        runtime.handle_bot_message.assert_called_once()
