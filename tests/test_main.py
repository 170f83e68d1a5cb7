from unittest.mock import AsyncMock, MagicMock

import pytest

from voicewarden import main as main_module


def test_resolve_base_dir_prefers_env(monkeypatch, tmp_path):
    monkeypatch.setenv("VOICEWARDEN_HOME", str(tmp_path))

    assert main_module.resolve_base_dir() == tmp_path.resolve()


def test_load_environment_exits_without_token(monkeypatch):
    monkeypatch.setattr(main_module, "load_dotenv", lambda **kwargs: None)
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)

    with pytest.raises(SystemExit) as exc_info:
        main_module.load_environment()

    assert exc_info.value.code == 1


def test_load_environment_returns_token(monkeypatch):
    monkeypatch.setattr(main_module, "load_dotenv", lambda **kwargs: None)
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token-value")

    assert main_module.load_environment() == "token-value"


def test_build_intents():
    intents = main_module.build_intents()

    assert intents.voice_states is True
    assert intents.members is True
    assert intents.message_content is True


@pytest.mark.asyncio
async def test_shutdown_runtime_closes_bot_then_runtime():
    bot = MagicMock()
    bot.is_closed.return_value = False
    bot.close = AsyncMock()
    runtime = MagicMock()
    runtime.shutdown = AsyncMock(side_effect=RuntimeError("flush failed"))

    await main_module.shutdown_runtime(bot, runtime)

    bot.close.assert_awaited_once()
    runtime.shutdown.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_runtime_skips_closed_bot():
    bot = MagicMock()
    bot.is_closed.return_value = True
    bot.close = AsyncMock()

    await main_module.shutdown_runtime(bot, None)

    bot.close.assert_not_awaited()


@pytest.mark.parametrize("code, expected", [(3, 3), (None, 1), ("2", 2), ("bad", 1)])
def test_main_translates_system_exit(monkeypatch, code, expected):
    def fake_run(coro):
        coro.close()
        raise SystemExit(code)

    monkeypatch.setattr(main_module.asyncio, "run", fake_run)

    assert main_module.main() == expected


def test_main_handles_keyboard_interrupt(monkeypatch):
    def fake_run(coro):
        coro.close()
        raise KeyboardInterrupt

    monkeypatch.setattr(main_module.asyncio, "run", fake_run)

    assert main_module.main() == 0
