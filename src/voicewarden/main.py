"""
VoiceWarden
===========

Automates moderation of user-owned voice rooms by sending text commands to
the server's voice-room bot on the local user's behalf, and keeps track of
room ownership and per-owner moderation lists from the bot's replies.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. VOICEWARDEN_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("VOICEWARDEN_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from voicewarden.configuration.app_configuration import CONFIG_PATH, AppConfig
from voicewarden.runtime import VoiceWardenRuntime
from voicewarden.services.discord_transport import DiscordTransport
from voicewarden.services.member_directory import DiscordMemberDirectory
from voicewarden.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Returns
    -------
    str
        Discord bot token extracted from the loaded environment.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Construct the Discord intents VoiceWarden needs.

    Returns
    -------
    discord.Intents
        Intents enabling guild, member, voice-state and message events.
    """
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    intents.voice_states = True
    return intents


def load_cogs(discord_bot_instance: discord.Bot, runtime: VoiceWardenRuntime) -> None:
    """Register the listener cogs with the provided Discord bot instance."""
    from voicewarden.cog.listener import message_listener, voice_listener

    voice_listener.setup(discord_bot_instance, runtime)
    message_listener.setup(discord_bot_instance, runtime)

    logger.info("All cogs loaded successfully.")


def create_bot(config: AppConfig) -> tuple[discord.Bot, VoiceWardenRuntime]:
    """Instantiate the Discord bot, wire it into a runtime and register the cogs."""
    bot = discord.Bot(intents=build_intents())
    transport = DiscordTransport(bot)
    runtime = VoiceWardenRuntime(
        config,
        sender=transport.send_command,
        directory=DiscordMemberDirectory(bot, config),
        delete_message=transport.delete_message,
    )
    load_cogs(bot, runtime)
    return bot, runtime


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and handle lifecycle logging around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, runtime: VoiceWardenRuntime | None) -> None:
    """Gracefully stop the Discord bot and the VoiceWarden runtime."""
    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord bot: %s", exc)

    if runtime is not None:
        try:
            await runtime.shutdown()
        except Exception as exc:
            logger.exception("Error during runtime shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the runtime and the bot, returning an exit code."""
    token = load_environment()
    config = AppConfig(CONFIG_PATH)

    try:
        bot, runtime = create_bot(config)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        return 1

    try:
        logger.info("Loading state and initialising modules...")
        await runtime.start()
    except Exception as exc:
        logger.critical("Failed to start runtime: %s", exc)
        await shutdown_runtime(bot, None)
        return 1

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, runtime)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    logger.info("Starting VoiceWarden…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        if code is None:
            return 1
        try:
            return int(code)
        except (ValueError, TypeError):
            logger.warning("SystemExit.code is not an int (%r); defaulting to 1", code)
            return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    print(f"Exited with code: {main()}")
