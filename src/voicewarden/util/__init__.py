"""
Utility functions and helpers for VoiceWarden.

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log files. Suppresses noise from
  Discord internals and aiosqlite. Uses prompt_toolkit for console output.

- **format_utils.py**: Command template filling and mention/ID helpers.

- **bot_reply_parsing.py**: Pure parsing of voice-bot reply embeds into
  :class:`BotReply` records and room info snapshots.
"""
