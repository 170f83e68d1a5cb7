import re
from typing import Any, Iterable, List, Optional

from voicewarden.util.logger import get_logger

logger = get_logger("format_utils")

MENTION_PATTERN = re.compile(r"<@!?(\d+)>")
SNOWFLAKE_PATTERN = re.compile(r"^\d{5,25}$")
PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")

KNOWN_PLACEHOLDERS = frozenset({
    "me", "channel", "channel_id", "user", "user_id", "user_id_new",
    "user_name", "size", "channel_limit", "reason", "name",
})


def format_command(template: str, **values: Any) -> str:
    """Fill ``{placeholder}`` tokens in a command or message template.

    Known placeholders with no value become empty strings. ``{user}`` and
    ``{channel}`` default to mentions built from ``user_id`` / ``channel_id``
    when not given explicitly. Unknown placeholders are left untouched so a
    typo in a template is visible in the sent text.

    Args:
        template: Template text, e.g. ``"!v ban {user_id}"``.
        **values: Placeholder values.

    Returns:
        The formatted text, stripped of surrounding whitespace.
    """
    if not template:
        return ""

    resolved = {key: "" if value is None else str(value) for key, value in values.items()}
    if "user" not in resolved and resolved.get("user_id"):
        resolved["user"] = f"<@{resolved['user_id']}>"
    if "channel" not in resolved and resolved.get("channel_id"):
        resolved["channel"] = f"<#{resolved['channel_id']}>"

    def _substitute(match: re.Match) -> str:
        key = match.group(1)
        if key in resolved:
            return resolved[key]
        if key in KNOWN_PLACEHOLDERS:
            return ""
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_substitute, template).strip()


def extract_id(text: Optional[str]) -> Optional[str]:
    """Return a user ID from a mention (``<@123>``) or a bare snowflake."""
    if not text:
        return None
    text = text.strip()
    match = MENTION_PATTERN.search(text)
    if match:
        return match.group(1)
    if SNOWFLAKE_PATTERN.match(text):
        return text
    return None


def first_mention(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    match = MENTION_PATTERN.search(text)
    return match.group(1) if match else None


def append_unique(values: Iterable[str], value: str) -> List[str]:
    """Return a copy of ``values`` with ``value`` appended if not already present."""
    result = list(values)
    if value not in result:
        result.append(value)
    return result


def remove_value(values: Iterable[str], value: str) -> List[str]:
    return [v for v in values if v != value]
