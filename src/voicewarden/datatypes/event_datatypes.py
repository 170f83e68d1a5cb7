"""
Event names, payloads and join-policy types shared by every module.

Payloads are mutable dataclasses; handlers on the event bus may read them but
only the join pipeline writes to a :class:`JoinEvaluation`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class CoreEvent(Enum):
    """Events published on the module registry's bus."""

    MODULE_INIT = "module_init"
    ACTION_QUEUED = "action_queued"
    ACTION_EXECUTED = "action_executed"
    ROOM_OWNERSHIP_CHANGED = "room_ownership_changed"
    BOT_REPLY_RECEIVED = "bot_reply_received"
    LOCAL_USER_JOINED_MANAGED_ROOM = "local_user_joined_managed_room"
    LOCAL_USER_LEFT_MANAGED_ROOM = "local_user_left_managed_room"
    USER_JOINED_OWNED_ROOM = "user_joined_owned_room"
    USER_LEFT_OWNED_ROOM = "user_left_owned_room"
    SETTINGS_UPDATED = "settings_updated"

    def __str__(self) -> str:
        return self.value


class JoinVerdict(Enum):
    ALLOW = "allow"
    DENY = "deny"
    CONTINUE = "continue"


@dataclass(frozen=True, slots=True)
class JoinDecision:
    """Outcome of one join policy.

    ``ALLOW`` and ``DENY`` end the pipeline; ``CONTINUE`` hands the join to
    the next policy.
    """
    verdict: JoinVerdict
    reason: str = ""

    @classmethod
    def allow(cls, reason: str) -> "JoinDecision":
        return cls(JoinVerdict.ALLOW, reason)

    @classmethod
    def deny(cls, reason: str) -> "JoinDecision":
        return cls(JoinVerdict.DENY, reason)

    @classmethod
    def proceed(cls) -> "JoinDecision":
        return cls(JoinVerdict.CONTINUE)

    @property
    def is_decisive(self) -> bool:
        return self.verdict is not JoinVerdict.CONTINUE


@dataclass(slots=True)
class JoinEvaluation:
    """Accumulator for one "user joined an owned room" occurrence."""
    room_id: str
    user_id: str
    guild_id: str = ""
    allowed: bool = True
    handled: bool = False
    reason: str = ""
    decided_by: Optional[str] = None


@dataclass(slots=True)
class MembershipChange:
    """A single voice-state transition as seen by the local client.

    ``old_room_id`` / ``new_room_id`` are None when the user was not / is no
    longer in a voice room. ``managed`` flags whether either room belongs to
    the configured managed category.
    """
    user_id: str
    old_room_id: Optional[str] = None
    new_room_id: Optional[str] = None
    guild_id: str = ""
    old_managed: bool = False
    new_managed: bool = False

    @property
    def is_move(self) -> bool:
        return self.old_room_id != self.new_room_id


@dataclass(slots=True)
class RoomEventPayload:
    """Payload for local-user room events and ``USER_LEFT_OWNED_ROOM``."""
    room_id: str
    user_id: str
    guild_id: str = ""


@dataclass(slots=True)
class OwnershipChangedPayload:
    room_id: str
    owner_id: Optional[str]
    previous_owner_id: Optional[str] = None
    reason: str = ""


@dataclass(slots=True)
class ActionPayload:
    """Payload for ``ACTION_QUEUED`` and ``ACTION_EXECUTED``."""
    item: Any
    result: Any = None


@dataclass(slots=True)
class SettingsUpdatedPayload:
    changed: dict = field(default_factory=dict)
