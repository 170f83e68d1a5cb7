"""
Persistent state records for managed voice rooms.

This module defines the two records the state store keeps and writes to
storage: :class:`RoomOwnership` (one per managed room) and
:class:`MemberModerationConfig` (one per room owner).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class RoomOwnership:
    """Who created and who (optionally) claimed a managed voice room.

    Attributes:
        room_id: ID of the voice channel.
        creator_id: User that created the room.
        claimant_id: User that claimed the room after the creator left, if any.
        created_at: Epoch seconds of the "created" reply.
        claimed_at: Epoch seconds of the "claimed" reply, if any.
    """
    room_id: str
    creator_id: str = ""
    claimant_id: Optional[str] = None
    created_at: float = 0.0
    claimed_at: Optional[float] = None

    @property
    def effective_owner(self) -> str:
        """Claimant if the room was claimed, else the creator."""
        return self.claimant_id or self.creator_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "room_id": self.room_id,
            "creator_id": self.creator_id,
            "claimant_id": self.claimant_id,
            "created_at": self.created_at,
            "claimed_at": self.claimed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoomOwnership":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(slots=True)
class MemberModerationConfig:
    """Moderation lists and room preferences of one room owner.

    ``banned_users`` and ``permitted_users`` are ordered oldest first; the
    first entry is the one evicted when a list rotates.
    """
    user_id: str
    banned_users: List[str] = field(default_factory=list)
    permitted_users: List[str] = field(default_factory=list)
    whitelisted_users: List[str] = field(default_factory=list)
    custom_name: Optional[str] = None
    user_limit: Optional[int] = None
    is_locked: bool = False
    name_rotation_list: List[str] = field(default_factory=list)
    name_rotation_index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "banned_users": list(self.banned_users),
            "permitted_users": list(self.permitted_users),
            "whitelisted_users": list(self.whitelisted_users),
            "custom_name": self.custom_name,
            "user_limit": self.user_limit,
            "is_locked": self.is_locked,
            "name_rotation_list": list(self.name_rotation_list),
            "name_rotation_index": self.name_rotation_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemberModerationConfig":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        for list_field in ("banned_users", "permitted_users", "whitelisted_users", "name_rotation_list"):
            if list_field in values:
                values[list_field] = [str(v) for v in (values[list_field] or [])]
        return cls(**values)


MEMBER_CONFIG_FIELDS = frozenset(f.name for f in fields(MemberModerationConfig)) - {"user_id"}
OWNERSHIP_FIELDS = frozenset(f.name for f in fields(RoomOwnership)) - {"room_id"}
