from __future__ import annotations

from typing import Dict, Optional, Set

from voicewarden.datatypes.event_datatypes import MembershipChange


class VoicePresence:
    """Who is currently in which voice room, as observed from voice-state updates."""

    def __init__(self, local_user_id: str = "") -> None:
        self.local_user_id = local_user_id
        self._rooms: Dict[str, Set[str]] = {}
        self._user_room: Dict[str, str] = {}

    def apply(self, change: MembershipChange) -> None:
        """Move ``change.user_id`` out of its old room and into its new one."""
        if change.old_room_id:
            self.remove(change.user_id, change.old_room_id)
        if change.new_room_id:
            self.add(change.user_id, change.new_room_id)

    def add(self, user_id: str, room_id: str) -> None:
        previous = self._user_room.get(user_id)
        if previous and previous != room_id:
            self.remove(user_id, previous)
        self._rooms.setdefault(room_id, set()).add(user_id)
        self._user_room[user_id] = room_id

    def remove(self, user_id: str, room_id: str) -> None:
        occupants = self._rooms.get(room_id)
        if occupants is not None:
            occupants.discard(user_id)
            if not occupants:
                del self._rooms[room_id]
        if self._user_room.get(user_id) == room_id:
            del self._user_room[user_id]

    def set_occupants(self, room_id: str, user_ids: Set[str]) -> None:
        """Replace a room's occupant set (used when seeding from the gateway cache)."""
        for user_id in list(self._rooms.get(room_id, ())):
            self.remove(user_id, room_id)
        for user_id in user_ids:
            self.add(user_id, room_id)

    def room_of(self, user_id: str) -> Optional[str]:
        return self._user_room.get(user_id)

    @property
    def local_room_id(self) -> Optional[str]:
        return self._user_room.get(self.local_user_id) if self.local_user_id else None

    def is_user_in_room(self, user_id: str, room_id: str) -> bool:
        return user_id in self._rooms.get(room_id, ())

    def occupants(self, room_id: str) -> Set[str]:
        return set(self._rooms.get(room_id, ()))

    def occupant_count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, ()))
