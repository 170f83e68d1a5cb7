"""
In-memory state for managed rooms with debounced persistence.

The :class:`StateStore` is the only owner of room-ownership records and
per-owner moderation configs. Reads return copies; every change goes through
:meth:`StateStore.set_ownership`, :meth:`StateStore.update_member_config` or
:meth:`StateStore.reset_state`, each of which (re)starts a short debounce
timer. When the timer fires both maps are written to storage in a single
``set_many`` call, so a burst of changes produces one write.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Set

from voicewarden.database.kv_store import KeyValueStore
from voicewarden.datatypes.state_datatypes import (
    MEMBER_CONFIG_FIELDS,
    OWNERSHIP_FIELDS,
    MemberModerationConfig,
    RoomOwnership,
)
from voicewarden.util.logger import get_logger

logger = get_logger("state_store")

OWNERSHIPS_KEY = "voicewarden_ownerships_v1"
MEMBERS_KEY = "voicewarden_members_v1"

DEFAULT_DEBOUNCE_SECONDS = 0.5


def _copy_ownership(record: RoomOwnership) -> RoomOwnership:
    return RoomOwnership.from_dict(record.to_dict())


def _copy_member(config: MemberModerationConfig) -> MemberModerationConfig:
    return MemberModerationConfig.from_dict(config.to_dict())


class StateStore:
    """Ownership and moderation state, persisted through a :class:`KeyValueStore`."""

    def __init__(self, storage: KeyValueStore, debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS) -> None:
        self._storage = storage
        self.debounce_seconds = debounce_seconds
        self._ownerships: Dict[str, RoomOwnership] = {}
        self._members: Dict[str, MemberModerationConfig] = {}
        self._loaded = False
        self._dirty = False
        self._save_handle: asyncio.TimerHandle | None = None
        self._active_saves: Set[asyncio.Task] = set()

    @property
    def loaded(self) -> bool:
        return self._loaded

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Read both maps from storage.

        A storage failure or malformed record is logged and leaves the store
        empty but usable. Saves are enabled once this returns.
        """
        try:
            raw_ownerships = await self._storage.get(OWNERSHIPS_KEY) or {}
            raw_members = await self._storage.get(MEMBERS_KEY) or {}
            self._ownerships = {
                str(room_id): RoomOwnership.from_dict({**data, "room_id": str(room_id)})
                for room_id, data in raw_ownerships.items()
            }
            self._members = {
                str(user_id): MemberModerationConfig.from_dict({**data, "user_id": str(user_id)})
                for user_id, data in raw_members.items()
            }
            logger.info(
                "[STATE STORE] Loaded %d ownership record(s) and %d member config(s)",
                len(self._ownerships), len(self._members),
            )
        except Exception:
            logger.exception("[STATE STORE] Failed to load persisted state, starting empty")
            self._ownerships = {}
            self._members = {}
        finally:
            self._loaded = True

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def get_ownership(self, room_id: str) -> Optional[RoomOwnership]:
        record = self._ownerships.get(room_id)
        return _copy_ownership(record) if record else None

    def set_ownership(self, room_id: str, partial: Mapping[str, Any] | RoomOwnership | None) -> Optional[RoomOwnership]:
        """Merge ``partial`` into the room's record, or remove it when ``partial`` is None.

        Fields not present in ``partial`` keep their current values.

        Returns:
            A copy of the stored record, or None after a removal.
        """
        if partial is None:
            if self._ownerships.pop(room_id, None) is not None:
                logger.debug("[STATE STORE] Removed ownership of %s", room_id)
                self._schedule_save()
            return None

        values = partial.to_dict() if isinstance(partial, RoomOwnership) else dict(partial)
        unknown = set(values) - OWNERSHIP_FIELDS - {"room_id"}
        if unknown:
            raise ValueError(f"Unknown ownership fields: {sorted(unknown)}")

        record = self._ownerships.get(room_id) or RoomOwnership(room_id=room_id)
        for key, value in values.items():
            if key != "room_id":
                setattr(record, key, value)
        self._ownerships[room_id] = record
        self._schedule_save()
        return _copy_ownership(record)

    def get_all_ownerships(self) -> List[RoomOwnership]:
        return [_copy_ownership(r) for r in self._ownerships.values()]

    def get_ownerships_for_user(self, user_id: str) -> List[RoomOwnership]:
        """Records where ``user_id`` is the creator or the claimant."""
        return [
            _copy_ownership(r)
            for r in self._ownerships.values()
            if r.creator_id == user_id or r.claimant_id == user_id
        ]

    def get_effective_owner(self, room_id: str) -> Optional[str]:
        record = self._ownerships.get(room_id)
        if record is None:
            return None
        return record.effective_owner or None

    # ------------------------------------------------------------------
    # Member configs
    # ------------------------------------------------------------------

    def has_member_config(self, user_id: str) -> bool:
        return user_id in self._members

    def get_member_config(self, user_id: str) -> MemberModerationConfig:
        """Return a copy of the user's config, creating an empty one if needed."""
        config = self._members.get(user_id)
        if config is None:
            config = MemberModerationConfig(user_id=user_id)
            self._members[user_id] = config
        return _copy_member(config)

    def update_member_config(self, user_id: str, **fields: Any) -> MemberModerationConfig:
        """Merge ``fields`` into the user's config and schedule a save.

        Raises:
            ValueError: If a field name is not part of :class:`MemberModerationConfig`.
        """
        unknown = set(fields) - MEMBER_CONFIG_FIELDS
        if unknown:
            raise ValueError(f"Unknown member config fields: {sorted(unknown)}")

        config = self._members.get(user_id) or MemberModerationConfig(user_id=user_id)
        for key, value in fields.items():
            setattr(config, key, list(value) if isinstance(value, (list, tuple)) else value)
        self._members[user_id] = config
        self._schedule_save()
        return _copy_member(config)

    def reset_state(self) -> None:
        """Forget every ownership record and member config."""
        self._ownerships.clear()
        self._members.clear()
        logger.info("[STATE STORE] State reset")
        self._schedule_save()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data copy of both maps, as written to storage."""
        return {
            OWNERSHIPS_KEY: {room_id: r.to_dict() for room_id, r in self._ownerships.items()},
            MEMBERS_KEY: {user_id: c.to_dict() for user_id, c in self._members.items()},
        }

    def _schedule_save(self) -> None:
        """Restart the debounce timer for a save of the current state."""
        if not self._loaded:
            logger.debug("[STATE STORE] Change before load completed; not persisting")
            return

        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[STATE STORE] Cannot schedule save: no running event loop")
            return

        if self._save_handle is not None:
            self._save_handle.cancel()
        self._save_handle = loop.call_later(self.debounce_seconds, self._start_save_task)

    def _start_save_task(self) -> None:
        self._save_handle = None
        task = asyncio.get_running_loop().create_task(self._write())
        self._active_saves.add(task)
        task.add_done_callback(self._active_saves.discard)

    async def _write(self) -> bool:
        if not self._dirty:
            return True
        data = self.snapshot()
        self._dirty = False
        try:
            await self._storage.set_many(data)
        except Exception:
            # Left dirty so the next change or flush retries
            self._dirty = True
            logger.exception("[STATE STORE] Failed to persist state")
            return False
        logger.debug("[STATE STORE] State persisted")
        return True

    async def flush(self) -> bool:
        """Write pending changes now instead of waiting for the timer."""
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        if self._active_saves:
            await asyncio.gather(*list(self._active_saves), return_exceptions=True)
        return await self._write()

    async def shutdown(self) -> None:
        """Cancel the debounce timer and persist anything outstanding."""
        if not self._loaded:
            return
        await self.flush()
        logger.info("[STATE STORE] Shutdown complete")
