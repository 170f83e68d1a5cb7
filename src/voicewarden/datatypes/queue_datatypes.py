from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Set

_item_ids = itertools.count(1)


def next_item_id() -> int:
    return next(_item_ids)


@dataclass(slots=True)
class QueueItem:
    """One outbound bot command waiting in the dispatch queue.

    Attributes:
        command: Fully formatted command text.
        room_id: Voice room the command is sent into.
        priority: Priority items are sent before every normal item.
        precondition: Optional predicate re-checked right before sending;
            a False result (or an exception) drops the item unsent.
        message_id: ID of the sent message, attached after a successful send.
    """
    command: str
    room_id: str
    priority: bool = False
    precondition: Optional[Callable[[], bool]] = None
    id: int = field(default_factory=next_item_id)
    enqueued_at: float = field(default_factory=time.time)
    message_id: Optional[str] = None


@dataclass(slots=True)
class ActiveVote:
    """An open vote to ban ``target_user_id`` from ``room_id``."""
    room_id: str
    target_user_id: str
    expires_at: float
    voters: Set[str] = field(default_factory=set)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at
