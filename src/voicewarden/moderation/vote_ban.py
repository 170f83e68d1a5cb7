"""
Vote-ban: room occupants vote to ban a user.

Once the number of distinct voters reaches the required share of the room's
current occupants, the target is banned outright (no kick phase). Votes that
do not reach the threshold expire after ``vote_ban_window_seconds`` and are
removed by a periodic sweep.
"""

from __future__ import annotations

import math
import time
from typing import Callable, Dict, Optional, Tuple

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import VoiceModule
from voicewarden.datatypes.queue_datatypes import ActiveVote
from voicewarden.moderation.ban_policy import BanPolicyModule
from voicewarden.scheduler.task_scheduler import TaskScheduler
from voicewarden.state.state_store import StateStore
from voicewarden.state.voice_presence import VoicePresence
from voicewarden.util.format_utils import extract_id
from voicewarden.util.logger import get_logger

logger = get_logger("vote_ban")

SWEEP_TASK_KEY = "vote_ban_sweep"


def required_votes(occupants: int, percentage: float) -> int:
    """Votes needed to pass: ``ceil(occupants * percentage / 100)``, at least 1."""
    return max(1, math.ceil(occupants * percentage / 100))


class VoteBanModule(VoiceModule):
    name = "vote_ban"

    def __init__(
        self,
        config: AppConfig,
        state: StateStore,
        presence: VoicePresence,
        ban_policy: BanPolicyModule,
        scheduler: TaskScheduler | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._state = state
        self._presence = presence
        self._ban_policy = ban_policy
        self._scheduler = scheduler
        self._clock = clock
        self.active_votes: Dict[Tuple[str, str], ActiveVote] = {}

    def init(self, config: AppConfig) -> None:
        self._config = config
        if self._scheduler is not None:
            interval = config.vote_ban_sweep_seconds
            if interval > 0:
                self._scheduler.schedule_repeating(SWEEP_TASK_KEY, interval, self.sweep)
            else:
                logger.warning("[VOTE BAN] vote_ban_sweep_seconds must be positive; expired votes will not be swept")
        logger.info("[VOTE BAN] Module initialised")

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.cancel(SWEEP_TASK_KEY)
        self.active_votes.clear()

    def parse_vote_command(self, content: str) -> Optional[str]:
        """Return the target user ID if ``content`` is a vote-ban command.

        The configured command may contain a ``{user}`` placeholder; only the
        text before it is used as the prefix.
        """
        command = self._config.vote_ban_command
        if not command or not content:
            return None
        prefix = command.split("{user}")[0].strip().lower()
        if not prefix:
            return None
        text = content.strip()
        if not text.lower().startswith(prefix):
            return None
        return extract_id(text[len(prefix):].strip())

    def register_vote(self, target_user_id: str, voter_id: str, room_id: str) -> bool:
        """Count a vote. Returns True if it pushed the vote over the threshold."""
        if self._state.get_ownership(room_id) is None:
            logger.debug("[VOTE BAN] Ignoring vote in unmanaged room %s", room_id)
            return False

        now = self._clock()
        key = (room_id, target_user_id)
        vote = self.active_votes.get(key)
        if vote is None or vote.is_expired(now):
            vote = ActiveVote(
                room_id=room_id,
                target_user_id=target_user_id,
                expires_at=now + self._config.vote_ban_window_seconds,
            )
            self.active_votes[key] = vote
        vote.voters.add(voter_id)

        needed = required_votes(self._presence.occupant_count(room_id), self._config.vote_ban_percentage)
        logger.info(
            "[VOTE BAN] %s voted against %s in %s (%d/%d)",
            voter_id, target_user_id, room_id, len(vote.voters), needed,
        )

        if len(vote.voters) < needed:
            return False

        logger.info("[VOTE BAN] Threshold reached for %s in %s; banning", target_user_id, room_id)
        del self.active_votes[key]
        self._ban_policy.enforce_ban_policy(
            target_user_id, room_id, kick_first=False, reason="Vote Ban", require_presence=False,
        )
        return True

    def sweep(self) -> int:
        """Drop expired votes and return how many were removed."""
        now = self._clock()
        expired = [key for key, vote in self.active_votes.items() if vote.is_expired(now)]
        for key in expired:
            del self.active_votes[key]
        if expired:
            logger.debug("[VOTE BAN] Expired %d vote(s)", len(expired))
        return len(expired)
