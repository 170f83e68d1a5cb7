"""
Composition root for VoiceWarden.

:class:`VoiceWardenRuntime` builds every service and feature module with
explicit collaborators, registers the modules in a fixed order and exposes
the inputs the Discord adapter feeds: membership changes, bot replies,
vote commands and remote operator commands.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import ModuleRegistry
from voicewarden.database.kv_store import KeyValueStore, SqliteKeyValueStore
from voicewarden.datatypes.bot_reply_datatypes import BotMessage, BotReply
from voicewarden.datatypes.event_datatypes import (
    CoreEvent,
    JoinEvaluation,
    MembershipChange,
    SettingsUpdatedPayload,
)
from voicewarden.moderation.auto_claim import AutoClaimModule
from voicewarden.moderation.ban_policy import BanPolicyModule
from voicewarden.moderation.blacklist import BlacklistModule
from voicewarden.moderation.command_cleanup import CommandCleanupModule, MessageDeleter
from voicewarden.moderation.name_rotation import NameRotationModule
from voicewarden.moderation.ownership import OwnershipModule
from voicewarden.moderation.permit import PermitModule
from voicewarden.moderation.reconciliation import ReplyReconciler
from voicewarden.moderation.remote_operators import RemoteOperatorsModule
from voicewarden.moderation.role_enforcement import RoleEnforcementModule
from voicewarden.moderation.vote_ban import VoteBanModule
from voicewarden.moderation.whitelist import WhitelistModule
from voicewarden.scheduler.task_scheduler import TaskScheduler
from voicewarden.services.command_queue import CommandDispatchQueue, CommandSender
from voicewarden.services.member_directory import MemberDirectory, StaticMemberDirectory
from voicewarden.state.state_store import StateStore
from voicewarden.state.voice_presence import VoicePresence
from voicewarden.util.logger import get_logger

logger = get_logger("runtime")


class VoiceWardenRuntime:
    """
    Owns the service graph and its lifecycle.

    Parameters
    ----------
    config:
        Live application configuration.
    storage:
        Key-value backend for the state store. Defaults to a SQLite database
        at ``config.database_path``.
    sender:
        Coroutine that posts a command into a room; may be attached later
        with ``runtime.queue.set_sender``.
    directory:
        Member lookups for the role and block checks.
    delete_message:
        Coroutine used by command cleanup.
    clock:
        Epoch-seconds clock used for kick memory and vote expiry.
    """

    def __init__(
        self,
        config: AppConfig,
        storage: KeyValueStore | None = None,
        sender: CommandSender | None = None,
        directory: MemberDirectory | None = None,
        delete_message: MessageDeleter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.storage = storage if storage is not None else SqliteKeyValueStore(config.database_path)
        self.registry = ModuleRegistry()
        self.state = StateStore(self.storage, config.state_save_debounce_seconds)
        self.presence = VoicePresence(config.local_user_id)
        self.scheduler = TaskScheduler()
        self.directory = directory if directory is not None else StaticMemberDirectory()

        self.queue = CommandDispatchQueue(config, self.registry, sender)
        self.blacklist = BlacklistModule(config)
        self.whitelist = WhitelistModule(config, self.registry, self.state)
        self.ban_policy = BanPolicyModule(
            config, self.registry, self.state, self.queue, self.presence,
            self.directory, self.blacklist, notify=self.send_notice, clock=clock,
        )
        self.role_enforcement = RoleEnforcementModule(
            config, self.registry, self.queue, self.directory, self.presence,
        )
        self.permit = PermitModule(config, self.state, self.queue, notify=self.send_notice)
        self.name_rotation = NameRotationModule(config, self.state, self.queue, self.scheduler)
        self.ownership = OwnershipModule(
            config, self.registry, self.state, self.queue, self.presence,
            self.name_rotation, directory=self.directory, notify=self.send_notice,
        )
        self.vote_ban = VoteBanModule(
            config, self.state, self.presence, self.ban_policy, scheduler=self.scheduler, clock=clock,
        )
        self.remote_operators = RemoteOperatorsModule(
            config, self.state, self.presence, self.ownership, self.ban_policy,
            self.permit, self.whitelist, self.blacklist, directory=self.directory,
        )
        self.auto_claim = AutoClaimModule(config, self.registry, self.state, self.queue, self.presence)
        self.cleanup = CommandCleanupModule(config, self.registry, self.scheduler, delete_message)
        self.reconciler = ReplyReconciler(config, self.registry, self.state)

        for module in (
            self.queue,
            self.blacklist,
            self.whitelist,
            self.ban_policy,
            self.role_enforcement,
            self.permit,
            self.name_rotation,
            self.ownership,
            self.vote_ban,
            self.remote_operators,
            self.auto_claim,
            self.cleanup,
            self.reconciler,
        ):
            self.registry.register(module)

        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open storage, load state and initialise every module.

        Must be awaited inside the running event loop.
        """
        if self._started:
            logger.warning("[RUNTIME] start() called twice, ignoring")
            return

        if isinstance(self.storage, SqliteKeyValueStore):
            await self.storage.open()
        await self.state.load()

        self.presence.local_user_id = self.config.local_user_id
        self.registry.init(self.config)
        self.whitelist.sync_owner_mirror()
        self._started = True
        logger.info("[RUNTIME] VoiceWarden runtime started (%d module(s))", len(self.registry.modules))

    async def shutdown(self) -> None:
        """Stop workers and timers, flush state and close storage."""
        try:
            await self.queue.shutdown()
        except Exception:
            logger.exception("[RUNTIME] Error shutting down the command queue")

        self.registry.stop()

        try:
            await self.scheduler.shutdown()
        except Exception:
            logger.exception("[RUNTIME] Error shutting down the scheduler")

        try:
            await self.state.shutdown()
        except Exception:
            logger.exception("[RUNTIME] Error flushing state")

        if isinstance(self.storage, SqliteKeyValueStore):
            await self.storage.close()

        self._started = False
        logger.info("[RUNTIME] Shutdown complete")

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def handle_membership_change(self, change: MembershipChange) -> Optional[JoinEvaluation]:
        return self.ownership.handle_membership_change(change)

    def handle_bot_message(self, message: BotMessage) -> BotReply:
        return self.reconciler.handle_message(message)

    def handle_vote_command(self, content: str, voter_id: str, room_id: str) -> bool:
        """Count a vote-ban command typed in a room's text chat.

        Votes from users outside the room, and votes against oneself, are ignored.
        """
        target = self.vote_ban.parse_vote_command(content)
        if not target or target == voter_id:
            return False
        if not self.presence.is_user_in_room(voter_id, room_id):
            logger.debug("[RUNTIME] Ignoring vote from %s who is not in %s", voter_id, room_id)
            return False
        return self.vote_ban.register_vote(target, voter_id, room_id)

    def handle_remote_command(self, content: str, author_id: str, room_id: str) -> bool:
        """Run a remote operator command typed in a room's text chat."""
        return self.remote_operators.handle_message(content, author_id, room_id)

    def update_settings(self, **changes: Any) -> None:
        """Apply configuration changes and notify modules."""
        self.config.update(changes)
        if "local_user_id" in changes:
            self.presence.local_user_id = self.config.local_user_id
        self.registry.publish(CoreEvent.SETTINGS_UPDATED, SettingsUpdatedPayload(changed=dict(changes)))

    def send_notice(self, room_id: str, text: str) -> None:
        """Post a plain notice into a room through the dispatch queue."""
        if text:
            self.queue.enqueue(text, room_id)
