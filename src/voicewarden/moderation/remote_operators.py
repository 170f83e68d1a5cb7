"""
Remote operator commands typed into a managed room's text chat.

A message is a remote command when it starts with ``external_command_prefix``
or with a mention of the local user. The rest of the message names one of
the commands below. Room actions need the author to own the room or to be on
``remote_operator_list`` while ``remote_operators_enabled`` is on; ``info``
and ``claim`` are open to everyone. Authors other than the local user are
only obeyed while the local user owns the room they are sitting in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import VoiceModule
from voicewarden.moderation.ban_policy import BanPolicyModule
from voicewarden.moderation.blacklist import BlacklistModule
from voicewarden.moderation.ownership import OwnershipModule
from voicewarden.moderation.permit import PermitModule
from voicewarden.moderation.whitelist import WhitelistModule
from voicewarden.services.member_directory import MemberDirectory
from voicewarden.state.state_store import StateStore
from voicewarden.state.voice_presence import VoicePresence
from voicewarden.util.format_utils import extract_id
from voicewarden.util.logger import get_logger

logger = get_logger("remote_operators")


@dataclass(frozen=True)
class RemoteInvocation:
    """One parsed remote command."""

    author_id: str
    author_name: str
    room_id: str
    argument: str

    @property
    def target(self) -> str:
        """First word of the argument, for commands that take a user."""
        return self.argument.split()[0] if self.argument else ""


@dataclass(frozen=True)
class RemoteCommand:
    name: str
    handler: Callable[[RemoteInvocation], bool]
    needs_permission: bool = True
    needs_argument: bool = False


class RemoteOperatorsModule(VoiceModule):
    name = "remote_operators"

    def __init__(
        self,
        config: AppConfig,
        state: StateStore,
        presence: VoicePresence,
        ownership: OwnershipModule,
        ban_policy: BanPolicyModule,
        permit: PermitModule,
        whitelist: WhitelistModule,
        blacklist: BlacklistModule,
        directory: MemberDirectory | None = None,
    ) -> None:
        self._config = config
        self._state = state
        self._presence = presence
        self._ownership = ownership
        self._ban_policy = ban_policy
        self._permit = permit
        self._whitelist = whitelist
        self._blacklist = blacklist
        self._directory = directory
        self.commands: List[RemoteCommand] = sorted(self._build_commands(), key=lambda c: len(c.name), reverse=True)

    def init(self, config: AppConfig) -> None:
        self._config = config
        logger.info(
            "[REMOTE OPERATORS] Module initialised (%s, %d operator(s))",
            "enabled" if config.remote_operators_enabled else "disabled",
            len(config.remote_operator_list),
        )

    def _build_commands(self) -> List[RemoteCommand]:
        return [
            RemoteCommand("info", lambda inv: self._ownership.request_room_info(inv.room_id) is not None, needs_permission=False),
            RemoteCommand("claim", lambda inv: self._ownership.claim_room(inv.room_id) is not None, needs_permission=False),
            RemoteCommand("lock", lambda inv: self._ownership.lock_room(inv.room_id) is not None),
            RemoteCommand("unlock", lambda inv: self._ownership.unlock_room(inv.room_id) is not None),
            RemoteCommand("reset", lambda inv: self._ownership.reset_room(inv.room_id) is not None),
            RemoteCommand("name", self._rename, needs_argument=True),
            RemoteCommand("size", self._resize, needs_argument=True),
            RemoteCommand("kick banned", lambda inv: self._ownership.kick_banned_users(inv.room_id) >= 0),
            RemoteCommand("kick", self._kick, needs_argument=True),
            RemoteCommand("ban", self._ban, needs_argument=True),
            RemoteCommand("unban", lambda inv: self._ban_policy.unban_users([inv.target], inv.room_id) > 0, needs_argument=True),
            RemoteCommand("permit", lambda inv: self._permit.permit_users([inv.target], inv.room_id) > 0, needs_argument=True),
            RemoteCommand("unpermit", lambda inv: self._permit.unpermit_users([inv.target], inv.room_id) > 0, needs_argument=True),
            RemoteCommand("whitelist", lambda inv: self._with_target(inv, self._whitelist.whitelist_user), needs_argument=True),
            RemoteCommand("unwhitelist", lambda inv: self._with_target(inv, self._whitelist.unwhitelist_user), needs_argument=True),
            RemoteCommand("blacklist", lambda inv: self._with_target(inv, self._blacklist.blacklist_user), needs_argument=True),
            RemoteCommand("unblacklist", lambda inv: self._with_target(inv, self._blacklist.unblacklist_user), needs_argument=True),
        ]

    # ------------------------------------------------------------------
    # Parsing and permissions
    # ------------------------------------------------------------------

    def extract_command(self, content: str) -> Optional[str]:
        """Return the text after the prefix or local-user mention, or None."""
        text = (content or "").strip()
        prefix = self._config.external_command_prefix.strip()
        if prefix and text.lower().startswith(prefix.lower()):
            return text[len(prefix):].strip()

        local_user = self._config.local_user_id
        if local_user:
            for mention in (f"<@{local_user}>", f"<@!{local_user}>"):
                if text.startswith(mention):
                    return text[len(mention):].strip()
        return None

    def is_operator(self, user_id: str) -> bool:
        return user_id in self._config.remote_operator_list

    def has_permission(self, author_id: str, room_id: str) -> bool:
        owner = self._state.get_effective_owner(room_id)
        if owner and owner == author_id:
            return True
        return self._config.remote_operators_enabled and self.is_operator(author_id)

    def _local_user_controls_room(self) -> bool:
        local_room = self._presence.local_room_id
        return bool(local_room) and self._ownership.is_local_owner(local_room)

    def match(self, text: str) -> Optional[tuple[RemoteCommand, str]]:
        lowered = text.lower()
        for command in self.commands:
            if lowered == command.name or lowered.startswith(command.name + " "):
                return command, text[len(command.name):].strip()
        return None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle_message(self, content: str, author_id: str, room_id: str) -> bool:
        """Run the remote command in ``content``. Returns True if one was executed."""
        text = self.extract_command(content)
        if text is None:
            return False

        if author_id != self._config.local_user_id and not self._local_user_controls_room():
            logger.info("[REMOTE OPERATORS] Rejected command from %s: local user does not own their room", author_id)
            return False

        matched = self.match(text)
        if matched is None:
            logger.debug("[REMOTE OPERATORS] Unknown command %r from %s", text, author_id)
            return False
        command, argument = matched

        if command.needs_permission and not self.has_permission(author_id, room_id):
            logger.info("[REMOTE OPERATORS] %s is not allowed to run %r in %s", author_id, command.name, room_id)
            return False
        if command.needs_argument and not argument:
            logger.warning("[REMOTE OPERATORS] Missing argument for %r from %s", command.name, author_id)
            return False

        author_name = self._directory.display_name(self._config.guild_id, author_id) if self._directory else author_id
        invocation = RemoteInvocation(author_id=author_id, author_name=author_name, room_id=room_id, argument=argument)
        logger.info("[REMOTE OPERATORS] %s ran %r in %s", author_name, command.name, room_id)
        try:
            return command.handler(invocation)
        except Exception:
            logger.exception("[REMOTE OPERATORS] Command %r from %s failed", command.name, author_id)
            return False

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _rename(self, invocation: RemoteInvocation) -> bool:
        return self._ownership.rename_room(invocation.room_id, invocation.argument) is not None

    def _resize(self, invocation: RemoteInvocation) -> bool:
        try:
            size = int(invocation.target)
            return self._ownership.set_room_size(invocation.room_id, size) is not None
        except ValueError:
            logger.warning("[REMOTE OPERATORS] Invalid room size %r", invocation.argument)
            return False

    def _kick(self, invocation: RemoteInvocation) -> bool:
        reason = f"Remote action by {invocation.author_name}"
        return self._ownership.kick_users(invocation.room_id, [invocation.target], reason=reason) > 0

    def _ban(self, invocation: RemoteInvocation) -> bool:
        target = extract_id(invocation.target)
        if not target:
            return False
        action = self._ban_policy.enforce_ban_policy(
            target, invocation.room_id, kick_first=True, reason=f"Remote action by {invocation.author_name}",
        )
        return action is not None

    @staticmethod
    def _with_target(invocation: RemoteInvocation, action: Callable[[str], bool]) -> bool:
        target = extract_id(invocation.target)
        if not target:
            return False
        return action(target)
