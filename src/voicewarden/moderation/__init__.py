"""
Moderation feature modules for VoiceWarden.

Each module is a :class:`VoiceModule` registered with the module registry:

- **whitelist.py / ban_policy.py / role_enforcement.py**: Join policies, run
  in that order for every join into a room the local user owns.
- **blacklist.py / permit.py**: Global blacklist and per-owner permit list.
- **ownership.py**: Membership-change handling and manual room actions.
- **reconciliation.py**: Applies parsed voice-bot replies to the state store.
- **vote_ban.py / name_rotation.py / auto_claim.py / command_cleanup.py**:
  Optional automations.
"""
