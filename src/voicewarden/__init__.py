"""
VoiceWarden - Voice Room Moderation Automation

VoiceWarden drives a server's voice-room bot on behalf of one user. It
watches who joins the rooms that user owns, decides whether to let them
stay, kick them or ban them, and sends the matching text commands through a
rate-limited queue. Replies from the voice bot are parsed back into room
ownership records and per-owner moderation lists.

Core Components:

- **Module Registry**: Event bus, module lifecycle and the ordered join-policy
  pipeline (whitelist, ban policy, role enforcement)
- **Command Dispatch Queue**: Serialised, priority-aware outbound commands with
  per-send preconditions and a minimum spacing between sends
- **State Store**: Room ownership and member moderation configs with debounced
  persistence to SQLite
- **Moderation Modules**: Ban rotation, permits, vote-ban, remote operator
  commands, name rotation, auto-claim and command cleanup

Usage:
    from voicewarden.main import main
    main()  # Connects to Discord and starts the runtime
"""
