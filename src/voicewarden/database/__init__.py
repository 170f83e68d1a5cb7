"""
Storage package for VoiceWarden.

Public API:
    - KeyValueStore: Protocol the state store persists through
    - SqliteKeyValueStore: aiosqlite-backed implementation
    - MemoryKeyValueStore: dict-backed implementation for tests
"""
