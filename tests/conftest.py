"""
Pytest configuration and fixtures for VoiceWarden tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.database.kv_store import MemoryKeyValueStore
from voicewarden.runtime import VoiceWardenRuntime
from voicewarden.services.member_directory import StaticMemberDirectory

LOCAL_USER = "100000000000000001"
BOT_USER = "200000000000000002"
GUILD = "300000000000000003"
CATEGORY = "400000000000000004"
CREATION_CHANNEL = "500000000000000005"
ROOM = "600000000000000006"

BASE_SETTINGS = {
    "local_user_id": LOCAL_USER,
    "bot_user_id": BOT_USER,
    "guild_id": GUILD,
    "category_id": CATEGORY,
    "creation_channel_id": CREATION_CHANNEL,
    # Tests inspect pending commands instead of sending them
    "queue_enabled": False,
    "queue_interval_seconds": 0,
    "state_save_debounce_seconds": 0.01,
    "command_cleanup": False,
}


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def pending_commands(queue) -> list[str]:
    return [item.command for item in queue.pending_items()]


@pytest.fixture
def config() -> AppConfig:
    return AppConfig.from_mapping(BASE_SETTINGS)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def directory() -> StaticMemberDirectory:
    return StaticMemberDirectory()


@pytest.fixture
def storage() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def runtime(config, storage, directory, clock) -> VoiceWardenRuntime:
    """A runtime wired to in-memory storage. Tests await ``start()`` themselves."""
    return VoiceWardenRuntime(config, storage=storage, directory=directory, clock=clock)
