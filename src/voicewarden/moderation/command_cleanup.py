from __future__ import annotations

from typing import Any, Awaitable, Callable

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import ModuleRegistry, VoiceModule
from voicewarden.datatypes.event_datatypes import ActionPayload, CoreEvent
from voicewarden.scheduler.task_scheduler import TaskScheduler
from voicewarden.util.logger import get_logger

logger = get_logger("command_cleanup")

MessageDeleter = Callable[[str, str], Awaitable[Any]]


class CommandCleanupModule(VoiceModule):
    """Deletes sent command messages a short while after the bot has seen them."""

    name = "command_cleanup"

    def __init__(
        self,
        config: AppConfig,
        registry: ModuleRegistry,
        scheduler: TaskScheduler,
        delete_message: MessageDeleter | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._scheduler = scheduler
        self._delete_message = delete_message

    def init(self, config: AppConfig) -> None:
        self._config = config
        self._registry.subscribe(CoreEvent.ACTION_EXECUTED, self.on_action_executed)

    def stop(self) -> None:
        self._scheduler.cancel_prefix("cleanup:")

    def set_deleter(self, delete_message: MessageDeleter | None) -> None:
        self._delete_message = delete_message

    def on_action_executed(self, payload: ActionPayload) -> None:
        if not self._config.command_cleanup or self._delete_message is None:
            return
        item = payload.item
        if not item.message_id:
            return

        room_id, message_id = item.room_id, item.message_id

        async def _delete() -> None:
            try:
                await self._delete_message(room_id, message_id)
                logger.debug("[COMMAND CLEANUP] Deleted command message %s", message_id)
            except Exception as exc:
                logger.warning("[COMMAND CLEANUP] Could not delete message %s in %s: %s", message_id, room_id, exc)

        self._scheduler.schedule_once(f"cleanup:{message_id}", self._config.command_cleanup_delay_seconds, _delete)
