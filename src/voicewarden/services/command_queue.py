"""
Command Dispatch Queue.

Serialises every outbound bot command through one worker task. Callers
enqueue and return immediately; the worker sends one command at a time,
oldest priority item first, keeping at least ``queue_interval_seconds``
between the end of one send and the start of the next.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.core.module_registry import ModuleRegistry, VoiceModule
from voicewarden.datatypes.event_datatypes import ActionPayload, CoreEvent
from voicewarden.datatypes.queue_datatypes import QueueItem
from voicewarden.util.logger import get_logger

logger = get_logger("command_queue")

CommandSender = Callable[[str, str], Awaitable[Any]]
Notifier = Callable[[str, str], None]

# Commands that jump the normal queue regardless of the caller's flag
AUTO_PRIORITY_MARKERS = (" claim", " info")


def extract_message_id(result: Any) -> Optional[str]:
    """Find a message ID in whatever the sender returned.

    Looks at ``result.id``, ``result.message.id``, then ``result["id"]`` and
    ``result["message"]["id"]`` for mapping results.
    """
    if result is None:
        return None

    if isinstance(result, dict):
        candidate = result.get("id")
        if candidate is None and isinstance(result.get("message"), dict):
            candidate = result["message"].get("id")
        if candidate is None and isinstance(result.get("body"), dict):
            candidate = result["body"].get("id")
        return str(candidate) if candidate is not None else None

    candidate = getattr(result, "id", None)
    if candidate is None:
        message = getattr(result, "message", None)
        candidate = getattr(message, "id", None) if message is not None else None
    return str(candidate) if candidate is not None else None


class CommandDispatchQueue(VoiceModule):
    """
    Priority-aware, rate-limited outbound command queue.

    Design notes
    ------------
    * Two FIFO deques: priority and normal. Priority always drains first.
    * One persistent worker task, started lazily when the first item arrives
      and restarted transparently if it died.
    * Each item's precondition is evaluated right before its send. A False
      result, or a precondition that raises, drops the item without sending
      and without consuming a spacing interval.
    * Sends are bounded by ``send_timeout_seconds``; timeouts and failures are
      logged and the item is dropped. There are no retries.
    * When ``queue_enabled`` is False the worker stops without discarding
      anything; :meth:`resume` picks up where it left off.
    """

    name = "command_queue"

    def __init__(
        self,
        config: AppConfig,
        registry: ModuleRegistry | None = None,
        sender: CommandSender | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._sender = sender
        self._priority: Deque[QueueItem] = deque()
        self._normal: Deque[QueueItem] = deque()
        self._wakeup = asyncio.Event()
        self._worker: asyncio.Task | None = None
        self._last_send_done: float | None = None

    # ------------------------------------------------------
    # Module lifecycle
    # ------------------------------------------------------

    def init(self, config: AppConfig) -> None:
        self._config = config
        if self._registry is not None:
            self._registry.subscribe(CoreEvent.SETTINGS_UPDATED, self._on_settings_updated)

    def stop(self) -> None:
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()

    def set_sender(self, sender: CommandSender | None) -> None:
        self._sender = sender

    # ------------------------------------------------------
    # Public API
    # ------------------------------------------------------

    def enqueue(
        self,
        command: str,
        room_id: str,
        priority: bool = False,
        precondition: Callable[[], bool] | None = None,
    ) -> QueueItem:
        """Append a command and return the queued item. Never blocks."""
        if any(marker in command for marker in AUTO_PRIORITY_MARKERS):
            priority = True

        item = QueueItem(command=command, room_id=room_id, priority=priority, precondition=precondition)
        (self._priority if priority else self._normal).append(item)
        logger.debug("[COMMAND QUEUE] Enqueued %r for %s (priority=%s)", command, room_id, priority)
        self._after_add(item)
        return item

    def unshift(
        self,
        command: str,
        room_id: str,
        precondition: Callable[[], bool] | None = None,
    ) -> QueueItem:
        """Put a command at the very front of the priority sequence."""
        item = QueueItem(command=command, room_id=room_id, priority=True, precondition=precondition)
        self._priority.appendleft(item)
        logger.debug("[COMMAND QUEUE] Unshifted %r for %s", command, room_id)
        self._after_add(item)
        return item

    def clear(self) -> None:
        dropped = len(self._priority) + len(self._normal)
        self._priority.clear()
        self._normal.clear()
        if dropped:
            logger.info("[COMMAND QUEUE] Cleared %d pending command(s)", dropped)

    @property
    def pending_count(self) -> int:
        return len(self._priority) + len(self._normal)

    def pending_items(self) -> list[QueueItem]:
        """Snapshot of pending items in the order they would be sent."""
        return list(self._priority) + list(self._normal)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def resume(self) -> None:
        """Restart the worker after the queue was re-enabled."""
        if self._config.queue_enabled and self.pending_count:
            self._ensure_worker()
            self._wakeup.set()

    async def shutdown(self) -> None:
        """Cancel the worker. Pending items are left in place."""
        worker = self._worker
        self._worker = None
        if worker is not None and not worker.done():
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)
        logger.info("[COMMAND QUEUE] Worker shut down (%d command(s) pending)", self.pending_count)

    # -------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------

    def _after_add(self, item: QueueItem) -> None:
        if self._registry is not None:
            self._registry.publish(CoreEvent.ACTION_QUEUED, ActionPayload(item=item))
        if not self._config.queue_enabled:
            return
        self._ensure_worker()
        self._wakeup.set()

    def _on_settings_updated(self, _payload: Any) -> None:
        self.resume()

    def _ensure_worker(self) -> None:
        if self.is_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[COMMAND QUEUE] No running loop; worker starts on next enqueue or resume")
            return
        self._worker = loop.create_task(self._run(), name="voicewarden-command-queue")

    def _next_item(self) -> QueueItem | None:
        if self._priority:
            return self._priority.popleft()
        if self._normal:
            return self._normal.popleft()
        return None

    def _spacing_remaining(self) -> float:
        if self._last_send_done is None:
            return 0.0
        elapsed = asyncio.get_running_loop().time() - self._last_send_done
        return self._config.queue_interval_seconds - elapsed

    @staticmethod
    def _precondition_holds(item: QueueItem) -> bool:
        if item.precondition is None:
            return True
        try:
            return bool(item.precondition())
        except Exception:
            logger.exception("[COMMAND QUEUE] Precondition for %r raised; dropping", item.command)
            return False

    async def _run(self) -> None:
        logger.debug("[COMMAND QUEUE] Worker running")
        while True:
            if not self._config.queue_enabled:
                logger.info("[COMMAND QUEUE] Queue disabled; worker halted with %d pending", self.pending_count)
                return

            if not self.pending_count:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            remaining = self._spacing_remaining()
            if remaining > 0:
                await asyncio.sleep(remaining)
                # Re-check: items may have arrived or the queue may be disabled
                continue

            item = self._next_item()
            if item is None:
                continue

            if not self._precondition_holds(item):
                logger.debug("[COMMAND QUEUE] Precondition failed for %r; skipped", item.command)
                continue

            await self._send(item)
            self._last_send_done = asyncio.get_running_loop().time()

    async def _send(self, item: QueueItem) -> None:
        if self._sender is None:
            logger.error("[COMMAND QUEUE] No command sender configured; dropping %r", item.command)
            return

        logger.info("[COMMAND QUEUE] Sending %r in %s", item.command, item.room_id)
        try:
            result = await asyncio.wait_for(
                self._sender(item.command, item.room_id),
                timeout=self._config.send_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                "[COMMAND QUEUE] Sending %r timed out after %.1fs; dropped",
                item.command, self._config.send_timeout_seconds,
            )
            return
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[COMMAND QUEUE] Sending %r failed; dropped", item.command)
            return

        item.message_id = extract_message_id(result)
        if self._registry is not None:
            self._registry.publish(CoreEvent.ACTION_EXECUTED, ActionPayload(item=item, result=result))
