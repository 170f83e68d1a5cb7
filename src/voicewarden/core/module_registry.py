"""
Module registry and event bus.

The registry owns the module lifecycle (``init`` / ``stop`` in registration
order), a synchronous publish/subscribe hub keyed by :class:`CoreEvent`, and
the ordered join-policy pipeline that decides what happens when a user joins
a room owned by the local user.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from voicewarden.configuration.app_configuration import AppConfig
from voicewarden.datatypes.event_datatypes import (
    CoreEvent,
    JoinDecision,
    JoinEvaluation,
    JoinVerdict,
)
from voicewarden.util.logger import get_logger

logger = get_logger("module_registry")

EventHandler = Callable[[Any], None]
JoinPolicy = Callable[[JoinEvaluation], JoinDecision]

# Pipeline slots used by the built-in policies
WHITELIST_ORDER = 0
BAN_POLICY_ORDER = 100
ROLE_ENFORCEMENT_ORDER = 200


class VoiceModule:
    """Base class for feature modules hosted by the registry.

    Subclasses set ``name`` and override :meth:`init` / :meth:`stop` as needed.
    """

    name: str = "module"

    def init(self, config: AppConfig) -> None:
        pass

    def stop(self) -> None:
        pass


@dataclass(slots=True)
class _RegisteredPolicy:
    order: int
    sequence: int
    name: str
    policy: JoinPolicy


class ModuleRegistry:
    def __init__(self) -> None:
        self._modules: List[VoiceModule] = []
        self._handlers: Dict[CoreEvent, List[EventHandler]] = defaultdict(list)
        self._policies: List[_RegisteredPolicy] = []
        self._initialized: set[str] = set()
        self.config: Optional[AppConfig] = None

    # ------------------------------------------------------------------
    # Module lifecycle
    # ------------------------------------------------------------------

    @property
    def modules(self) -> List[VoiceModule]:
        return list(self._modules)

    def register(self, module: VoiceModule) -> None:
        """Append a module; a second module with the same name is ignored."""
        if any(existing.name == module.name for existing in self._modules):
            logger.debug("[MODULE REGISTRY] Module %s already registered, ignoring", module.name)
            return
        self._modules.append(module)

    def init(self, config: AppConfig) -> None:
        """Initialise every registered module once, in registration order."""
        self.config = config
        for module in self._modules:
            if module.name in self._initialized:
                continue
            try:
                module.init(config)
            except Exception:
                logger.exception("[MODULE REGISTRY] Failed to initialise module %s", module.name)
                continue
            self._initialized.add(module.name)
            logger.debug("[MODULE REGISTRY] Initialised module %s", module.name)
            self.publish(CoreEvent.MODULE_INIT, module.name)

    def stop(self) -> None:
        """Stop every module and drop all subscriptions and policies."""
        for module in self._modules:
            try:
                module.stop()
            except Exception:
                logger.exception("[MODULE REGISTRY] Error stopping module %s", module.name)
        self._handlers.clear()
        self._policies.clear()
        self._initialized.clear()
        logger.info("[MODULE REGISTRY] All modules stopped")

    # ------------------------------------------------------------------
    # Event bus
    # ------------------------------------------------------------------

    def subscribe(self, event: CoreEvent, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def unsubscribe(self, event: CoreEvent, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def publish(self, event: CoreEvent, payload: Any = None) -> None:
        """Deliver ``payload`` to every handler of ``event`` in subscription order.

        A failing handler is logged and does not stop the remaining handlers;
        the publisher never sees the exception.
        """
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception("[MODULE REGISTRY] Handler %r failed for %s", handler, event)

    # ------------------------------------------------------------------
    # Join-policy pipeline
    # ------------------------------------------------------------------

    def register_join_policy(self, name: str, policy: JoinPolicy, order: int) -> None:
        """Add a policy to the join pipeline.

        Policies run by ascending ``order``; equal orders run in registration
        order.
        """
        self._policies.append(_RegisteredPolicy(order, len(self._policies), name, policy))
        self._policies.sort(key=lambda p: (p.order, p.sequence))

    def unregister_join_policy(self, name: str) -> None:
        self._policies = [p for p in self._policies if p.name != name]

    def evaluate_join(self, evaluation: JoinEvaluation) -> JoinEvaluation:
        """Run the join pipeline until a policy allows or denies the user.

        The first decisive policy records its outcome on ``evaluation``; later
        policies do not run. A policy that raises is logged and treated as
        CONTINUE. The finished evaluation is published as
        ``USER_JOINED_OWNED_ROOM``.
        """
        for registered in list(self._policies):
            try:
                decision = registered.policy(evaluation)
            except Exception:
                logger.exception("[MODULE REGISTRY] Join policy %s failed", registered.name)
                continue

            if decision is None or not decision.is_decisive:
                continue

            evaluation.handled = True
            evaluation.allowed = decision.verdict is JoinVerdict.ALLOW
            evaluation.reason = decision.reason
            evaluation.decided_by = registered.name
            logger.debug(
                "[MODULE REGISTRY] Join of %s in %s decided by %s: %s (%s)",
                evaluation.user_id, evaluation.room_id, registered.name,
                decision.verdict.value, decision.reason,
            )
            break

        self.publish(CoreEvent.USER_JOINED_OWNED_ROOM, evaluation)
        return evaluation
