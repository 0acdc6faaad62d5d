"""Lifecycle events and the per-entity event bus.

Every Step, Workflow and State owns its own :class:`EventBus`. A bus only
accepts the closed set of names of its entity type, so a typo in a listener
registration fails loudly instead of silently never firing.

Local delivery is synchronous and ordered. Cross-process delivery is a
pluggable :class:`Broadcaster`; it is best-effort and can never break local
delivery.
"""

from __future__ import annotations

import logging
import queue
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from microflow.errors import UnknownEventError

logger = logging.getLogger(__name__)


class StepEventName(str, Enum):
    STEP_WAITING = "step_waiting"
    STEP_PENDING = "step_pending"
    STEP_RUNNING = "step_running"
    STEP_COMPLETE = "step_complete"
    STEP_FAILED = "step_failed"
    CONDITIONAL_TRUE_BRANCH = "conditional_true_branch"
    CONDITIONAL_FALSE_BRANCH = "conditional_false_branch"
    SWITCH_CASE_MATCHED = "switch_case_matched"
    SWITCH_DEFAULT = "switch_default"
    LOOP_ITERATION_COMPLETE = "loop_iteration_complete"
    FLOW_CONTROL_TRIGGERED = "flow_control_triggered"
    DELAY_SCHEDULED = "delay_scheduled"
    DELAY_COMPLETE = "delay_complete"


class WorkflowEventName(str, Enum):
    WORKFLOW_CREATED = "workflow_created"
    WORKFLOW_STARTED = "workflow_started"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_ERRORED = "workflow_errored"
    WORKFLOW_PAUSED = "workflow_paused"
    WORKFLOW_RESUMED = "workflow_resumed"
    WORKFLOW_STEP_ADDED = "workflow_step_added"
    WORKFLOW_STEPS_ADDED = "workflow_steps_added"
    WORKFLOW_STEP_REMOVED = "workflow_step_removed"
    WORKFLOW_STEP_SHIFTED = "workflow_step_shifted"
    WORKFLOW_STEP_MOVED = "workflow_step_moved"
    WORKFLOW_STEP_SKIPPED = "workflow_step_skipped"
    WORKFLOW_STEPS_CLEARED = "workflow_steps_cleared"


class StateEventName(str, Enum):
    GET = "get"
    SET = "set"
    MERGE = "merge"
    DELETE = "delete"
    EACH = "each"
    FREEZE = "freeze"
    RESET = "reset"


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(v) for v in value]
    return repr(value)


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """A notification emitted at a defined point of an entity's lifecycle.

    ``source`` is the emitting entity itself, so listeners can inspect it.
    """

    name: str
    source: Any = None
    payload: dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "name": self.name,
            "emitted_at": self.emitted_at.isoformat(),
            "payload": _json_safe(self.payload),
        }
        if self.source is not None:
            out["source"] = {
                "id": getattr(self.source, "id", None),
                "name": getattr(self.source, "name", None),
                "kind": _json_safe(getattr(self.source, "kind", None)),
            }
        return out


Listener = Callable[[LifecycleEvent], Any]


class Broadcaster(Protocol):
    """A cross-process transport for lifecycle events."""

    def send(self, channel: str, message: dict[str, object]) -> None: ...


class QueueBroadcaster:
    """Forward events onto a queue shared with other processes.

    Works with ``multiprocessing.Queue`` (or any queue exposing ``put_nowait``).
    A full queue drops the message rather than blocking the workflow.
    """

    def __init__(self, target: Any) -> None:
        self._queue = target

    def send(self, channel: str, message: dict[str, object]) -> None:
        try:
            self._queue.put_nowait({"channel": channel, "message": message})
        except queue.Full:
            logger.warning("Broadcast queue full; dropping event", extra={"channel": channel})


@dataclass(eq=False)
class _Registration:
    listener: Listener
    once: bool


class EventBus:
    """Publish/subscribe channel with a closed set of event names."""

    def __init__(
        self,
        event_names: type[Enum],
        *,
        owner: str,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        self.event_names = event_names
        self.owner = owner
        self.broadcaster = broadcaster
        self._channels: dict[str, list[_Registration]] = {
            member.value: [] for member in event_names
        }

    def _channel(self, event_name: str | Enum) -> str:
        name = event_name.value if isinstance(event_name, Enum) else event_name
        if name not in self._channels:
            raise UnknownEventError(event_name=str(name), registry=self.owner)
        return name

    def on(self, event_name: str | Enum, listener: Listener) -> EventBus:
        self._channels[self._channel(event_name)].append(_Registration(listener, once=False))
        return self

    def once(self, event_name: str | Enum, listener: Listener) -> EventBus:
        self._channels[self._channel(event_name)].append(_Registration(listener, once=True))
        return self

    def off(self, event_name: str | Enum, listener: Listener) -> EventBus:
        """Remove the earliest registration of ``listener`` on the channel, if any."""

        registrations = self._channels[self._channel(event_name)]
        for index, registration in enumerate(registrations):
            if registration.listener == listener:
                del registrations[index]
                break
        return self

    def listener_count(self, event_name: str | Enum) -> int:
        return len(self._channels[self._channel(event_name)])

    def emit(
        self,
        event_name: str | Enum,
        payload: dict[str, Any] | None = None,
        *,
        source: Any = None,
    ) -> LifecycleEvent:
        """Deliver an event to every local listener, in registration order.

        Listener exceptions propagate to the emitter. Broadcast failures do not.
        """

        channel = self._channel(event_name)
        event = LifecycleEvent(name=channel, source=source, payload=dict(payload or {}))

        registrations = self._channels[channel]
        for registration in list(registrations):
            if registration.once:
                if registration not in registrations:
                    continue
                registrations.remove(registration)
            registration.listener(event)

        if self.broadcaster is not None:
            try:
                self.broadcaster.send(channel, event.to_json())
            except Exception:
                logger.warning(
                    "Broadcast failed; local delivery unaffected",
                    extra={"channel": channel, "owner": self.owner},
                    exc_info=True,
                )

        return event
