"""Identity, status and timing shared by steps and workflows."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from microflow.config import get_settings
from microflow.core.events import Broadcaster, EventBus
from microflow.core.scheduling import utc_now
from microflow.errors import IllegalTransitionError

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    STEP = "step"
    WORKFLOW = "workflow"


class Status(str, Enum):
    WAITING = "waiting"
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_STATUSES: frozenset[Status] = frozenset({Status.COMPLETE, Status.FAILED})

# A terminal entity may start a new run, but never flip between outcomes.
ALLOWED_TRANSITIONS: dict[Status, set[Status]] = {
    Status.WAITING: {Status.PENDING, Status.RUNNING},
    Status.PENDING: {Status.RUNNING, Status.WAITING},
    Status.RUNNING: {Status.COMPLETE, Status.FAILED, Status.PAUSED},
    Status.PAUSED: {Status.RUNNING},
    Status.COMPLETE: {Status.WAITING, Status.PENDING, Status.RUNNING},
    Status.FAILED: {Status.WAITING, Status.PENDING, Status.RUNNING},
}


def transition(*, entity: str, current: Status, to: Status) -> Status:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(entity=entity, current=current.value, requested=to.value)
    return to


class Timing(BaseModel):
    """Wall-clock timestamps of the current (or last) run."""

    create_time: datetime = Field(default_factory=utc_now)
    start_time: datetime | None = None
    end_time: datetime | None = None
    complete_time: datetime | None = None
    cancel_time: datetime | None = None
    pause_time: datetime | None = None
    resume_time: datetime | None = None
    execution_time_ms: float | None = None


class BaseEntity:
    """Common base for :class:`~microflow.steps.step.Step` and
    :class:`~microflow.workflow.Workflow`.

    Subclasses declare their ``kind``, their closed ``event_names`` enum and
    which event each status change emits (``status_events``).
    """

    kind: ClassVar[EntityKind]
    event_names: ClassVar[type[Enum]]
    status_events: ClassVar[dict[Status, Enum]] = {}

    def __init__(
        self,
        *,
        name: str | None = None,
        log_suppress: bool | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.name = name or f"{self.kind.value}-{self.id}"
        self.status = Status.WAITING
        self.timing = Timing()
        self.log_suppress = get_settings().log_suppress if log_suppress is None else log_suppress
        self.events = EventBus(self.event_names, owner=self.kind.value, broadcaster=broadcaster)

    @property
    def label(self) -> str:
        return f'{self.kind.value.capitalize()} "{self.name}"'

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def log(
        self,
        event_name: Enum | None,
        message: str,
        *,
        level: int = logging.INFO,
        **payload: Any,
    ) -> None:
        """Emit ``event_name`` on this entity's bus and write a log line."""

        if event_name is not None:
            self.events.emit(event_name, payload, source=self)

        if self.log_suppress:
            return
        logger.log(
            level,
            message,
            extra={
                "entity_id": self.id,
                "entity_name": self.name,
                "entity_kind": self.kind.value,
                "status": self.status.value,
            },
        )

    def _set_status(self, to: Status) -> None:
        self.status = transition(entity=self.label, current=self.status, to=to)

    def _finish(self, to: Status) -> None:
        now = utc_now()
        self._set_status(to)
        self.timing.complete_time = now
        self.timing.end_time = now
        start = self.timing.start_time or now
        self.timing.execution_time_ms = (now - start).total_seconds() * 1000

    def mark_as_running(self) -> None:
        self._set_status(Status.RUNNING)
        self.timing.start_time = utc_now()
        self.timing.end_time = None
        self.timing.complete_time = None
        self.timing.execution_time_ms = None
        self.log(self.status_events.get(Status.RUNNING), f"{self.label} started.")

    def mark_as_complete(self) -> None:
        self._finish(Status.COMPLETE)
        self.log(
            self.status_events.get(Status.COMPLETE),
            f"{self.label} complete.",
            execution_time_ms=self.timing.execution_time_ms,
        )

    def mark_as_failed(self, error: BaseException | None = None) -> None:
        self._finish(Status.FAILED)
        self.log(
            self.status_events.get(Status.FAILED),
            f"{self.label} failed." if error is None else f"{self.label} failed: {error!r}",
            level=logging.ERROR,
            error=error,
            execution_time_ms=self.timing.execution_time_ms,
        )

    def mark_as_waiting(self) -> None:
        self._set_status(Status.WAITING)
        self.log(self.status_events.get(Status.WAITING), f"{self.label} waiting.")

    def mark_as_pending(self) -> None:
        self._set_status(Status.PENDING)
        self.log(self.status_events.get(Status.PENDING), f"{self.label} pending.")

    def mark_as_paused(self) -> None:
        self._set_status(Status.PAUSED)
        self.timing.pause_time = utc_now()
        self.log(self.status_events.get(Status.PAUSED), f"{self.label} paused.")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, status={self.status.value})"
