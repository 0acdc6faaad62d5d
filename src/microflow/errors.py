"""Exception hierarchy for micro-flow.

Construction errors fail fast, before anything runs. Execution errors raised
by user code are never wrapped: they are captured on the failing step and
re-raised unchanged when the owning workflow exits on failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class MicroflowError(Exception):
    """Base class for all micro-flow errors."""


class InvalidExecutableError(MicroflowError, TypeError):
    """Raised when a step is given something that is not a function, Step, or Workflow."""


class InvalidStepError(MicroflowError, TypeError):
    """Raised when a non-Step object is added to a workflow queue."""


class InvalidConditionError(MicroflowError, ValueError):
    """Raised when a condition is incomplete or malformed."""


class InvalidComparatorError(InvalidConditionError):
    """Raised when a condition names an operator outside the supported set."""


class InvalidFlowControlError(MicroflowError, ValueError):
    """Raised when a flow-control step is given an unknown flow-control type."""


class InvalidDelayError(MicroflowError, ValueError):
    """Raised when a delay step is misconfigured."""


class LoopConfigurationError(MicroflowError, ValueError):
    """Raised at execution time when a loop lacks what its strategy needs."""


class SwitchConfigurationError(MicroflowError, ValueError):
    """Raised at execution time when a switch case has no subject to compare."""


class EmptyWorkflowError(MicroflowError):
    """Raised when an empty workflow is executed with ``throw_on_empty``."""


class StateFrozenError(MicroflowError):
    """Raised on any mutation of a frozen :class:`~microflow.core.state.State`."""


class InvalidStatePathError(MicroflowError, ValueError):
    """Raised when a state path is empty or cannot be parsed."""


@dataclass
class IllegalTransitionError(MicroflowError, ValueError):
    """Raised when an entity is asked to move between two incompatible statuses."""

    entity: str
    current: Any
    requested: Any

    def __str__(self) -> str:
        return f"Illegal transition for {self.entity}: {self.current} -> {self.requested}"


@dataclass
class UnknownEventError(MicroflowError, KeyError):
    """Raised when an event name is not registered on a bus."""

    event_name: str
    registry: str

    def __str__(self) -> str:
        return f"Unknown event {self.event_name!r} for {self.registry}"
