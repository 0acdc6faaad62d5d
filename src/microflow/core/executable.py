"""The uniform "Executable" contract.

A step can wrap a plain function (sync or async), another Step, or a
Workflow. The wrapped value is classified once, when the :class:`Executable`
is built, and every run dispatches on that tag.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from microflow.core.base import BaseEntity, EntityKind
from microflow.core.outcome import Outcome, Value, as_outcome, is_signal
from microflow.core.state import State
from microflow.errors import InvalidExecutableError


class ExecutableKind(str, Enum):
    FUNCTION = "function"
    STEP = "step"
    WORKFLOW = "workflow"


@dataclass(slots=True)
class ExecutionContext:
    """Everything a running executable may touch.

    The ``state`` is shared by reference down the whole chain; the other
    fields describe the immediate caller and are replaced per level.
    ``loop_body`` is set while a loop runs its body, so a workflow running
    as that body hands ``break``/``continue`` up to the loop.
    """

    state: State = field(default_factory=State)
    exit_on_failure: bool = False
    workflow: Any = None
    current_item: Any = None
    depth: int = 0
    loop_body: bool = False

    def child(self, **changes: Any) -> ExecutionContext:
        return replace(self, **changes)


def _accepts_context(fn: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return True
    for parameter in signature.parameters.values():
        if parameter.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        ):
            return True
    return False


async def noop(context: ExecutionContext) -> None:
    return None


@dataclass(frozen=True, slots=True)
class Executable:
    kind: ExecutableKind
    target: Any
    takes_context: bool = True

    @classmethod
    def of(cls, value: Any) -> Executable:
        """Classify ``value``.

        Raises:
            InvalidExecutableError: If ``value`` is not a callable, Step or Workflow.
        """

        if isinstance(value, Executable):
            return value
        if isinstance(value, BaseEntity):
            if value.kind is EntityKind.WORKFLOW:
                return cls(ExecutableKind.WORKFLOW, value)
            return cls(ExecutableKind.STEP, value)
        if callable(value):
            return cls(ExecutableKind.FUNCTION, value, takes_context=_accepts_context(value))
        raise InvalidExecutableError(
            f"Invalid executable {value!r}. Must be one of function, Step, or Workflow."
        )

    @property
    def name(self) -> str:
        if self.kind is ExecutableKind.FUNCTION:
            return getattr(self.target, "__qualname__", repr(self.target))
        return self.target.name

    async def run(self, context: ExecutionContext) -> Outcome:
        if self.kind is ExecutableKind.FUNCTION:
            result = self.target(context) if self.takes_context else self.target()
            if inspect.isawaitable(result):
                result = await result
            return as_outcome(result)

        if self.kind is ExecutableKind.STEP:
            step = await self.target.execute(context)
            return step.outcome if step.outcome is not None else Value(step.result)

        await self.target.execute(context=context)
        outcome = self.target.outcome
        if is_signal(outcome) and not context.loop_body:
            # The workflow already acted on the signal; it goes no further.
            return Value(list(self.target.results))
        return outcome
