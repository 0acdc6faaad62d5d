"""Explicit control-flow results passed up the call stack.

Every executable run produces one :data:`Outcome`. ``Break`` and ``Continue``
travel outward through steps and branches to the nearest enclosing loop or
workflow. A workflow running as a loop body hands them on to the loop; any
other workflow acts on them itself, stopping on ``Break`` and skipping the
next step on ``Continue``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Value:
    result: Any = None


@dataclass(frozen=True, slots=True)
class Break:
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class Continue:
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class Halt:
    """A failure that was captured and not propagated."""

    error: BaseException


Outcome = Value | Break | Continue | Halt
FlowSignal = Break | Continue


def as_outcome(result: Any) -> Outcome:
    """Wrap a plain return value; outcomes pass through untouched."""

    if isinstance(result, (Value, Break, Continue, Halt)):
        return result
    return Value(result)


def is_signal(outcome: Outcome | None) -> bool:
    return isinstance(outcome, (Break, Continue))
