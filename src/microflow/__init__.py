"""micro-flow.

A small sequencer for async Python:
- steps wrapping plain functions, other steps, or workflows
- branching, switching, loops, break/continue and delays
- path-addressable shared state and per-entity lifecycle events
"""

__version__ = "0.1.0"

from microflow.config import MicroflowSettings, get_settings
from microflow.core.base import Status
from microflow.core.executable import ExecutionContext
from microflow.core.outcome import Break, Continue, Halt, Value
from microflow.core.state import State, StateRef
from microflow.steps import (
    Case,
    Comparator,
    Condition,
    ConditionalStep,
    DelayStep,
    DelayType,
    FlowControlStep,
    FlowControlType,
    LogicStep,
    LoopResult,
    LoopStep,
    LoopType,
    Step,
    SwitchStep,
)
from microflow.workflow import Workflow

__all__ = [
    "__version__",
    "Break",
    "Case",
    "Comparator",
    "Condition",
    "ConditionalStep",
    "Continue",
    "DelayStep",
    "DelayType",
    "ExecutionContext",
    "FlowControlStep",
    "FlowControlType",
    "Halt",
    "LogicStep",
    "LoopResult",
    "LoopStep",
    "LoopType",
    "MicroflowSettings",
    "State",
    "StateRef",
    "Status",
    "Step",
    "SwitchStep",
    "Value",
    "Workflow",
    "get_settings",
]
