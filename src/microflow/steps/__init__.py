"""Step types."""

from microflow.steps.conditional import ConditionalStep
from microflow.steps.delay import DelayStep, DelayType
from microflow.steps.flow_control import FlowControlStep, FlowControlType
from microflow.steps.logic import Comparator, Condition, LogicStep
from microflow.steps.loop import LoopResult, LoopStep, LoopType
from microflow.steps.step import Step
from microflow.steps.switch import Case, SwitchStep

__all__ = [
    "Case",
    "Comparator",
    "Condition",
    "ConditionalStep",
    "DelayStep",
    "DelayType",
    "FlowControlStep",
    "FlowControlType",
    "LogicStep",
    "LoopResult",
    "LoopStep",
    "LoopType",
    "Step",
    "SwitchStep",
]
