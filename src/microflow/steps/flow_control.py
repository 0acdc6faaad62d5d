"""Break and continue signals for loops."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from microflow.core.events import Broadcaster, StepEventName
from microflow.core.executable import ExecutionContext
from microflow.core.outcome import Break, Continue, Outcome, Value
from microflow.errors import InvalidFlowControlError
from microflow.steps.logic import UNSET, LogicStep


class FlowControlType(str, Enum):
    BREAK = "break"
    CONTINUE = "continue"

    @classmethod
    def _missing_(cls, value: object) -> FlowControlType | None:
        if isinstance(value, str):
            key = value.strip().lower()
            if key == "skip":
                return cls.CONTINUE
            for member in cls:
                if member.value == key:
                    return member
        return None


class FlowControlStep(LogicStep):
    """Signal the innermost enclosing loop or workflow to stop or to skip ahead.

    Without a condition the signal always fires. When the condition is false
    the step completes normally with ``False`` as its result.
    """

    step_type = "flow_control"

    def __init__(
        self,
        flow_control_type: FlowControlType | str = FlowControlType.BREAK,
        *,
        condition: Any = None,
        subject: Any = UNSET,
        operator: Any = None,
        value: Any = UNSET,
        name: str | None = None,
        log_suppress: bool | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        super().__init__(
            condition=condition,
            subject=subject,
            operator=operator,
            value=value,
            name=name,
            log_suppress=log_suppress,
            broadcaster=broadcaster,
        )
        try:
            self.flow_control_type = FlowControlType(flow_control_type)
        except ValueError:
            raise InvalidFlowControlError(
                f"Invalid flow control type {flow_control_type!r}. Must be 'break' or 'continue'."
            ) from None
        self.executable = self._flow_control

    async def _flow_control(self, context: ExecutionContext) -> Outcome:
        if self.condition is not None and not await self.check_condition(context):
            self.log(None, f"{self.label} not triggered.", level=logging.DEBUG)
            return Value(False)

        self.log(
            StepEventName.FLOW_CONTROL_TRIGGERED,
            f"{self.label} triggered {self.flow_control_type.value}.",
            flow_control_type=self.flow_control_type.value,
        )
        if self.flow_control_type is FlowControlType.BREAK:
            return Break(reason=self.name)
        return Continue(reason=self.name)
