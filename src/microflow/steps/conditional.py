"""If/else branching."""

from __future__ import annotations

from typing import Any

from microflow.core.events import Broadcaster, StepEventName
from microflow.core.executable import Executable, ExecutionContext, noop
from microflow.core.outcome import Outcome
from microflow.errors import InvalidConditionError
from microflow.steps.logic import UNSET, LogicStep


class ConditionalStep(LogicStep):
    """Run ``true_branch`` when the condition holds, ``false_branch`` otherwise.

    The branch's outcome becomes this step's outcome, so a ``break`` or
    ``continue`` raised inside a branch travels on to the enclosing loop.
    """

    step_type = "conditional"

    def __init__(
        self,
        *,
        condition: Any = None,
        subject: Any = UNSET,
        operator: Any = None,
        value: Any = UNSET,
        true_branch: Any = None,
        false_branch: Any = None,
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
        if self.condition is None:
            raise InvalidConditionError(f"{self.label} requires a condition")

        self.true_branch = Executable.of(noop if true_branch is None else true_branch)
        self.false_branch = Executable.of(noop if false_branch is None else false_branch)
        self.branch_taken: bool | None = None
        self.executable = self._conditional

    async def _conditional(self, context: ExecutionContext) -> Outcome:
        taken = await self.check_condition(context)
        self.branch_taken = taken
        branch = self.true_branch if taken else self.false_branch

        if taken:
            self.log(
                StepEventName.CONDITIONAL_TRUE_BRANCH,
                f"Condition met for {self.label}, executing true branch {branch.name}.",
                branch=branch.name,
            )
        else:
            self.log(
                StepEventName.CONDITIONAL_FALSE_BRANCH,
                f"Condition not met for {self.label}, executing false branch {branch.name}.",
                branch=branch.name,
            )
        return await branch.run(context)
