"""Multi-way branching on an ordered list of cases."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from microflow.core.events import Broadcaster, StepEventName
from microflow.core.executable import Executable, ExecutionContext, noop
from microflow.core.outcome import Outcome, Value
from microflow.errors import InvalidStepError, SwitchConfigurationError
from microflow.steps.logic import UNSET, LogicStep, resolve_operand
from microflow.steps.step import Step


class Case(LogicStep):
    """One arm of a :class:`SwitchStep`.

    A case may omit its subject and inherit the switch's. With
    ``force_subject_override`` the switch's subject replaces the case's own.
    """

    step_type = "case"

    def __init__(
        self,
        executable: Any = None,
        *,
        condition: Any = None,
        subject: Any = UNSET,
        operator: Any = None,
        value: Any = UNSET,
        force_subject_override: bool = False,
        name: str | None = None,
        log_suppress: bool | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        super().__init__(
            executable,
            condition=condition,
            subject=subject,
            operator=operator,
            value=value,
            name=name,
            log_suppress=log_suppress,
            broadcaster=broadcaster,
            require_subject=False,
        )
        if self.condition is None:
            raise SwitchConfigurationError(f"{self.label} requires an operator")
        self.force_subject_override = force_subject_override

    def subject_for(self, switch_subject: Any) -> Any:
        """Pick the subject this case compares, given the switch's (possibly unset) subject."""

        assert self.condition is not None
        if switch_subject is not UNSET and (self.force_subject_override or not self.condition.has_subject):
            return switch_subject
        if self.condition.has_subject:
            return self.condition.subject
        raise SwitchConfigurationError(f"{self.label} has no subject and the switch provides none")

    async def matches(self, context: ExecutionContext, switch_subject: Any = UNSET) -> bool:
        return await self.check_condition(context, subject=self.subject_for(switch_subject))


class SwitchStep(Step):
    """Run the first matching case, or the default when none match."""

    step_type = "switch"

    def __init__(
        self,
        cases: Iterable[Case] = (),
        *,
        subject: Any = UNSET,
        default: Any = None,
        name: str | None = None,
        log_suppress: bool | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        super().__init__(name=name, log_suppress=log_suppress, broadcaster=broadcaster)
        self.cases: list[Case] = list(cases)
        for case in self.cases:
            if not isinstance(case, Case):
                raise InvalidStepError(f"Switch cases must be Case instances, got {case!r}")

        self.subject = subject
        self.default = Executable.of(noop if default is None else default)
        self.matched_case: Case | None = None
        self.executable = self._switch

    async def _switch(self, context: ExecutionContext) -> Outcome:
        self.matched_case = None
        # Resolve once so every case sees the same subject.
        subject = self.subject if self.subject is UNSET else await resolve_operand(self.subject, context)

        for case in self.cases:
            if not await case.matches(context, subject):
                continue
            self.matched_case = case
            self.log(
                StepEventName.SWITCH_CASE_MATCHED,
                f"{self.label} matched {case.label}.",
                case=case.name,
            )
            await case.execute(context)
            return case.outcome if case.outcome is not None else Value(case.result)

        self.log(StepEventName.SWITCH_DEFAULT, f"No case matched for {self.label}, running default.")
        return await self.default.run(context)
