"""Unit tests for multi-way branching."""

from __future__ import annotations

import pytest

from microflow.core.base import Status
from microflow.core.executable import ExecutionContext
from microflow.core.state import StateRef
from microflow.errors import InvalidStepError, SwitchConfigurationError
from microflow.steps.step import Step
from microflow.steps.switch import Case, SwitchStep


def _colour_switch(subject) -> SwitchStep:
    return SwitchStep(
        [
            Case(lambda: "stop", operator="==", value="red", name="red"),
            Case(lambda: "go", operator="==", value="green", name="green"),
        ],
        subject=subject,
        default=lambda: "unknown",
    )


@pytest.mark.asyncio
async def test_first_matching_case_runs(recorder) -> None:
    switch = _colour_switch("green")
    switch.events.on("switch_case_matched", recorder)

    await switch.execute()

    assert switch.result == "go"
    assert switch.matched_case is switch.cases[1]
    assert recorder.events[0].payload == {"case": "green"}
    assert switch.cases[0].status is Status.WAITING


@pytest.mark.asyncio
async def test_default_runs_when_no_case_matches(recorder) -> None:
    switch = _colour_switch("blue")
    switch.events.on("switch_default", recorder)

    await switch.execute()

    assert switch.result == "unknown"
    assert switch.matched_case is None
    assert recorder.names == ["switch_default"]


@pytest.mark.asyncio
async def test_only_first_of_several_matches_runs() -> None:
    ran: list[str] = []
    switch = SwitchStep(
        [
            Case(lambda: ran.append("a"), operator=">", value=1),
            Case(lambda: ran.append("b"), operator=">", value=2),
        ],
        subject=5,
    )

    await switch.execute()

    assert ran == ["a"]


@pytest.mark.asyncio
async def test_case_keeps_its_own_subject_unless_forced(context: ExecutionContext) -> None:
    own = Case(lambda: "own", subject=StateRef("count"), operator="==", value=0)
    forced = Case(lambda: "forced", subject="ignored", operator="==", value="x", force_subject_override=True)

    switch = SwitchStep([forced, own], subject="y")
    await switch.execute(context)
    assert switch.result == "own"

    switch = SwitchStep([forced, own], subject="x")
    await switch.execute(context)
    assert switch.result == "forced"


@pytest.mark.asyncio
async def test_switch_subject_is_resolved_from_state(context: ExecutionContext) -> None:
    switch = SwitchStep(
        [Case(lambda: "admin", operator="contains", value="admin")],
        subject=StateRef("user.roles"),
    )

    await switch.execute(context)

    assert switch.result == "admin"


@pytest.mark.asyncio
async def test_case_without_any_subject_fails_the_switch() -> None:
    switch = SwitchStep([Case(lambda: "x", operator="==", value=1)])

    with pytest.raises(SwitchConfigurationError):
        await switch.execute(ExecutionContext(exit_on_failure=True))
    assert switch.status is Status.FAILED


def test_cases_must_be_case_instances() -> None:
    with pytest.raises(InvalidStepError):
        SwitchStep([Step(lambda: None)])  # type: ignore[list-item]


def test_case_requires_an_operator() -> None:
    with pytest.raises(SwitchConfigurationError):
        Case(lambda: None)
