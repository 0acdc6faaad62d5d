"""Unit tests for loop strategies."""

from __future__ import annotations

import pytest

from microflow.config import get_settings
from microflow.core.base import Status
from microflow.core.executable import ExecutionContext
from microflow.core.state import StateRef
from microflow.errors import LoopConfigurationError
from microflow.steps.flow_control import FlowControlStep
from microflow.steps.loop import LoopResult, LoopStep, LoopType
from microflow.steps.step import Step
from microflow.workflow import Workflow


@pytest.mark.asyncio
async def test_for_each_collects_body_results_in_order() -> None:
    loop = LoopStep(lambda ctx: ctx.current_item * 10, iterable=[1, 2, 3])

    await loop.execute()

    assert isinstance(loop.result, LoopResult)
    assert loop.result.results == [10, 20, 30]
    assert loop.result.iterations == 3
    assert loop.result.truncated is False


@pytest.mark.asyncio
async def test_for_each_accepts_an_iterable_factory(context: ExecutionContext) -> None:
    loop = LoopStep(lambda ctx: ctx.current_item.upper(), iterable=lambda ctx: ctx.state.get("user.roles"))

    await loop.execute(context)

    assert loop.result.results == ["ADMIN", "DEV"]


@pytest.mark.asyncio
async def test_for_each_drains_async_iterables() -> None:
    async def numbers():
        for n in range(3):
            yield n

    loop = LoopStep(lambda ctx: ctx.current_item + 1, iterable=numbers())

    await loop.execute()

    assert loop.result.results == [1, 2, 3]


@pytest.mark.asyncio
async def test_break_in_body_workflow_stops_the_loop() -> None:
    body = Workflow(
        [
            FlowControlStep("break", subject=lambda ctx: ctx.current_item, operator="==", value="c"),
            Step(lambda ctx: ctx.current_item),
        ],
        name="body",
    )
    loop = LoopStep(body, iterable=["a", "b", "c", "d"])

    await loop.execute()

    assert [values[-1] for values in loop.result.results] == ["a", "b"]
    assert loop.result.iterations == 3
    assert loop.result.broken is True
    assert loop.status is Status.COMPLETE


@pytest.mark.asyncio
async def test_break_reaches_loop_through_a_wrapping_step() -> None:
    loop = LoopStep(Step(Workflow([FlowControlStep("break")])), iterable=[1, 2, 3])

    await loop.execute()

    assert loop.result.iterations == 1
    assert loop.result.broken is True
    assert loop.result.results == []


@pytest.mark.asyncio
async def test_continue_in_body_skips_rest_of_iteration() -> None:
    seen: list[int] = []
    body = Workflow(
        [
            FlowControlStep("continue", subject=lambda ctx: ctx.current_item % 2, operator="==", value=1),
            Step(lambda ctx: seen.append(ctx.current_item)),
        ]
    )
    loop = LoopStep(body, iterable=[1, 2, 3, 4])

    await loop.execute()

    assert seen == [2, 4]
    assert loop.result.iterations == 4
    assert loop.result.results[0] is None


@pytest.mark.asyncio
async def test_while_loop_reevaluates_state_each_iteration(context: ExecutionContext) -> None:
    def increment(ctx: ExecutionContext) -> int:
        ctx.state.set("count", ctx.state.get("count") + 1)
        return ctx.state.get("count")

    loop = LoopStep(
        increment, loop_type="while", subject=StateRef("count"), operator="<", value=3
    )

    await loop.execute(context)

    assert loop.result.results == [1, 2, 3]
    assert context.state.get("count") == 3


@pytest.mark.asyncio
async def test_while_loop_is_truncated_at_max_iterations() -> None:
    loop = LoopStep(lambda: None, loop_type=LoopType.WHILE, subject=1, operator="==", value=1, max_iterations=5)

    await loop.execute()

    assert loop.result.iterations == 5
    assert loop.result.truncated is True


@pytest.mark.asyncio
async def test_count_loop_passes_index_as_current_item() -> None:
    loop = LoopStep(lambda ctx: ctx.current_item, loop_type="count", count=4)

    await loop.execute()

    assert loop.result.results == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_count_loop_respects_ceiling() -> None:
    loop = LoopStep(loop_type="count", count=10, max_iterations=3)

    await loop.execute()

    assert loop.result.iterations == 3
    assert loop.result.truncated is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"loop_type": "count", "count": 5},
        {"loop_type": "for_each", "iterable": [1, 2]},
        {"loop_type": "while", "subject": 1, "operator": "==", "value": 1},
    ],
)
async def test_zero_ceiling_runs_no_iterations(kwargs) -> None:
    calls: list[int] = []
    loop = LoopStep(lambda: calls.append(1), max_iterations=0, **kwargs)

    await loop.execute()

    assert calls == []
    assert loop.result.iterations == 0
    assert loop.result.truncated is True


def test_negative_ceiling_is_rejected() -> None:
    with pytest.raises(LoopConfigurationError):
        LoopStep(loop_type="count", count=1, max_iterations=-1)


@pytest.mark.asyncio
async def test_ceiling_falls_back_to_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MICROFLOW_MAX_ITERATIONS", "2")
    get_settings.cache_clear()

    loop = LoopStep(loop_type="count", count=5)
    await loop.execute()

    assert loop.max_iterations == 2
    assert loop.result.iterations == 2


@pytest.mark.asyncio
async def test_generator_strategy_collects_yielded_values() -> None:
    def squares():
        n = 0
        while True:
            yield n * n
            n += 1

    loop = LoopStep(loop_type="generator", iterable=squares, max_iterations=4)

    await loop.execute()

    assert loop.result.results == [0, 1, 4, 9]
    assert loop.result.truncated is True


@pytest.mark.asyncio
async def test_generator_strategy_drains_async_generators() -> None:
    async def letters():
        for letter in "ab":
            yield letter

    loop = LoopStep(loop_type="generator", iterable=letters)

    await loop.execute()

    assert loop.result.results == ["a", "b"]
    assert loop.result.truncated is False


@pytest.mark.asyncio
async def test_captured_body_failure_records_none() -> None:
    def flaky(ctx: ExecutionContext) -> int:
        if ctx.current_item == 2:
            raise RuntimeError("two")
        return ctx.current_item

    loop = LoopStep(Step(flaky), iterable=[1, 2, 3])

    await loop.execute(ExecutionContext(exit_on_failure=False))

    assert loop.result.results == [1, None, 3]
    assert loop.status is Status.COMPLETE


@pytest.mark.asyncio
async def test_results_reset_between_runs() -> None:
    loop = LoopStep(lambda ctx: ctx.current_item, iterable=[1, 2])

    await loop.execute()
    await loop.execute()

    assert loop.result.results == [1, 2]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"loop_type": "for_each"},
        {"loop_type": "while"},
        {"loop_type": "count"},
        {"loop_type": "count", "count": -1},
        {"loop_type": "for_each", "iterable": 42},
    ],
)
async def test_missing_configuration_fails_the_loop(kwargs) -> None:
    loop = LoopStep(lambda: None, **kwargs)

    with pytest.raises(LoopConfigurationError):
        await loop.execute(ExecutionContext(exit_on_failure=True))


def test_unknown_loop_type_is_rejected() -> None:
    with pytest.raises(LoopConfigurationError):
        LoopStep(loop_type="forever")
