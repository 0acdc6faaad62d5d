"""Unit tests for timestamp-based delays."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from microflow.core.base import Status
from microflow.core.scheduling import sleep_until, utc_now
from microflow.errors import InvalidDelayError
from microflow.steps.delay import DelayStep, DelayType, parse_duration, parse_timestamp
from microflow.workflow import Workflow


def test_parse_timestamp_accepts_common_forms() -> None:
    expected = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    assert parse_timestamp(expected) == expected
    assert parse_timestamp("2024-05-01T12:00:00Z") == expected
    assert parse_timestamp(expected.timestamp()) == expected
    assert parse_timestamp(datetime(2024, 5, 1, 12, 0)) == expected


@pytest.mark.parametrize("value", ["tomorrow", None, True, [2024]])
def test_parse_timestamp_rejects_garbage(value) -> None:
    with pytest.raises(InvalidDelayError):
        parse_timestamp(value)


def test_parse_duration_accepts_seconds_and_timedeltas() -> None:
    assert parse_duration(1.5) == timedelta(seconds=1.5)
    assert parse_duration(timedelta(minutes=1)) == timedelta(minutes=1)
    with pytest.raises(InvalidDelayError):
        parse_duration("soon")


def test_invalid_configuration_is_rejected() -> None:
    with pytest.raises(InvalidDelayError):
        DelayStep("eventually")
    with pytest.raises(InvalidDelayError):
        DelayStep(DelayType.ABSOLUTE)


@pytest.mark.asyncio
async def test_past_timestamp_resolves_immediately(recorder) -> None:
    past = utc_now() - timedelta(hours=1)
    step = DelayStep("absolute", timestamp=past)
    step.events.on("delay_scheduled", recorder).on("delay_complete", recorder)

    await step.execute()

    assert step.result == past
    assert step.status is Status.COMPLETE
    assert recorder.names == ["delay_complete"]


@pytest.mark.asyncio
async def test_relative_delay_waits_at_least_the_duration(recorder) -> None:
    step = DelayStep("relative", duration=0.05, poll_interval=0.01)
    step.events.on("delay_scheduled", recorder).on("delay_complete", recorder)

    started = utc_now()
    await step.execute()

    assert step.result >= started + timedelta(seconds=0.05)
    assert utc_now() >= step.result
    assert recorder.names == ["delay_scheduled", "delay_complete"]


@pytest.mark.asyncio
async def test_zero_duration_does_not_suspend() -> None:
    step = DelayStep(duration=0)
    task = asyncio.ensure_future(step.execute())

    # A single yield to the loop is enough for a delay that never sleeps.
    await asyncio.sleep(0)

    assert task.done()
    assert step.status is Status.COMPLETE


@pytest.mark.asyncio
async def test_sleep_until_returns_target_for_past_times() -> None:
    target = datetime(2000, 1, 1, tzinfo=UTC)

    assert await sleep_until(target) == target


@pytest.mark.asyncio
async def test_workflow_marks_delay_pending_before_running(recorder) -> None:
    step = DelayStep(duration=0)
    step.events.on("step_pending", recorder).on("step_running", recorder)

    await Workflow([step]).execute()

    assert recorder.names == ["step_pending", "step_running"]
