"""Suspend a workflow until a point in time."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from microflow.core.events import Broadcaster, StepEventName
from microflow.core.executable import ExecutionContext
from microflow.core.scheduling import ensure_aware, sleep_until, utc_now
from microflow.errors import InvalidDelayError
from microflow.steps.step import Step


class DelayType(str, Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


def parse_timestamp(value: Any) -> datetime:
    """Accept a datetime, an ISO-8601 string, or POSIX seconds."""

    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, bool):
        raise InvalidDelayError(f"Invalid timestamp {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC)
    if isinstance(value, str):
        try:
            return ensure_aware(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            raise InvalidDelayError(f"Invalid timestamp {value!r}") from None
    raise InvalidDelayError(f"Invalid timestamp {value!r}")


def parse_duration(value: Any) -> timedelta:
    """Accept a timedelta or a number of seconds."""

    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    raise InvalidDelayError(f"Invalid duration {value!r}")


class DelayStep(Step):
    """Wait until ``timestamp`` (absolute) or for ``duration`` (relative).

    A fire time that is already past resolves at once. The step's result is
    the fire time.
    """

    step_type = "delay"
    defers_start = True

    def __init__(
        self,
        delay_type: DelayType | str = DelayType.RELATIVE,
        *,
        timestamp: Any = None,
        duration: Any = 0,
        poll_interval: float | None = None,
        name: str | None = None,
        log_suppress: bool | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        super().__init__(name=name, log_suppress=log_suppress, broadcaster=broadcaster)
        try:
            self.delay_type = DelayType(delay_type)
        except ValueError:
            raise InvalidDelayError(
                f"Invalid delay type {delay_type!r}. Must be 'absolute' or 'relative'."
            ) from None

        self.timestamp: datetime | None = None
        self.duration: timedelta | None = None
        if self.delay_type is DelayType.ABSOLUTE:
            if timestamp is None:
                raise InvalidDelayError(f"{self.label} requires a timestamp")
            self.timestamp = parse_timestamp(timestamp)
        else:
            self.duration = parse_duration(duration)

        self.poll_interval = poll_interval
        self.fire_time: datetime | None = None
        self.executable = self._delay

    def _fire_time(self) -> datetime:
        if self.timestamp is not None:
            return self.timestamp
        assert self.duration is not None
        return utc_now() + self.duration

    async def _delay(self, context: ExecutionContext) -> datetime:
        fire_time = self._fire_time()
        self.fire_time = fire_time

        if fire_time <= utc_now():
            self.log(
                StepEventName.DELAY_COMPLETE,
                f"No delay for {self.label}, fire time has passed.",
                fire_time=fire_time,
            )
            return fire_time

        self.log(
            StepEventName.DELAY_SCHEDULED,
            f"{self.label} waiting until {fire_time.isoformat()}.",
            fire_time=fire_time,
        )
        await sleep_until(fire_time, poll_interval=self.poll_interval)
        self.log(StepEventName.DELAY_COMPLETE, f"{self.label} complete.", fire_time=fire_time)
        return fire_time
