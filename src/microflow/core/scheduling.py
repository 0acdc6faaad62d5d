"""Timestamp-based suspension."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from microflow.config import get_settings


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_aware(when: datetime) -> datetime:
    """Treat naive datetimes as UTC."""

    return when if when.tzinfo is not None else when.replace(tzinfo=UTC)


async def sleep_until(when: datetime, *, poll_interval: float | None = None) -> datetime:
    """Suspend until ``when``; return immediately if it is not in the future.

    Sleeps in slices of at most ``poll_interval`` seconds so that wall-clock
    adjustments are picked up. Accuracy is roughly one event-loop tick on top
    of the remaining time; nothing finer is promised.

    Returns:
        The fire time that was waited for.
    """

    target = ensure_aware(when)
    interval = poll_interval if poll_interval is not None else get_settings().delay_poll_interval

    while True:
        remaining = (target - utc_now()) / timedelta(seconds=1)
        if remaining <= 0:
            return target
        await asyncio.sleep(min(remaining, interval))
