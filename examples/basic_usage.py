#!/usr/bin/env python3
"""Programmatic workflow example.

This demonstrates the building blocks working together:

* load settings from `.env` and configure logging
* share state between steps
* loop over items, skipping some and stopping early
* branch on a value read from state

Run with e.g. ``python examples/basic_usage.py --items 3,8,1,12,5 --limit 10``.
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from microflow import (
    ConditionalStep,
    ExecutionContext,
    FlowControlStep,
    LoopStep,
    StateRef,
    Step,
    Workflow,
    get_settings,
)
from microflow.logging import configure_logging


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sum values below a limit (programmatic example).")
    parser.add_argument("--items", required=True, help='Comma-separated integers, e.g. "3,8,1,12"')
    parser.add_argument("--limit", type=int, default=10, help="Stop at the first item at or above this")
    parser.add_argument("--skip-odd", action="store_true", help="Ignore odd items")
    return parser.parse_args(argv)


def _accumulate(context: ExecutionContext) -> int:
    total = context.state.get("total", 0) + context.current_item
    context.state.set("total", total)
    return total


def build_workflow(items: list[int], *, limit: int, skip_odd: bool) -> Workflow:
    body_steps = [
        FlowControlStep(
            "break",
            subject=lambda ctx: ctx.current_item,
            operator=">=",
            value=limit,
            name="stop-at-limit",
        ),
    ]
    if skip_odd:
        body_steps.append(
            FlowControlStep(
                "continue",
                subject=lambda ctx: ctx.current_item % 2,
                operator="==",
                value=1,
                name="skip-odd",
            )
        )
    body_steps.append(Step(_accumulate, name="accumulate"))

    return Workflow(
        [
            LoopStep(Workflow(body_steps, name="loop-body"), iterable=items, name="sum-items"),
            ConditionalStep(
                subject=StateRef("total", 0),
                operator=">",
                value=limit,
                true_branch=lambda: "over limit",
                false_branch=lambda: "within limit",
                name="verdict",
            ),
        ],
        name="basic-usage",
        initial_state={"total": 0},
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    items = [int(item.strip()) for item in args.items.split(",") if item.strip()]

    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    workflow = build_workflow(items, limit=args.limit, skip_odd=args.skip_odd)
    state = asyncio.run(workflow.execute())

    print(f"Total: {state.get('total')}")
    print(f"Verdict: {workflow.results[-1]}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
