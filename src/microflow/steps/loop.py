"""Iteration: for-each, while, fixed count and generator draining."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from microflow.config import get_settings
from microflow.core.events import Broadcaster, StepEventName
from microflow.core.executable import Executable, ExecutionContext, noop
from microflow.core.outcome import Break, Halt, Value
from microflow.errors import LoopConfigurationError
from microflow.steps.logic import UNSET, LogicStep


class LoopType(str, Enum):
    FOR_EACH = "for_each"
    WHILE = "while"
    COUNT = "count"
    GENERATOR = "generator"

    @classmethod
    def _missing_(cls, value: object) -> LoopType | None:
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_")
            key = {"for": "count", "times": "count", "foreach": "for_each"}.get(key, key)
            for member in cls:
                if member.value == key:
                    return member
        return None


@dataclass(frozen=True, slots=True)
class LoopResult:
    message: str
    results: list[Any] = field(default_factory=list)
    iterations: int = 0
    truncated: bool = False
    broken: bool = False


class LoopStep(LogicStep):
    """Run ``body`` repeatedly and collect each iteration's value.

    ``break`` from the body ends the loop; ``continue`` ends the current
    iteration. A body failure that was captured rather than raised records
    ``None`` for that iteration. Every strategy stops at ``max_iterations``
    and reports ``truncated=True`` when it does.

    The generator strategy drains ``iterable`` itself (a generator, async
    generator, or a function returning one) and collects what it yields; it
    does not run a body.
    """

    step_type = "loop"

    def __init__(
        self,
        body: Any = None,
        *,
        loop_type: LoopType | str = LoopType.FOR_EACH,
        iterable: Any = None,
        count: int | None = None,
        max_iterations: int | None = None,
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
            self.loop_type = LoopType(loop_type)
        except ValueError:
            raise LoopConfigurationError(f"Unknown loop type {loop_type!r}") from None

        self.body = Executable.of(noop if body is None else body)
        self.iterable = iterable
        self.count = count
        self.max_iterations = get_settings().max_iterations if max_iterations is None else max_iterations
        if self.max_iterations < 0:
            raise LoopConfigurationError(f"max_iterations must be non-negative, got {self.max_iterations}")
        self.results: list[Any] = []
        self.iterations = 0
        self.current_item: Any = None
        self.executable = self._loop

    async def _loop(self, context: ExecutionContext) -> LoopResult:
        self.results = []
        self.iterations = 0
        self.current_item = None

        runner = {
            LoopType.FOR_EACH: self._for_each,
            LoopType.WHILE: self._while,
            LoopType.COUNT: self._count,
            LoopType.GENERATOR: self._generator,
        }[self.loop_type]
        truncated, broken = await runner(context)

        if truncated:
            self.log(
                None,
                f"{self.label} reached max iterations ({self.max_iterations}).",
                level=logging.WARNING,
            )
        return LoopResult(
            message=f"{self.loop_type.value} loop {self.name} completed after {self.iterations} iterations.",
            results=list(self.results),
            iterations=self.iterations,
            truncated=truncated,
            broken=broken,
        )

    async def _iterate(self, context: ExecutionContext, item: Any = None) -> bool:
        """Run the body once; return False when it asked to break."""

        self.current_item = item
        outcome = await self.body.run(
            context.child(current_item=item, depth=context.depth + 1, loop_body=True)
        )
        self.iterations += 1

        if isinstance(outcome, Value):
            self.results.append(outcome.result)
        elif not isinstance(outcome, Break):
            # Continue and captured failures both leave a hole.
            self.results.append(None)

        self.log(
            StepEventName.LOOP_ITERATION_COMPLETE,
            f"Iteration {self.iterations} for {self.label} complete.",
            level=logging.DEBUG,
            iteration=self.iterations,
            halted=isinstance(outcome, Halt),
        )
        return not isinstance(outcome, Break)

    async def _source(self, context: ExecutionContext) -> Any:
        source = self.iterable
        if source is None:
            raise LoopConfigurationError(f"{self.label} requires an iterable")
        if isinstance(source, Iterable) or hasattr(source, "__aiter__"):
            return source
        if callable(source):
            source = source(context) if inspect.signature(source).parameters else source()
            if inspect.isawaitable(source):
                source = await source
        if isinstance(source, Iterable) or hasattr(source, "__aiter__"):
            return source
        raise LoopConfigurationError(f"{self.label} iterable {source!r} is not iterable")

    async def _for_each(self, context: ExecutionContext) -> tuple[bool, bool]:
        source = await self._source(context)

        if hasattr(source, "__aiter__"):
            try:
                async for item in source:
                    if self.iterations >= self.max_iterations:
                        return True, False
                    if not await self._iterate(context, item):
                        return False, True
            finally:
                aclose = getattr(source, "aclose", None)
                if aclose is not None:
                    await aclose()
            return False, False

        for item in source:
            if self.iterations >= self.max_iterations:
                return True, False
            if not await self._iterate(context, item):
                return False, True
        return False, False

    async def _while(self, context: ExecutionContext) -> tuple[bool, bool]:
        if self.condition is None:
            raise LoopConfigurationError(f"{self.label} requires a condition")

        while await self.check_condition(context):
            if self.iterations >= self.max_iterations:
                return True, False
            if not await self._iterate(context):
                return False, True
        return False, False

    async def _count(self, context: ExecutionContext) -> tuple[bool, bool]:
        if self.count is None or self.count < 0:
            raise LoopConfigurationError(f"{self.label} requires a non-negative count")

        for index in range(min(self.count, self.max_iterations)):
            if not await self._iterate(context, index):
                return False, True
        return self.count > self.max_iterations, False

    async def _generator(self, context: ExecutionContext) -> tuple[bool, bool]:
        producer = await self._source(context)

        if hasattr(producer, "__aiter__"):
            try:
                async for value in producer:
                    if self.iterations >= self.max_iterations:
                        return True, False
                    self._collect(value)
            finally:
                aclose = getattr(producer, "aclose", None)
                if aclose is not None:
                    await aclose()
            return False, False

        iterator = iter(producer)
        try:
            for value in iterator:
                if self.iterations >= self.max_iterations:
                    return True, False
                self._collect(value)
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()
        return False, False

    def _collect(self, value: Any) -> None:
        self.current_item = value
        self.results.append(value)
        self.iterations += 1
        self.log(
            StepEventName.LOOP_ITERATION_COMPLETE,
            f"Iteration {self.iterations} for {self.label} complete.",
            level=logging.DEBUG,
            iteration=self.iterations,
        )
