"""Ordered step queues with shared state."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from microflow.config import get_settings
from microflow.core.base import BaseEntity, EntityKind, Status
from microflow.core.events import Broadcaster, WorkflowEventName
from microflow.core.executable import ExecutionContext
from microflow.core.outcome import Continue, Outcome, Value, is_signal
from microflow.core.scheduling import utc_now
from microflow.core.state import State
from microflow.errors import (
    EmptyWorkflowError,
    IllegalTransitionError,
    InvalidStepError,
    StateFrozenError,
)
from microflow.steps.step import Step


class Workflow(BaseEntity):
    """Run steps in order against one shared :class:`State`.

    A top-level run owns ``state`` and freezes it on success; call
    ``state.reset()`` before running again. When run as another step's
    executable, the workflow works on the caller's state and freezes nothing.

    A ``break`` from a step stops the remaining steps and a ``continue``
    skips the next one. When the workflow is a loop's body, either signal
    instead stops the run and becomes the workflow's outcome so the loop can
    act on it.
    """

    kind = EntityKind.WORKFLOW
    event_names = WorkflowEventName
    status_events = {
        Status.RUNNING: WorkflowEventName.WORKFLOW_STARTED,
        Status.COMPLETE: WorkflowEventName.WORKFLOW_COMPLETED,
        Status.FAILED: WorkflowEventName.WORKFLOW_ERRORED,
        Status.PAUSED: WorkflowEventName.WORKFLOW_PAUSED,
    }

    def __init__(
        self,
        steps: Iterable[Step] = (),
        *,
        name: str | None = None,
        initial_state: Mapping[str, Any] | None = None,
        exit_on_failure: bool | None = None,
        throw_on_empty: bool | None = None,
        log_suppress: bool | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        super().__init__(name=name, log_suppress=log_suppress, broadcaster=broadcaster)
        settings = get_settings()
        self.exit_on_failure = settings.exit_on_failure if exit_on_failure is None else exit_on_failure
        self.throw_on_empty = settings.throw_on_empty if throw_on_empty is None else throw_on_empty
        self.state = State(initial_state, broadcaster=broadcaster)

        self._steps: list[Step] = []
        self.steps_by_id: dict[str, Step] = {}
        self.results: list[Any] = []
        self.outcome: Outcome | None = None
        self.current_step: Step | None = None

        self._cursor = 0
        self._pause_requested = False
        self._skip_next = False
        self._suspended: tuple[ExecutionContext, bool, bool] | None = None

        for step in steps:
            self._insert(len(self._steps), step)

        self.log(
            WorkflowEventName.WORKFLOW_CREATED,
            f"{self.label} initialized.",
            step_count=len(self._steps),
        )

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    # Queue management

    @staticmethod
    def _validate(step: Any) -> Step:
        if not isinstance(step, Step):
            raise InvalidStepError(f"Workflow steps must be Step instances, got {step!r}")
        return step

    def _insert(self, index: int, step: Step) -> None:
        self._validate(step)
        index = max(0, min(index if index >= 0 else len(self._steps) + index, len(self._steps)))
        self._steps.insert(index, step)
        self.steps_by_id[step.id] = step
        if index < self._cursor:
            self._cursor += 1

    def _remove(self, index: int) -> Step:
        if index < 0:
            index += len(self._steps)
        step = self._steps.pop(index)
        if all(other is not step for other in self._steps):
            self.steps_by_id.pop(step.id, None)
        if index < self._cursor:
            self._cursor -= 1
        return step

    def push_step(self, step: Step) -> Workflow:
        self._insert(len(self._steps), step)
        self.log(
            WorkflowEventName.WORKFLOW_STEP_ADDED,
            f"{step.label} added to {self.label}.",
            step_id=step.id,
            index=len(self._steps) - 1,
        )
        return self

    def push_steps(self, steps: Iterable[Step]) -> Workflow:
        new_steps = [self._validate(step) for step in steps]
        for step in new_steps:
            self._insert(len(self._steps), step)
        self.log(
            WorkflowEventName.WORKFLOW_STEPS_ADDED,
            f"{len(new_steps)} steps added to {self.label}.",
            step_ids=[step.id for step in new_steps],
        )
        return self

    def insert_step(self, index: int, step: Step) -> Workflow:
        self._insert(index, step)
        self.log(
            WorkflowEventName.WORKFLOW_STEP_ADDED,
            f"{step.label} inserted into {self.label}.",
            step_id=step.id,
            index=self._steps.index(step),
        )
        return self

    def unshift_step(self, step: Step) -> Workflow:
        return self.insert_step(0, step)

    def remove_step(self, index: int) -> Step:
        """Remove and return the step at ``index``.

        Raises:
            IndexError: If there is no step at ``index``.
        """

        step = self._remove(index)
        self.log(
            WorkflowEventName.WORKFLOW_STEP_REMOVED,
            f"{step.label} removed from {self.label}.",
            step_id=step.id,
            index=index,
        )
        return step

    def delete_step(self, step_id: str) -> Step | None:
        for index, step in enumerate(self._steps):
            if step.id == step_id:
                return self.remove_step(index)
        return None

    def pop_step(self) -> Step | None:
        if not self._steps:
            return None
        return self.remove_step(len(self._steps) - 1)

    def shift_step(self) -> Step | None:
        if not self._steps:
            return None
        step = self._remove(0)
        self.log(
            WorkflowEventName.WORKFLOW_STEP_SHIFTED,
            f"{step.label} shifted from {self.label}.",
            step_id=step.id,
        )
        return step

    def move_step(self, from_index: int, to_index: int) -> Workflow:
        step = self._remove(from_index)
        self._insert(to_index, step)
        self.log(
            WorkflowEventName.WORKFLOW_STEP_MOVED,
            f"{step.label} moved from {from_index} to {to_index} in {self.label}.",
            step_id=step.id,
            from_index=from_index,
            to_index=to_index,
        )
        return self

    def clear_steps(self) -> Workflow:
        self._steps.clear()
        self.steps_by_id.clear()
        self._cursor = 0
        self.log(WorkflowEventName.WORKFLOW_STEPS_CLEARED, f"All steps cleared from {self.label}.")
        return self

    def get_step(self, step_id: str) -> Step | None:
        return self.steps_by_id.get(step_id)

    def is_empty(self) -> bool:
        return not self._steps

    # Running

    def pause(self) -> None:
        """Pause before the next step is dequeued.

        The step currently running is never interrupted. Only a top-level run
        can pause; a nested run that reaches the request fails with
        :class:`~microflow.errors.IllegalTransitionError`. ``execute()`` drops
        a request made while the workflow was idle.
        """

        self._pause_requested = True

    async def resume(self) -> State:
        """Continue a paused run from the next queued step.

        Raises:
            IllegalTransitionError: If the workflow is not paused.
        """

        if self.status is not Status.PAUSED or self._suspended is None:
            raise IllegalTransitionError(
                entity=self.label, current=self.status.value, requested=Status.RUNNING.value
            )
        context, owns_state, loop_body = self._suspended
        self._suspended = None
        self._set_status(Status.RUNNING)
        self.timing.resume_time = utc_now()
        self.log(WorkflowEventName.WORKFLOW_RESUMED, f"{self.label} resumed.")
        return await self._drain(context, owns_state, loop_body)

    async def execute(
        self,
        initial_state: Mapping[str, Any] | None = None,
        *,
        context: ExecutionContext | None = None,
    ) -> State:
        """Run every queued step in order.

        Args:
            initial_state: Values merged into the state before the first step.
            context: Supplied when this workflow runs inside another step; its
                state is used instead of this workflow's own.

        Returns:
            The state the steps ran against.

        Raises:
            StateFrozenError: If a previous top-level run froze the state.
            EmptyWorkflowError: If there are no steps and ``throw_on_empty`` is set.
        """

        owns_state = context is None
        state = self.state if owns_state else context.state
        if owns_state and state.frozen:
            raise StateFrozenError(f"{self.label} has already run; reset its state before running again")
        if initial_state:
            state.merge(initial_state)

        run_context = ExecutionContext(
            state=state,
            exit_on_failure=self.exit_on_failure,
            workflow=self,
            current_item=None if context is None else context.current_item,
            depth=0 if context is None else context.depth + 1,
        )
        self._cursor = 0
        self._pause_requested = False
        self._skip_next = False
        self.results = []
        self.outcome = None
        self.current_step = None

        if not self._steps and self.throw_on_empty:
            raise EmptyWorkflowError(f"{self.label} has no steps")

        self.mark_as_running()
        return await self._drain(run_context, owns_state, context is not None and context.loop_body)

    async def _drain(self, context: ExecutionContext, owns_state: bool, loop_body: bool) -> State:
        while self._cursor < len(self._steps):
            if self._pause_requested:
                self._pause_requested = False
                if not owns_state:
                    error = IllegalTransitionError(
                        entity=self.label, current=self.status.value, requested=Status.PAUSED.value
                    )
                    self.mark_as_failed(error)
                    raise error
                self._suspended = (context, owns_state, loop_body)
                self.mark_as_paused()
                return context.state

            step = self._steps[self._cursor]
            self._cursor += 1
            if self._skip_next:
                self._skip_next = False
                self.log(
                    WorkflowEventName.WORKFLOW_STEP_SKIPPED,
                    f"{self.label} skipping {step.label}.",
                    step_id=step.id,
                )
                continue

            self.current_step = step
            if step.defers_start:
                step.mark_as_pending()

            try:
                await step.execute(context)
            except Exception as error:
                self.current_step = None
                self.mark_as_failed(error)
                raise

            self.results.append(step.result)
            if isinstance(step.outcome, Continue) and not loop_body:
                self._skip_next = True
            elif is_signal(step.outcome):
                self.outcome = step.outcome
                self.log(
                    None,
                    f"{self.label} stopped early by {step.label}.",
                    signal=type(step.outcome).__name__.lower(),
                )
                break

        self.current_step = None
        self._skip_next = False
        if self.outcome is None:
            self.outcome = Value(list(self.results))
        if owns_state:
            context.state.freeze()
        self.mark_as_complete()
        return context.state
