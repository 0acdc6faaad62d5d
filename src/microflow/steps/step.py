"""The atomic executable unit."""

from __future__ import annotations

from typing import Any, ClassVar

from microflow.config import get_settings
from microflow.core.base import BaseEntity, EntityKind, Status
from microflow.core.events import Broadcaster, StepEventName
from microflow.core.executable import Executable, ExecutableKind, ExecutionContext, noop
from microflow.core.outcome import Halt, Outcome, Value
from microflow.core.state import State


class Step(BaseEntity):
    """Run one function, Step, or Workflow and record what happened.

    ``execute()`` never raises for a failing executable unless the context
    asks to exit on failure; the error is kept in ``errors`` and the outcome
    becomes :class:`~microflow.core.outcome.Halt`.
    """

    kind = EntityKind.STEP
    event_names = StepEventName
    status_events = {
        Status.WAITING: StepEventName.STEP_WAITING,
        Status.PENDING: StepEventName.STEP_PENDING,
        Status.RUNNING: StepEventName.STEP_RUNNING,
        Status.COMPLETE: StepEventName.STEP_COMPLETE,
        Status.FAILED: StepEventName.STEP_FAILED,
    }

    step_type: ClassVar[str] = "action"
    # Steps that wait for a point in time are marked pending, not running, when dequeued.
    defers_start: ClassVar[bool] = False

    def __init__(
        self,
        executable: Any = None,
        *,
        name: str | None = None,
        log_suppress: bool | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        super().__init__(name=name, log_suppress=log_suppress, broadcaster=broadcaster)
        self.executable = noop if executable is None else executable
        self.errors: list[BaseException] = []
        self.result: Any = None
        self.retry_results: list[Any] = []
        self.outcome: Outcome | None = None

    @property
    def executable(self) -> Executable:
        return self._executable

    @executable.setter
    def executable(self, value: Any) -> None:
        self._executable = Executable.of(value)

    @property
    def executable_kind(self) -> ExecutableKind:
        return self._executable.kind

    async def execute(self, context: ExecutionContext | None = None) -> Step:
        """Run the wrapped executable once.

        Args:
            context: The caller's execution context. A standalone step gets a
                fresh one with the configured failure policy, running against
                the wrapped workflow's own state when it wraps one.

        Returns:
            This step, carrying ``result``, ``outcome`` and ``errors``.
        """

        if context is None:
            context = self._standalone_context()

        self.mark_as_running()
        try:
            outcome = await self._executable.run(context)
        except Exception as error:
            self._record_failure(error)
            if context.exit_on_failure:
                raise
            return self

        if isinstance(outcome, Halt):
            # A nested step already captured (and swallowed) this failure.
            self._record_failure(outcome.error)
            return self

        self.outcome = outcome
        self.result = outcome.result if isinstance(outcome, Value) else outcome
        if not self.is_terminal:
            self.mark_as_complete()
        return self

    def _standalone_context(self) -> ExecutionContext:
        # A wrapped workflow keeps its own state when nobody hands one in.
        target = self._executable
        while target.kind is ExecutableKind.STEP:
            target = target.target.executable
        state = target.target.state if target.kind is ExecutableKind.WORKFLOW else State()
        return ExecutionContext(state=state, exit_on_failure=get_settings().exit_on_failure)

    def _record_failure(self, error: BaseException) -> None:
        self.errors.append(error)
        self.outcome = Halt(error)
        self.result = None
        self.mark_as_failed(error)
