"""Test configuration and fixtures."""

from collections.abc import Iterator

import pytest

from microflow.config import MicroflowSettings, get_settings
from microflow.core.events import LifecycleEvent
from microflow.core.executable import ExecutionContext
from microflow.core.state import State


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep every test on default settings, whatever the environment holds."""
    for name in (
        "LOG_LEVEL",
        "LOG_JSON",
        "LOG_SUPPRESS",
        "EXIT_ON_FAILURE",
        "THROW_ON_EMPTY",
        "MAX_ITERATIONS",
        "DELAY_POLL_INTERVAL",
    ):
        monkeypatch.delenv(f"MICROFLOW_{name}", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> MicroflowSettings:
    """Provide settings isolated from the environment."""
    return MicroflowSettings(_env_file=None)


@pytest.fixture
def state() -> State:
    """Provide a small shared state."""
    return State({"user": {"name": "Ada", "roles": ["admin", "dev"]}, "count": 0})


@pytest.fixture
def context(state: State) -> ExecutionContext:
    """Provide an execution context over the shared state."""
    return ExecutionContext(state=state)


class Recorder:
    """Collects lifecycle events for assertions."""

    def __init__(self) -> None:
        self.events: list[LifecycleEvent] = []

    def __call__(self, event: LifecycleEvent) -> None:
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [event.name for event in self.events]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
