"""Runtime configuration for micro-flow.

Configuration is loaded from:
- environment variables prefixed with ``MICROFLOW_``
- and a local `.env` file (if present)

Every constructor default that callers leave unset (loop ceilings, failure
policy, log suppression) is read from these settings.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MicroflowSettings(BaseSettings):
    """Settings for workflow execution.

    Environment variables:
    - MICROFLOW_LOG_LEVEL
    - MICROFLOW_LOG_JSON
    - MICROFLOW_LOG_SUPPRESS
    - MICROFLOW_EXIT_ON_FAILURE
    - MICROFLOW_THROW_ON_EMPTY
    - MICROFLOW_MAX_ITERATIONS
    - MICROFLOW_DELAY_POLL_INTERVAL

    Notes:
        Tests can bypass the environment entirely via
        `MicroflowSettings(_env_file=None, max_iterations=5)`.
    """

    log_level: str = Field(
        default="INFO",
        description="Root logging level used by configure_logging",
    )
    log_json: bool = Field(
        default=True,
        description="Emit structured JSON log lines instead of plain text",
    )
    log_suppress: bool = Field(
        default=False,
        description="Silence per-step and per-workflow log lines (events are still emitted)",
    )

    exit_on_failure: bool = Field(
        default=False,
        description="Default failure policy for workflows and standalone steps",
    )
    throw_on_empty: bool = Field(
        default=False,
        description="Raise when executing a workflow that has no steps",
    )

    max_iterations: int = Field(
        default=1000,
        gt=0,
        description="Default iteration ceiling for loop steps",
    )
    delay_poll_interval: float = Field(
        default=1.0,
        gt=0.0,
        le=60.0,
        description="Longest single sleep (seconds) while a delay step waits for its fire time",
    )

    model_config = SettingsConfigDict(
        env_prefix="MICROFLOW_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> MicroflowSettings:
    """Return the process-wide settings, loaded once."""

    return MicroflowSettings()
