"""Run configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from trialkit.errors import ConfigurationError


class RunConfig(BaseSettings):
    """Configuration for a trial run.

    Loads from environment variables automatically:
        TRIALKIT_PATHS, TRIALKIT_INCLUDE_TAGS, TRIALKIT_CONCURRENCY, ...

    Lists are comma separated (paths use ``os.pathsep``). The CLI loads
    ``.env`` first and passes its options as overrides.
    """

    # Discovery and selection
    paths: list[Path] = Field(default_factory=lambda: [Path(".")], description="Files or directories to collect")
    include_tags: list[str] = Field(default_factory=list, description="Run only trials carrying one of these tags")
    exclude_tags: list[str] = Field(default_factory=list, description="Skip trials carrying any of these tags")
    keyword: str | None = Field(default=None, description="Run only trials whose identifier or name contains this")

    # Execution
    concurrency: int = Field(default=0, ge=0, description="Maximum concurrent trial bodies (0 = default cap)")
    time_limit: float | None = Field(default=None, gt=0, description="Default time limit per invocation, in seconds")
    threaded: bool = Field(default=True, description="Run synchronous trial bodies in worker threads")

    # Output
    verbosity: int = Field(default=0, ge=-1, le=3, description="Console verbosity (-1 quiet, 0 default, >0 verbose)")
    json_report: Path | None = Field(default=None, description="Write the run result as JSON to this path")
    trace: bool = Field(default=False, description="Export OpenTelemetry spans for every invocation")
    trace_output: Path = Field(default=Path("traces.jsonl"), description="JSONL file receiving the spans")

    model_config = SettingsConfigDict(
        env_prefix="TRIALKIT_",
        env_ignore_empty=True,
        enable_decoding=False,
        extra="forbid",
    )

    @field_validator("include_tags", "exclude_tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [tag.strip() for tag in value.split(",") if tag.strip()]
        return value

    @field_validator("paths", mode="before")
    @classmethod
    def _split_paths(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part for part in value.split(os.pathsep) if part]
        return value

    @field_validator("keyword")
    @classmethod
    def _blank_keyword(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @classmethod
    def load(cls, **overrides: Any) -> RunConfig:
        """Load from the environment; ``None`` overrides are ignored.

        Raises:
            ConfigurationError: If a value fails validation.
        """
        values = {key: value for key, value in overrides.items() if value is not None}
        try:
            return cls(**values)
        except ValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e
