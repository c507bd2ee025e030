"""Reporter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from trialkit.models.result import RunResult, UnitReport
    from trialkit.models.run import RunEnvironment
    from trialkit.planning import Plan


class Reporter(ABC):
    """Receives run events from the runner.

    Hooks are awaited in order for every reporter; ``on_trial_complete``
    fires as trials finish, so with concurrent execution the order follows
    completion, not declaration.
    """

    async def on_no_trials_found(self) -> None:
        """Called instead of the other hooks when nothing was selected."""

    @abstractmethod
    async def on_run_start(self, environment: RunEnvironment, plan: Plan) -> None: ...

    @abstractmethod
    async def on_trial_complete(self, report: UnitReport) -> None: ...

    @abstractmethod
    async def on_run_complete(self, run_result: RunResult) -> None: ...

    async def on_tracing_enabled(self, output_path: Path) -> None:
        """Called after the run when spans were written to ``output_path``."""
