"""JSON reporter writing the complete run result to a file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from trialkit.reports.base import Reporter


if TYPE_CHECKING:
    from trialkit.models.result import RunResult, UnitReport
    from trialkit.models.run import RunEnvironment
    from trialkit.planning import Plan


logger = logging.getLogger(__name__)


class JsonReporter(Reporter):
    """Writes ``RunResult.to_dict()`` to ``output_path`` when the run completes."""

    def __init__(self, output_path: Path | str) -> None:
        self.output_path = Path(output_path)

    async def on_run_start(self, environment: RunEnvironment, plan: Plan) -> None:
        pass

    async def on_trial_complete(self, report: UnitReport) -> None:
        pass

    async def on_run_complete(self, run_result: RunResult) -> None:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        with self.output_path.open("w", encoding="utf-8") as f:
            json.dump(run_result.to_dict(), f, indent=2, default=str)
        logger.info("Wrote JSON report to %s", self.output_path)
