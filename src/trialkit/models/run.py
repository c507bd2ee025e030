"""Run environment metadata."""

from __future__ import annotations

import os
import platform
import socket
import subprocess
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from trialkit.version import __version__


@dataclass
class RunEnvironment:
    """Metadata about the environment where trials were executed."""

    run_id: UUID = field(default_factory=uuid4)
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    commit_hash: str | None = None
    branch: str | None = None
    dirty: bool | None = None

    python_version: str = field(default_factory=lambda: sys.version.split()[0])
    platform: str = field(default_factory=platform.platform)
    hostname: str = field(default_factory=socket.gethostname)
    working_directory: str = field(default_factory=os.getcwd)
    trialkit_version: str = __version__

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "commit_hash": self.commit_hash,
            "branch": self.branch,
            "dirty": self.dirty,
            "python_version": self.python_version,
            "platform": self.platform,
            "hostname": self.hostname,
            "working_directory": self.working_directory,
            "trialkit_version": self.trialkit_version,
        }


def _git(*args: str) -> str:
    return subprocess.run(
        ["git", *args],
        capture_output=True,
        text=True,
        check=True,
        timeout=1,
    ).stdout.strip()


def _get_git_info() -> tuple[str | None, str | None, bool | None]:
    """Capture git metadata if the working directory is a repository."""
    try:
        _git("rev-parse", "--is-inside-work-tree")
        return _git("rev-parse", "HEAD"), _git("rev-parse", "--abbrev-ref", "HEAD"), bool(_git("status", "--porcelain"))
    except (subprocess.SubprocessError, FileNotFoundError):
        return None, None, None


def capture_environment() -> RunEnvironment:
    """Capture current environment metadata."""
    commit, branch, dirty = _get_git_info()
    return RunEnvironment(commit_hash=commit, branch=branch, dirty=dirty)
