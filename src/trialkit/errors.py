"""Configuration errors and test outcome control flow."""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from trialkit.models.result import Issue


class ConfigurationError(Exception):
    """A declaration is malformed; raised at registration, before anything runs."""


class DuplicateIdentifierError(ConfigurationError):
    """Two units were registered under the same identifier."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Duplicate test identifier: {identifier!r}")


class MalformedArgumentsError(ConfigurationError):
    """An argument source cannot be expanded for its test body."""


class RequireFailure(BaseException):
    """Abort the current invocation.

    Derives from ``BaseException`` so that ``except Exception`` blocks inside
    a test body do not swallow it. The issue has already been recorded by the
    time this is raised.
    """

    def __init__(self, issue: Issue | None = None) -> None:
        self.issue = issue
        super().__init__(issue.message if issue else "")


class AssertionFailure(AssertionError):
    """A soft check failed while no invocation was active to record it."""
