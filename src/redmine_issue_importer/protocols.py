"""Protocols for the collaborators the importer calls into.

The import pipeline reads from Redmine through ``redmine_utils.RedmineClient``
and writes into the target tracker only through a TargetSystem. This keeps
every target-specific concern (database access, user directory, schema
storage) out of the transformation logic and lets tests and dry runs use an
in-memory implementation (see ``memory.InMemoryTarget``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import IssueChange, IssueComment, IssueSetting, Milestone, TargetIssue, TargetProject, User


class CancelSignal(Protocol):
    """Anything that reports an external interruption, e.g. ``threading.Event``."""

    def is_set(self) -> bool: ...


class TargetSystem(Protocol):
    """Protocol for persisting imported data into the target tracker.

    Persistence calls are only made by committing runs. A dry run only uses
    the read side (settings, milestones, users, issue numbers).
    """

    def get_issue_setting(self) -> IssueSetting:
        """Return the global issue settings (states and field schema)."""
        ...

    def save_issue_setting(self, setting: IssueSetting) -> None:
        """Store the global issue settings, e.g. after adding a field spec."""
        ...

    def get_milestones(self, project: TargetProject) -> list[Milestone]:
        """Return the milestones that already exist in the project."""
        ...

    def save_milestone(self, milestone: Milestone) -> None:
        ...

    def next_issue_number(self, project: TargetProject) -> int:
        """Reserve and return the next free issue number of the project."""
        ...

    def find_user_by_email(self, email: str) -> User | None:
        ...

    def unknown_user(self) -> User:
        """Return the placeholder user used for unattributable records."""
        ...

    def save_issue(self, issue: TargetIssue) -> None:
        ...

    def persist_field(self, issue: TargetIssue, name: str, value: Any) -> None:  # noqa: ANN401
        ...

    def persist_schedule(self, issue: TargetIssue, milestone: Milestone) -> None:
        """Associate the issue with a milestone."""
        ...

    def persist_comment(self, issue: TargetIssue, comment: IssueComment) -> None:
        ...

    def persist_change(self, issue: TargetIssue, change: IssueChange) -> None:
        ...
