"""In-memory TargetSystem.

Holds everything in plain Python containers. The CLI uses it for dry runs,
where only the read side is needed, and tests use it to inspect what a
committing run would have persisted.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .models import Choice, ChoiceField, IssueSetting, User, UserChoiceField, describe_change

if TYPE_CHECKING:
    from .models import IssueChange, IssueComment, Milestone, TargetIssue, TargetProject

logger: logging.Logger = logging.getLogger(__name__)

UNKNOWN_USER = User(name="unknown", full_name="Unknown")


def default_issue_setting() -> IssueSetting:
    """Issue settings of a freshly installed target tracker."""
    return IssueSetting(
        states=["Open", "Closed"],
        field_specs=[
            ChoiceField(
                name="Type",
                allow_empty=False,
                choices=[Choice(v) for v in ("New Feature", "Improvement", "Bug", "Task", "Build Failure")],
            ),
            ChoiceField(
                name="Priority",
                allow_empty=False,
                choices=[Choice(v) for v in ("Minor", "Normal", "Major", "Critical")],
            ),
            UserChoiceField(name="Assignees", name_of_empty_value="Not assigned"),
        ],
    )


@dataclass
class PersistedIssue:
    """Everything stored for one issue, in the order it was persisted."""

    issue: TargetIssue
    fields: dict[str, Any] = field(default_factory=dict)
    milestones: list[str] = field(default_factory=list)
    comments: list[IssueComment] = field(default_factory=list)
    changes: list[IssueChange] = field(default_factory=list)


class InMemoryTarget:
    """A TargetSystem keeping issues, milestones, users and settings in memory."""

    def __init__(
        self,
        setting: IssueSetting | None = None,
        users: list[User] | None = None,
        milestones: list[Milestone] | None = None,
        existing_issue_numbers: list[int] | None = None,
    ) -> None:
        self.setting: IssueSetting = setting or default_issue_setting()
        self.users: list[User] = list(users or [])
        self.milestones: list[Milestone] = list(milestones or [])
        self.saved_milestones: list[Milestone] = []
        self.issues: dict[int, PersistedIssue] = {}
        self.setting_saves: int = 0
        self._last_number: int = max(existing_issue_numbers or [0])

    @property
    def persisted_count(self) -> int:
        """Number of persisted entities of any kind."""
        entities = len(self.issues) + self.setting_saves
        entities += len(self.saved_milestones)
        for stored in self.issues.values():
            entities += len(stored.fields) + len(stored.milestones) + len(stored.comments) + len(stored.changes)
        return entities

    def get_issue_setting(self) -> IssueSetting:
        # Callers get a copy, changes only count once saved
        return copy.deepcopy(self.setting)

    def save_issue_setting(self, setting: IssueSetting) -> None:
        self.setting = copy.deepcopy(setting)
        self.setting_saves += 1

    def get_milestones(self, project: TargetProject) -> list[Milestone]:
        return [m for m in self.milestones if m.project is None or m.project.name == project.name]

    def save_milestone(self, milestone: Milestone) -> None:
        self.saved_milestones.append(milestone)
        self.milestones.append(milestone)

    def next_issue_number(self, project: TargetProject) -> int:  # noqa: ARG002 - one numbering scope
        self._last_number += 1
        return self._last_number

    def find_user_by_email(self, email: str) -> User | None:
        return next((user for user in self.users if user.email == email), None)

    def unknown_user(self) -> User:
        return UNKNOWN_USER

    def save_issue(self, issue: TargetIssue) -> None:
        self.issues[issue.number] = PersistedIssue(issue)

    def persist_field(self, issue: TargetIssue, name: str, value: Any) -> None:  # noqa: ANN401
        self.issues[issue.number].fields[name] = value

    def persist_schedule(self, issue: TargetIssue, milestone: Milestone) -> None:
        self.issues[issue.number].milestones.append(milestone.name)

    def persist_comment(self, issue: TargetIssue, comment: IssueComment) -> None:
        self.issues[issue.number].comments.append(comment)

    def persist_change(self, issue: TargetIssue, change: IssueChange) -> None:
        logger.debug(f"Issue #{issue.number}: {change.user.name} {describe_change(change.data)}")
        self.issues[issue.number].changes.append(change)
