"""Replay Redmine journals into target comments and change records.

A Redmine journal entry is one edit event::

    {
        "user": {"id": 5, "name": "Jane Doe"},
        "created_on": "2024-01-15T10:30:45Z",
        "notes": "Fixed in r123",
        "details": [
            {"property": "attr", "name": "fixed_version_id", "old_value": "5", "new_value": "7"}
        ]
    }

Entries are replayed in the order Redmine returns them, so the comments and
changes of an issue read forward in time.
"""

from __future__ import annotations

import html
import logging
from typing import TYPE_CHECKING, Any

from .issue_builder import parse_timestamp
from .models import (
    FieldChange,
    FieldInput,
    IssueChange,
    IssueComment,
    MilestoneAdd,
    MilestoneChange,
    MilestoneRemove,
    TitleChange,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import ChangeData, ImportResult, TargetIssue
    from .users import IdentityResolver

logger: logging.Logger = logging.getLogger(__name__)


def milestone_change_data(old_version: str | None, new_version: str | None) -> ChangeData | None:
    """Pick the milestone change variant from which sides are known."""
    if old_version is not None and new_version is not None:
        return MilestoneChange((old_version,), (new_version,))
    if new_version is not None:
        return MilestoneAdd(new_version)
    if old_version is not None:
        return MilestoneRemove(old_version)
    return None


def _add_to_fields(field_name: str, value: str | None, fields: dict[str, FieldInput]) -> None:
    if value is not None:
        fields[field_name] = FieldInput(field_name, "enumeration", (value,))


class HistoryReplayer:
    """Turns the journals of one Redmine project's issues into comments and changes.

    Args:
        identities: Resolver used to attribute every journal entry
        result: Run result collecting unresolved logins and notes
        category_names: Redmine category id -> category name
        version_names: Redmine version id -> version name
        category_field: Target field holding the category
        api_endpoint: Builds absolute Redmine URLs, used in notes
    """

    def __init__(
        self,
        *,
        identities: IdentityResolver,
        result: ImportResult,
        category_names: dict[str, str],
        version_names: dict[str, str],
        category_field: str,
        api_endpoint: Callable[[str], str],
    ) -> None:
        self._identities = identities
        self._result = result
        self._category_names = category_names
        self._version_names = version_names
        self._category_field = category_field
        self._api_endpoint = api_endpoint

    def replay(
        self,
        issue: TargetIssue,
        journals: list[dict[str, Any]],
        *,
        source_number: int,
        journal_endpoint: str,
    ) -> None:
        """Append the comments and changes of every journal entry to the issue."""
        for journal in journals:
            journal_user = journal.get("user") or {}
            user_id = journal_user.get("id")
            user = self._identities.attribute(
                str(user_id) if user_id is not None else None, journal_user.get("name", ""), self._result
            )
            created_on = parse_timestamp(journal["created_on"])

            notes = journal.get("notes") or ""
            if notes:
                issue.comments.append(IssueComment(content=notes, user=user, date=created_on))
                issue.comment_count = len(issue.comments)

            old_fields: dict[str, FieldInput] = {}
            new_fields: dict[str, FieldInput] = {}

            for detail in journal.get("details") or []:
                data = self._replay_detail(
                    detail, old_fields, new_fields, source_number=source_number, journal_endpoint=journal_endpoint
                )
                if data is not None:
                    issue.changes.append(IssueChange(date=created_on, user=user, data=data))

            if old_fields or new_fields:
                issue.changes.append(IssueChange(date=created_on, user=user, data=FieldChange(old_fields, new_fields)))

    def _replay_detail(
        self,
        detail: dict[str, Any],
        old_fields: dict[str, FieldInput],
        new_fields: dict[str, FieldInput],
        *,
        source_number: int,
        journal_endpoint: str,
    ) -> ChangeData | None:
        prop = detail.get("property", "")
        name = detail.get("name", "")
        old_value: str | None = detail.get("old_value")
        new_value: str | None = detail.get("new_value")

        if prop != "attr":
            self._add_unknown_note("property", prop, source_number, journal_endpoint)
            return None

        match name:
            case "subject":
                return TitleChange(old_value, new_value)
            case "description":
                # Target issues keep no description history
                return None
            case "category_id":
                _add_to_fields(self._category_field, self._category_names.get(old_value or ""), old_fields)
                _add_to_fields(self._category_field, self._category_names.get(new_value or ""), new_fields)
                return None
            case "fixed_version_id":
                return milestone_change_data(
                    self._version_names.get(old_value or ""), self._version_names.get(new_value or "")
                )
            case _:
                self._add_unknown_note("property name", name, source_number, journal_endpoint)
                return None

    def _add_unknown_note(self, what: str, value: str, source_number: int, journal_endpoint: str) -> None:
        logger.debug(f"Unknown history {what} '{value}' in Redmine issue #{source_number}")
        issue_url = self._api_endpoint(f"/issues/{source_number}")
        self._result.add_note(
            f"Unknown history {what} '{html.escape(value)}' in Redmine issue "
            f'<a href="{issue_url}">#{source_number}</a> (<a href="{journal_endpoint}">JSON</a>)'
        )
