"""Build target issues from Redmine issue records."""

from __future__ import annotations

import datetime as dt
import html
import logging
from typing import TYPE_CHECKING, Any

from .mapping import MappingKind
from .models import LastUpdate, TargetIssue

if TYPE_CHECKING:
    from .history import HistoryReplayer
    from .mapping import ImportOption, MappingResolver
    from .models import ImportResult, IssueSetting, Milestone, TargetProject
    from .protocols import TargetSystem
    from .redmine_utils import RedmineClient
    from .users import IdentityResolver

logger: logging.Logger = logging.getLogger(__name__)

# Redmine timestamps carry no milliseconds, e.g. "2024-01-15T10:30:45Z"
REDMINE_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
REDMINE_DATE_FORMAT = "%Y-%m-%d"


def parse_timestamp(iso_timestamp: str) -> dt.datetime:
    """Parse a Redmine ISO 8601 timestamp into an aware datetime.

    Raises:
        ValueError: If the timestamp is not in "YYYY-MM-DDTHH:MM:SSZ" form
    """
    return dt.datetime.strptime(iso_timestamp, REDMINE_TIMESTAMP_FORMAT)


def parse_date(iso_date: str) -> dt.date:
    """Parse a Redmine "YYYY-MM-DD" date."""
    return dt.datetime.strptime(iso_date, REDMINE_DATE_FORMAT).date()  # noqa: DTZ007


def build_extra_info_table(extra_info: dict[str, str]) -> str:
    """Render unmapped attributes as a one-row markdown table.

    Example:
        {"Milestone": "v1.0", "Type": "Support"} renders as::

            |Milestone|Type|
            |---|---|
            |v1.0|Support|
    """
    header = "|" + "".join(f"{key}|" for key in extra_info)
    separator = "|" + "---|" * len(extra_info)
    row = "|" + "".join(f"{value}|" for value in extra_info.values())
    return f"{header}\n{separator}\n{row}"


def prepend_extra_info(description: str | None, extra_info: dict[str, str]) -> str | None:
    if not extra_info:
        return description
    table = build_extra_info_table(extra_info)
    return f"{table}\n\n{description}" if description is not None else table


class IssueTransformer:
    """Turns one Redmine issue record into a fully populated TargetIssue.

    Unmappable attributes never stop the import: they are collected into the
    run result and shown in an "extra info" table on top of the description.
    """

    def __init__(
        self,
        *,
        client: RedmineClient,
        target: TargetSystem,
        project: TargetProject,
        option: ImportOption,
        setting: IssueSetting,
        mappings: MappingResolver,
        identities: IdentityResolver,
        replayer: HistoryReplayer,
        milestones: dict[str, Milestone],
        number_mapping: dict[int, int],
        result: ImportResult,
    ) -> None:
        self._client = client
        self._target = target
        self._project = project
        self._option = option
        self._setting = setting
        self._mappings = mappings
        self._identities = identities
        self._replayer = replayer
        self._milestones = milestones
        self._number_mapping = number_mapping
        self._result = result

    def transform(self, record: dict[str, Any]) -> TargetIssue:
        extra_info: dict[str, str] = {}

        issue = TargetIssue(title=record["subject"], project=self._project, description=record.get("description"))
        for field_spec in self._setting.field_specs:
            issue.set_field_value(field_spec.name, None)

        old_number = int(record["id"])
        if self._option.dry_run or self._option.preserve_numbers:
            issue.number = old_number
        else:
            issue.number = self._target.next_issue_number(self._project)
        self._number_mapping[old_number] = issue.number

        issue.state = self._mappings.resolve_state(record["status"]["name"])

        # "Target version" -> milestone
        fixed_version = record.get("fixed_version")
        if fixed_version is not None:
            milestone_name = fixed_version["name"]
            milestone = self._milestones.get(milestone_name)
            if milestone is not None:
                issue.schedules.append(milestone)
            else:
                extra_info["Milestone"] = milestone_name
                self._result.unresolved_milestones.add(milestone_name)

        author = record["author"]
        issue.submitter = self._identities.attribute(str(author["id"]), author.get("name", ""), self._result)
        issue.submit_date = parse_timestamp(record["created_on"])
        issue.last_update = LastUpdate(activity="Opened", user=issue.submitter, date=issue.submit_date)

        tracker = record.get("tracker")
        if tracker is not None:
            self._map_field(issue, MappingKind.TRACKER, tracker["name"], "Type", extra_info)

        priority = record.get("priority")
        if priority is not None:
            self._map_field(issue, MappingKind.PRIORITY, priority["name"], "Priority", extra_info)

        assignee = record.get("assigned_to")
        if assignee is not None:
            assignee_login = str(assignee["id"])
            user = self._identities.resolve(assignee_login)
            if user is not None:
                issue.set_field_value(self._option.assignees_field, user.name)
            else:
                self._result.record_unresolved_login(assignee.get("name", ""), assignee_login)

        category = record.get("category")
        issue.set_field_value(self._option.category_field, category["name"] if category is not None else None)

        journal_endpoint = self._client.api_endpoint(f"/issues/{old_number}.json?include=journals")
        journals = self._client.get_json(journal_endpoint)["issue"].get("journals") or []
        self._replayer.replay(issue, journals, source_number=old_number, journal_endpoint=journal_endpoint)

        issue.description = prepend_extra_info(issue.description, extra_info)
        logger.debug(f"Transformed Redmine issue #{old_number} into issue #{issue.number}: {issue.title}")
        return issue

    def _map_field(
        self, issue: TargetIssue, kind: MappingKind, source_value: str, label: str, extra_info: dict[str, str]
    ) -> None:
        assignment = self._mappings.resolve(kind, source_value)
        if assignment is not None:
            issue.set_field_value(assignment.field_spec.name, assignment.value)
            return

        extra_info[label] = html.escape(source_value)
        if kind is MappingKind.TRACKER:
            self._result.unmapped_trackers.add(source_value)
        else:
            self._result.unmapped_priorities.add(source_value)
        logger.info(f"Unmapped Redmine {kind} '{source_value}' on issue #{issue.number}")
