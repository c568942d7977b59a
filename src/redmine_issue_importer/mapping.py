"""
Mapping of Redmine statuses, trackers and priorities onto the target schema.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from . import pagination
from .exceptions import MappingConfigError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from .models import FieldSpec, IssueSetting
    from .redmine_utils import RedmineClient

logger: logging.Logger = logging.getLogger(__name__)

FIELD_SEPARATOR: Final[str] = "::"

type MappingPairs = tuple[tuple[str, str | None], ...]


class MappingKind(StrEnum):
    STATUS = "status"
    TRACKER = "tracker"
    PRIORITY = "priority"


@dataclass(frozen=True)
class ImportOption:
    """Operator choices for one import run.

    Each mapping is an ordered tuple of (Redmine value, target) pairs. Status
    targets are state names; tracker and priority targets are "Field::Value".
    A target of None leaves the Redmine value unmapped.
    """

    status_mappings: MappingPairs = ()
    tracker_mappings: MappingPairs = ()
    priority_mappings: MappingPairs = ()
    assignees_field: str = "Assignees"
    category_field: str = "Category"
    preserve_numbers: bool = False
    dry_run: bool = True

    def mappings(self, kind: MappingKind) -> MappingPairs:
        match kind:
            case MappingKind.STATUS:
                return self.status_mappings
            case MappingKind.TRACKER:
                return self.tracker_mappings
            case MappingKind.PRIORITY:
                return self.priority_mappings


def parse_mapping_patterns(patterns: Sequence[str] | None) -> dict[str, str]:
    """Parse "source:target" patterns given on the command line.

    Only the first colon separates source from target, so tracker and
    priority targets keep their "Field::Value" form ("Bug:Type::Defect").
    """
    overrides: dict[str, str] = {}
    for pattern in patterns or []:
        if ":" not in pattern:
            msg = f"Invalid pattern format: {pattern}"
            raise ValueError(msg)
        source, target = pattern.split(":", 1)
        overrides[source] = target
    return overrides


def split_field_value(target: str) -> tuple[str, str]:
    """Split "Field::Value" into its field name and value."""
    name, _, value = target.partition(FIELD_SEPARATOR)
    return name, value


class ValueMapping:
    """Default-then-override mapping table for one kind of Redmine value.

    For every live Redmine value the target is, in order: the operator's
    override, the value itself when it is already a legal target choice,
    the built-in default when that is a legal target choice, else None.
    """

    def __init__(self, kind: MappingKind, defaults: Mapping[str, str], qualify: Callable[[str], str]) -> None:
        self.kind: MappingKind = kind
        self.defaults: dict[str, str] = dict(defaults)
        self._qualify = qualify

    def default_for(self, source_value: str, choices: Sequence[str]) -> str | None:
        own_choice = self._qualify(source_value)
        if own_choice in choices:
            return own_choice
        default = self.defaults.get(source_value)
        if default is not None and default in choices:
            return default
        return None

    def build(
        self,
        source_values: Sequence[str],
        choices: Sequence[str],
        overrides: Mapping[str, str] | None = None,
    ) -> MappingPairs:
        overrides = overrides or {}
        pairs: list[tuple[str, str | None]] = []
        for value in source_values:
            target = overrides.get(value) or self.default_for(value, choices)
            if target is None:
                logger.info(f"No default {self.kind} mapping for Redmine value '{value}'")
            pairs.append((value, target))
        # Overrides for values Redmine did not list are kept as given
        pairs.extend((value, target) for value, target in overrides.items() if value not in source_values)
        return tuple(pairs)


STATUS_MAPPING: Final[ValueMapping] = ValueMapping(
    MappingKind.STATUS,
    {
        "New": "Open",
        "In Progress": "Open",
        "Resolved": "Open",
        "Feedback": "Open",
        "Closed": "Closed",
        "Rejected": "Closed",
    },
    qualify=lambda status: status,
)

TRACKER_MAPPING: Final[ValueMapping] = ValueMapping(
    MappingKind.TRACKER,
    {
        "Bug": "Type::Bug",
        "Feature": "Type::New Feature",
        "Task": "Type::Task",
    },
    qualify=lambda tracker: f"Type{FIELD_SEPARATOR}{tracker}",
)

PRIORITY_MAPPING: Final[ValueMapping] = ValueMapping(
    MappingKind.PRIORITY,
    {
        "Low": "Priority::Minor",
        "Normal": "Priority::Normal",
        "High": "Priority::Major",
        "Urgent": "Priority::Critical",
        "Immediate": "Priority::Critical",
    },
    qualify=lambda priority: f"Priority{FIELD_SEPARATOR}{priority}",
)


def _names(records: list[dict]) -> list[str]:
    return list(dict.fromkeys(record["name"] for record in records))


def build_import_option(
    client: RedmineClient,
    setting: IssueSetting,
    base: ImportOption | None = None,
    *,
    status_overrides: Mapping[str, str] | None = None,
    tracker_overrides: Mapping[str, str] | None = None,
    priority_overrides: Mapping[str, str] | None = None,
) -> ImportOption:
    """Build the mapping tables from Redmine's live statuses, trackers and priorities.

    Args:
        client: Redmine client handle
        setting: Target issue settings providing the legal states and field choices
        base: Option carrying the non-mapping choices (fields, flags); defaults apply otherwise
        status_overrides: Operator choices, Redmine status -> state
        tracker_overrides: Operator choices, Redmine tracker -> "Field::Value"
        priority_overrides: Operator choices, Redmine priority -> "Field::Value"

    Returns:
        A frozen ImportOption with one entry per live Redmine value
    """
    statuses = _names(pagination.list_all(client, "/issue_statuses.json", "issue_statuses"))
    trackers = _names(pagination.list_all(client, "/trackers.json", "trackers"))
    priorities = _names(pagination.list_all(client, "/enumerations/issue_priorities.json", "issue_priorities"))

    field_choices = setting.field_choices()
    return replace(
        base or ImportOption(),
        status_mappings=STATUS_MAPPING.build(statuses, setting.states, status_overrides),
        tracker_mappings=TRACKER_MAPPING.build(trackers, field_choices, tracker_overrides),
        priority_mappings=PRIORITY_MAPPING.build(priorities, field_choices, priority_overrides),
    )


@dataclass(frozen=True)
class FieldAssignment:
    """A resolved target field and the value to put into it."""

    field_spec: FieldSpec
    value: str


class MappingResolver:
    """Resolves Redmine values through the compiled mapping tables of an ImportOption.

    Compiling fails fast: a mapping that names a state or field missing from
    the target settings is a configuration error for the whole run.
    """

    def __init__(self, option: ImportOption, setting: IssueSetting) -> None:
        self.initial_state: str = setting.initial_state
        self._states: dict[str, str] = {}
        for status, state in option.mappings(MappingKind.STATUS):
            if state is None:
                continue
            if state not in setting.states:
                msg = f"No issue state found: {state}"
                raise MappingConfigError(msg)
            self._states[status] = state

        self._fields: dict[MappingKind, dict[str, FieldAssignment]] = {
            kind: self._compile(option.mappings(kind), setting) for kind in (MappingKind.TRACKER, MappingKind.PRIORITY)
        }

    @staticmethod
    def _compile(pairs: MappingPairs, setting: IssueSetting) -> dict[str, FieldAssignment]:
        table: dict[str, FieldAssignment] = {}
        for source_value, target in pairs:
            if target is None:
                continue
            field_name, field_value = split_field_value(target)
            field_spec = setting.get_field_spec(field_name)
            if field_spec is None:
                msg = f"No field spec found: {field_name}"
                raise MappingConfigError(msg)
            table[source_value] = FieldAssignment(field_spec, field_value)
        return table

    def resolve_state(self, status: str) -> str:
        """Map a Redmine status to a state, falling back to the initial state."""
        return self._states.get(status, self.initial_state)

    def resolve(self, kind: MappingKind, source_value: str) -> FieldAssignment | None:
        """Map a Redmine tracker or priority to a field assignment; None if unmapped."""
        if kind is MappingKind.STATUS:
            msg = "Statuses map to states, use resolve_state()"
            raise ValueError(msg)
        return self._fields[kind].get(source_value)
