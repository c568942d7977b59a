"""Data models for the target side of a Redmine import.

These models represent the issues, milestones and history built by the
importer before they are handed to the TargetSystem for persistence. They
mirror a field-based tracker: an issue has a lifecycle state plus a set of
named custom fields declared in the global field schema.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, assert_never

if TYPE_CHECKING:
    import datetime as dt


@dataclass(frozen=True)
class User:
    """A user of the target system."""

    name: str
    email: str | None = None
    full_name: str | None = None


@dataclass
class Choice:
    value: str
    color: str = "#0d87e9"


@dataclass
class FieldSpec:
    """A custom issue field declared in the target field schema."""

    name: str
    allow_empty: bool = True
    name_of_empty_value: str | None = None


@dataclass
class ChoiceField(FieldSpec):
    """A field whose legal values are a fixed list of choices."""

    choices: list[Choice] = field(default_factory=list)

    @property
    def choice_values(self) -> list[str]:
        return [choice.value for choice in self.choices]


@dataclass
class UserChoiceField(FieldSpec):
    """A field holding one or more user names (e.g. "Assignees")."""


@dataclass
class IssueSetting:
    """The target system's global issue settings: states and field schema.

    The first state is the initial state of newly created issues.
    """

    states: list[str]
    field_specs: list[FieldSpec] = field(default_factory=list)

    @property
    def initial_state(self) -> str:
        return self.states[0]

    def get_field_spec(self, name: str) -> FieldSpec | None:
        for spec in self.field_specs:
            if spec.name == name:
                return spec
        return None

    def field_choices(self) -> list[str]:
        """Return every legal "Field::Value" pair of the choice fields."""
        return [
            f"{spec.name}::{value}"
            for spec in self.field_specs
            if isinstance(spec, ChoiceField)
            for value in spec.choice_values
        ]


@dataclass
class TargetProject:
    """The project receiving the imported issues."""

    name: str
    id: int | None = None


@dataclass
class Milestone:
    """A milestone built from a Redmine version."""

    name: str
    project: TargetProject | None = None
    description: str | None = None
    due_date: dt.date | None = None
    closed: bool = False


@dataclass
class LastUpdate:
    """Summary of the latest activity on an issue."""

    activity: str
    user: User
    date: dt.datetime


@dataclass
class IssueComment:
    content: str
    user: User
    date: dt.datetime


@dataclass(frozen=True)
class FieldInput:
    """A field value as recorded in change history."""

    name: str
    type: Literal["enumeration"]
    values: tuple[str, ...]


@dataclass(frozen=True)
class TitleChange:
    old_title: str | None
    new_title: str | None


@dataclass(frozen=True)
class MilestoneAdd:
    milestone: str


@dataclass(frozen=True)
class MilestoneRemove:
    milestone: str


@dataclass(frozen=True)
class MilestoneChange:
    old_milestones: tuple[str, ...]
    new_milestones: tuple[str, ...]


@dataclass(frozen=True)
class FieldChange:
    old_fields: dict[str, FieldInput]
    new_fields: dict[str, FieldInput]


type ChangeData = TitleChange | MilestoneAdd | MilestoneRemove | MilestoneChange | FieldChange


def describe_change(data: ChangeData) -> str:
    """Render a change payload as a one-line, human-readable summary."""
    match data:
        case TitleChange(old_title=old, new_title=new):
            return f"changed title from {old!r} to {new!r}"
        case MilestoneAdd(milestone=milestone):
            return f"added milestone {milestone!r}"
        case MilestoneRemove(milestone=milestone):
            return f"removed milestone {milestone!r}"
        case MilestoneChange(old_milestones=old, new_milestones=new):
            return f"changed milestone from {', '.join(old)} to {', '.join(new)}"
        case FieldChange(old_fields=old_fields, new_fields=new_fields):
            names = list(dict.fromkeys([*old_fields, *new_fields]))
            parts = []
            for name in names:
                old_value = ", ".join(old_fields[name].values) if name in old_fields else ""
                new_value = ", ".join(new_fields[name].values) if name in new_fields else ""
                parts.append(f"{name}: {old_value!r} -> {new_value!r}")
            return "changed fields " + "; ".join(parts)
        case _:
            assert_never(data)


@dataclass
class IssueChange:
    """One dated, attributed change in an issue's history."""

    date: dt.datetime
    user: User
    data: ChangeData


@dataclass
class TargetIssue:
    """An issue under construction for the target system."""

    title: str
    project: TargetProject
    number: int = 0
    description: str | None = None
    state: str = ""
    submitter: User | None = None
    submit_date: dt.datetime | None = None
    last_update: LastUpdate | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    schedules: list[Milestone] = field(default_factory=list)
    comments: list[IssueComment] = field(default_factory=list)
    comment_count: int = 0
    changes: list[IssueChange] = field(default_factory=list)

    def set_field_value(self, name: str, value: Any) -> None:  # noqa: ANN401 - field values are schema dependent
        self.fields[name] = value


@dataclass
class ImportResult:
    """Outcome of one import run, for operator review."""

    unresolved_logins: set[str] = field(default_factory=set)
    """Users that could not be mapped, as "displayName:login"."""
    unresolved_milestones: set[str] = field(default_factory=set)
    unmapped_trackers: set[str] = field(default_factory=set)
    unmapped_priorities: set[str] = field(default_factory=set)
    notes: list[str] = field(default_factory=list)
    """Free-text (HTML) notes, in the order they were first raised."""
    issues_imported: bool = False
    cancelled: bool = False
    milestones_created: int = 0
    issues: list[TargetIssue] = field(default_factory=list)
    number_mapping: dict[int, int] = field(default_factory=dict)

    def add_note(self, note: str) -> None:
        if note not in self.notes:
            self.notes.append(note)

    def record_unresolved_login(self, display_name: str, login: str) -> None:
        self.unresolved_logins.add(f"{display_name}:{login}")

    def merge_diagnostics(self, other: ImportResult) -> None:
        """Take over the unresolved values and notes collected by another result."""
        self.unresolved_logins |= other.unresolved_logins
        self.unresolved_milestones |= other.unresolved_milestones
        self.unmapped_trackers |= other.unmapped_trackers
        self.unmapped_priorities |= other.unmapped_priorities
        for note in other.notes:
            self.add_note(note)
