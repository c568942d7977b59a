"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Fail on any warnings from the code under test
- Unit tests: Allow warnings

It also provides FakeRedmine, an in-process stand-in for the Redmine REST API.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Self, override

import pytest

from redmine_issue_importer.exceptions import SourceNotFoundError
from redmine_issue_importer.memory import InMemoryTarget
from redmine_issue_importer.models import TargetProject, User

if TYPE_CHECKING:
    from collections.abc import Generator

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class IntegrationTestWarningHandler(logging.Handler):
    """Custom logging handler to capture warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        """Capture WARNING and above level logs."""
        _integration_test_warnings.setdefault(self.test_nodeid, []).append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Automatically fail integration tests if any WARNING level logs are emitted from the code under test.

    A clean import run is expected to report every per-record problem through
    the ImportResult, not through warnings.
    """
    is_integration_test = request.node.get_closest_marker("integration") is not None

    if not is_integration_test:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """
    Hook to check for warnings after test execution and mark test as failed if warnings were detected.
    """
    outcome = yield
    report = outcome.get_result()

    if call.when == "call" and report.outcome == "passed":
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]

            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(test_nodeid, None)


class FakeRedmine:
    """Serves canned Redmine documents; acts as both RedmineServer and RedmineClient.

    Collections are paginated the way Redmine does it, honouring the
    ``offset`` and ``limit`` query parameters.
    """

    base_url = "https://redmine.example.com"

    def __init__(self) -> None:
        self.collections: dict[str, tuple[str, list[dict[str, Any]], bool]] = {}
        self.documents: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, dict[str, Any] | None]] = []
        self.clients_opened = 0
        self.clients_closed = 0

    def add_collection(self, path: str, name: str, items: list[dict[str, Any]], *, paginated: bool = True) -> None:
        self.collections[path] = (name, items, paginated)

    def add_document(self, path: str, document: dict[str, Any]) -> None:
        self.documents[path] = document

    def add_journals(self, issue_id: int, journals: list[dict[str, Any]]) -> None:
        self.add_document(f"/issues/{issue_id}.json?include=journals", {"issue": {"id": issue_id, "journals": journals}})

    def add_user(self, user_id: int, mail: str | None) -> None:
        self.add_document(f"/users/{user_id}.json", {"user": {"id": user_id, "mail": mail}})

    # RedmineServer
    def new_client(self) -> Self:
        self.clients_opened += 1
        return self

    def api_endpoint(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    # RedmineClient
    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.clients_closed += 1

    def get_json(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        path = endpoint.removeprefix(self.base_url)
        self.requests.append((path, dict(params) if params is not None else None))

        if path in self.collections:
            name, items, paginated = self.collections[path]
            if not paginated:
                return {name: list(items)}
            offset = int((params or {}).get("offset", 0))
            limit = int((params or {}).get("limit", 25))
            return {name: items[offset : offset + limit], "total_count": len(items), "offset": offset, "limit": limit}

        if path in self.documents:
            return self.documents[path]

        msg = f"Redmine resource not found: {endpoint}"
        raise SourceNotFoundError(msg)

    def requests_to(self, path: str) -> list[dict[str, Any] | None]:
        return [params for requested, params in self.requests if requested == path]


@pytest.fixture
def fake_redmine() -> FakeRedmine:
    return FakeRedmine()


@pytest.fixture
def target_project() -> TargetProject:
    return TargetProject(name="acme", id=1)


@pytest.fixture
def target() -> InMemoryTarget:
    return InMemoryTarget(
        users=[
            User(name="jane", email="jane@example.com", full_name="Jane Doe"),
            User(name="bob", email="bob@example.com", full_name="Bob Smith"),
        ]
    )
