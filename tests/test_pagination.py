"""Tests for Redmine pagination."""

from __future__ import annotations

import math
import threading
from unittest.mock import Mock

import pytest

from redmine_issue_importer.exceptions import ImportCancelledError, SourceRequestError
from redmine_issue_importer.pagination import iter_pages, list_all


def _issues(count: int) -> list[dict]:
    return [{"id": i, "subject": f"Issue {i}"} for i in range(1, count + 1)]


@pytest.mark.unit
class TestIterPages:
    @pytest.mark.parametrize("total", [1, 24, 25, 26, 100, 101])
    def test_request_count_and_order(self, fake_redmine, total: int) -> None:
        fake_redmine.add_collection("/issues.json", "issues", _issues(total))

        pages = list(iter_pages(fake_redmine, "/issues.json", "issues", page_size=25))

        assert len(fake_redmine.requests) == math.ceil(total / 25)
        assert [issue["id"] for page in pages for issue in page] == list(range(1, total + 1))

    def test_offsets_advance_by_page_size(self, fake_redmine) -> None:
        fake_redmine.add_collection("/issues.json", "issues", _issues(7))

        _ = list(iter_pages(fake_redmine, "/issues.json", "issues", params={"sort": "id"}, page_size=3))

        params = fake_redmine.requests_to("/issues.json")
        assert [p["offset"] for p in params] == [0, 3, 6]
        assert all(p["limit"] == 3 and p["sort"] == "id" for p in params)

    def test_single_page_without_total_count(self, fake_redmine) -> None:
        fake_redmine.add_collection("/trackers.json", "trackers", [{"id": 1, "name": "Bug"}], paginated=False)

        pages = list(iter_pages(fake_redmine, "/trackers.json", "trackers", page_size=1))

        assert pages == [[{"id": 1, "name": "Bug"}]]
        assert len(fake_redmine.requests) == 1

    def test_empty_collection(self, fake_redmine) -> None:
        fake_redmine.add_collection("/issues.json", "issues", [])

        assert list(iter_pages(fake_redmine, "/issues.json", "issues")) == [[]]

    def test_short_page_stops_even_if_total_count_is_higher(self) -> None:
        client = Mock()
        client.get_json.return_value = {"issues": [{"id": 1}], "total_count": 50}

        pages = list(iter_pages(client, "/issues.json", "issues", page_size=25))

        assert pages == [[{"id": 1}]]
        assert client.get_json.call_count == 1

    def test_pages_are_fetched_lazily(self, fake_redmine) -> None:
        fake_redmine.add_collection("/issues.json", "issues", _issues(10))

        pages = iter_pages(fake_redmine, "/issues.json", "issues", page_size=5)
        assert fake_redmine.requests == []

        _ = next(pages)
        assert len(fake_redmine.requests) == 1

    def test_cancel_before_next_page(self, fake_redmine) -> None:
        fake_redmine.add_collection("/issues.json", "issues", _issues(10))
        cancel = threading.Event()

        pages = iter_pages(fake_redmine, "/issues.json", "issues", page_size=5, cancel=cancel)
        _ = next(pages)
        cancel.set()

        with pytest.raises(ImportCancelledError):
            _ = next(pages)
        assert len(fake_redmine.requests) == 1

    def test_request_errors_propagate(self) -> None:
        client = Mock()
        client.get_json.side_effect = SourceRequestError("connection refused")

        with pytest.raises(SourceRequestError):
            _ = list(iter_pages(client, "/issues.json", "issues"))


@pytest.mark.unit
class TestListAll:
    def test_collects_all_pages(self, fake_redmine) -> None:
        fake_redmine.add_collection("/projects/acme/versions.json", "versions", _issues(12))

        records = list_all(fake_redmine, "/projects/acme/versions.json", "versions", page_size=5)

        assert [r["id"] for r in records] == list(range(1, 13))
        assert len(fake_redmine.requests) == 3
