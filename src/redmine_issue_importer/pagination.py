"""Offset-based pagination over Redmine collection endpoints.

Redmine wraps collections in an envelope like::

    {"issues": [...], "total_count": 142, "offset": 0, "limit": 100}

Pages are requested one after another and handed out as they arrive, so a
caller iterating the pages never has more than one page in flight.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from .exceptions import ImportCancelledError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .protocols import CancelSignal
    from .redmine_utils import RedmineClient

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE: Final[int] = 100


def check_cancelled(cancel: CancelSignal | None) -> None:
    """Raise ImportCancelledError if the cancellation signal is set."""
    if cancel is not None and cancel.is_set():
        msg = "Import cancelled"
        raise ImportCancelledError(msg)


def iter_pages(
    client: RedmineClient,
    endpoint: str,
    collection: str,
    *,
    params: dict[str, Any] | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    cancel: CancelSignal | None = None,
) -> Iterator[list[dict[str, Any]]]:
    """Yield the pages of a Redmine collection in source order.

    Args:
        client: Redmine client handle
        endpoint: API path of the collection (e.g. "/issues.json")
        collection: Name of the array inside the JSON envelope (e.g. "issues")
        params: Extra query parameters sent with every page request
        page_size: Requested number of items per page
        cancel: Optional cancellation signal, checked before every request

    Yields:
        One list of records per page

    Raises:
        ImportCancelledError: If the cancellation signal is set
        SourceRequestError: If a request fails (not retried)
    """
    offset = 0
    while True:
        check_cancelled(cancel)

        page_params = dict(params or {})
        page_params["offset"] = offset
        page_params["limit"] = page_size
        envelope = client.get_json(endpoint, params=page_params)

        page: list[dict[str, Any]] = list(envelope.get(collection) or [])
        logger.debug(f"Fetched {len(page)} {collection} at offset {offset}")
        yield page

        total_count = envelope.get("total_count")
        if total_count is None:
            # Not a paginated endpoint
            break
        if offset + len(page) >= int(total_count) or len(page) < page_size:
            break
        offset += len(page)


def list_all(
    client: RedmineClient,
    endpoint: str,
    collection: str,
    *,
    params: dict[str, Any] | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    cancel: CancelSignal | None = None,
) -> list[dict[str, Any]]:
    """Collect every page of a Redmine collection into one list."""
    records: list[dict[str, Any]] = []
    for page in iter_pages(client, endpoint, collection, params=params, page_size=page_size, cancel=cancel):
        records.extend(page)
    return records
