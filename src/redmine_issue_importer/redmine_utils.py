from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Final, Self

import requests

from . import utils
from .exceptions import SourceNotFoundError, SourceRequestError

if TYPE_CHECKING:
    from types import TracebackType

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_API_KEY_ENV_VAR: Final[str] = "REDMINE_API_KEY"
_DEFAULT_API_KEY_PASS_PATH: Final[str] = "redmine/api_key"
_API_KEY_HEADER: Final[str] = "X-Redmine-API-Key"


def get_api_key(pass_path: str | None = None) -> str | None:
    """Get Redmine API key from pass path, env var REDMINE_API_KEY, or default pass location."""
    if pass_path:
        return utils.get_pass_value(pass_path)

    api_key: str | None = os.environ.get(_API_KEY_ENV_VAR)
    if api_key:
        return api_key

    try:
        return utils.get_pass_value(_DEFAULT_API_KEY_PASS_PATH)
    except (ValueError, utils.PassError):
        logger.warning("No Redmine API key specified nor found, using anonymous access")
        return None


def get_redmine_project_id(redmine_project: str) -> str:
    """Return the Redmine project identifier from a "Display Name:identifier" reference."""
    return redmine_project.rsplit(":", 1)[-1]


class RedmineClient:
    """One connection handle to the Redmine REST API.

    Wraps a requests session. Use it as a context manager so the session is
    released on every exit path.
    """

    def __init__(self, base_url: str, api_key: str | None = None) -> None:
        self.base_url: str = base_url.rstrip("/")
        self.session: requests.Session = requests.Session()
        self.session.headers["Accept"] = "application/json"
        if api_key:
            self.session.headers[_API_KEY_HEADER] = api_key

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def api_endpoint(self, path: str) -> str:
        """Build an absolute API URL from a path like "/issues.json"."""
        return f"{self.base_url}/{path.lstrip('/')}"

    def get_json(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET a JSON document from Redmine.

        Args:
            endpoint: API path ("/users/3.json") or absolute URL
            params: Optional query parameters

        Returns:
            The decoded JSON envelope

        Raises:
            SourceNotFoundError: If Redmine answered 404
            SourceRequestError: On any other HTTP, network or URL error
        """
        url = endpoint if endpoint.startswith(("http://", "https://")) else self.api_endpoint(endpoint)
        try:
            response = self.session.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                msg = f"Redmine resource not found: {url}"
                raise SourceNotFoundError(msg) from e
            msg = f"Redmine request failed: {e}"
            raise SourceRequestError(msg) from e
        except (requests.RequestException, ValueError) as e:
            msg = f"Redmine request to {url} failed: {e}"
            raise SourceRequestError(msg) from e


class RedmineServer:
    """Connection settings for a Redmine instance; hands out one client per operation."""

    def __init__(self, base_url: str, api_key: str | None = None) -> None:
        self.base_url: str = base_url.rstrip("/")
        self._api_key: str | None = api_key

    def new_client(self) -> RedmineClient:
        return RedmineClient(self.base_url, self._api_key)

    def api_endpoint(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"


def get_server(base_url: str, api_key: str | None = None) -> RedmineServer:
    """Get a Redmine server handle using the API key."""
    return RedmineServer(base_url, api_key)
