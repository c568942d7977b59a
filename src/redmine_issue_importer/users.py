"""Resolve Redmine accounts to target users by email address."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .exceptions import SourceNotFoundError

if TYPE_CHECKING:
    from .models import ImportResult, User
    from .protocols import TargetSystem
    from .redmine_utils import RedmineClient

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class IdentityCache:
    """Redmine login -> resolved target user (None when unresolvable), for one run."""

    entries: dict[str, User | None] = field(default_factory=dict)

    def __contains__(self, login: str) -> bool:
        return login in self.entries


class IdentityResolver:
    """Looks up target users for Redmine logins, memoizing every answer.

    Redmine only exposes the account email, so a login resolves when Redmine
    returns a ``mail`` and the target system has a user with that email.
    """

    def __init__(self, client: RedmineClient, target: TargetSystem, cache: IdentityCache) -> None:
        self._client = client
        self._target = target
        self._cache = cache

    def resolve(self, login: str) -> User | None:
        if login in self._cache:
            return self._cache.entries[login]

        user: User | None = None
        try:
            email = (self._client.get_json(f"/users/{login}.json").get("user") or {}).get("mail")
        except SourceNotFoundError:
            # Redmine answers 404 for unknown (or locked) accounts
            logger.debug(f"Redmine user {login} not found")
            email = None

        if email:
            user = self._target.find_user_by_email(email)
            if user is None:
                logger.debug(f"No target user with email {email} (Redmine user {login})")

        self._cache.entries[login] = user
        return user

    def attribute(self, login: str | None, display_name: str, result: ImportResult) -> User:
        """Resolve a login for attribution, falling back to the unknown user.

        Unresolved logins are recorded in the run result. Entries without a
        login (e.g. anonymous journal entries) go to the unknown user directly.
        """
        if login is None:
            return self._target.unknown_user()
        user = self.resolve(login)
        if user is None:
            result.record_unresolved_login(display_name, login)
            return self._target.unknown_user()
        return user
