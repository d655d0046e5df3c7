"""Phabricator user lookups.

git-notes identify people by email address (or sometimes a username),
while Differential identifies them by PHID. ``UserDirectory`` maps between
the two through the ``user.query`` Conduit method.

Results are cached for five minutes: users may change their email address
in Phabricator, so entries cannot be kept forever.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from ..core.conduit import ConduitClient

logger = logging.getLogger(__name__)

USER_CACHE_TTL = 300.0

T = TypeVar("T")


class TTLCache(Generic[T]):
    """A small key/value cache whose entries expire after *ttl* seconds.

    ``None`` results are cached too, so a missing user is not looked up
    again until the entry expires.
    """

    def __init__(
        self,
        ttl: float = USER_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[str, tuple[float, T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get_or_load(self, key: str, load: Callable[[], T]) -> T:
        now = self.clock()
        self._evict_expired(now)
        entry = self._entries.get(key)
        if entry is not None:
            return entry[1]
        value = load()
        self._entries[key] = (now, value)
        return value

    def clear(self) -> None:
        self._entries.clear()

    def _evict_expired(self, now: float) -> None:
        expired = [
            key
            for key, (stored_at, _value) in self._entries.items()
            if now - stored_at >= self.ttl
        ]
        for key in expired:
            del self._entries[key]


class User(BaseModel):
    """A Phabricator user account."""

    phid: str
    user_name: str = Field(default="", alias="userName")
    real_name: str = Field(default="", alias="realName")
    email: str = Field(default="", alias="primaryEmail")

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def identity(self) -> str:
        """The name used for this user in git-notes."""
        return self.email or self.user_name


class UserDirectory:
    """Looks up Phabricator users by name or PHID.

    Args:
        conduit: Client used for ``user.query`` and ``user.whoami``.
        query_cache: Cache of name lookups.
        lookup_cache: Cache of PHID lookups.
    """

    def __init__(
        self,
        conduit: ConduitClient,
        query_cache: TTLCache[User | None] | None = None,
        lookup_cache: TTLCache[User | None] | None = None,
    ) -> None:
        self.conduit = conduit
        self.query_cache = query_cache or TTLCache()
        self.lookup_cache = lookup_cache or TTLCache()
        self._mirror_user: User | None = None

    def _query(self, params: dict[str, Any]) -> list[User]:
        result = self.conduit.call("user.query", params) or []
        return [User.model_validate(entry) for entry in result]

    def query_user(self, name: str) -> User | None:
        """Return the user named *name*, or ``None``.

        The name may be an email address or a username; emails are tried
        first. Ambiguous matches count as no match.
        """

        def load() -> User | None:
            users = self._query({"emails": [name]})
            if not users:
                users = self._query({"usernames": [name]})
            if len(users) != 1:
                logger.debug("No unique Phabricator user for %r", name)
                return None
            return users[0]

        return self.query_cache.get_or_load(name, load)

    def lookup_user(self, user_phid: str) -> User | None:
        """Return the user with the given PHID, or ``None``."""

        def load() -> User | None:
            users = self._query({"phids": [user_phid]})
            if len(users) != 1:
                return None
            return users[0]

        return self.lookup_cache.get_or_load(user_phid, load)

    def whoami(self) -> User:
        """Return the account the mirror acts as."""
        if self._mirror_user is None:
            self._mirror_user = User.model_validate(self.conduit.whoami())
        return self._mirror_user
