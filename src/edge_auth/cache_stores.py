"""Process-wide cache for JWT signing keys.

Keys are stored per ``kid`` the first time they are resolved. By default
entries never expire: a rotated-out key can only make verification fail, and
a newly published key is simply a cache miss.

Concurrent requests may populate the same entry twice; the write is
idempotent so no lock is taken.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from jwt import PyJWK


class _Entry(NamedTuple):
    key: PyJWK
    stale_after: float | None


class InMemoryCache:
    """Signing keys by ``kid``, optionally dropped after ``ttl_seconds``.

    Example:
        ```python
        keys = InMemoryCache()
        keys.set(jwk)          # stored under jwk.key_id
        keys.get(jwk.key_id)   # -> jwk
        keys.get("unknown")    # -> None
        ```
    """

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self._ttl = ttl_seconds
        self._entries: dict[str, _Entry] = {}

    def get(self, kid: str) -> PyJWK | None:
        entry = self._entries.get(kid)
        if entry is None:
            return None
        if entry.stale_after is not None and time.time() >= entry.stale_after:
            self._entries.pop(kid, None)
            return None
        return entry.key

    def set(self, key: PyJWK) -> None:
        """Store ``key`` under its ``key_id``.

        Raises:
            ValueError: If the key carries no ``kid``.
        """
        if not key.key_id:
            raise ValueError("Only keys with a kid can be cached")
        stale_after = None if self._ttl is None else time.time() + self._ttl
        self._entries[key.key_id] = _Entry(key, stale_after)

    def __len__(self) -> int:
        return len(self._entries)
