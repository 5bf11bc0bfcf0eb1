"""In-process TTL cache for Daktela reference data.

Caches unfiltered "list all" pages of stable reference endpoints (users,
queues, categories, ...) so repeated tool calls skip the API round-trip.

Keys include the connection identity (URL + username or token) so tenants
and users with different permissions sharing one process never see each
other's data. One cache object is created per process and handed to every
gateway; the store is lock-guarded for threaded hosts.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from daktela_mcp.models.config import CachePolicy
from daktela_mcp.models.records import ListPage

CACHEABLE_ENDPOINTS = frozenset(
    {
        "users",
        "queues",
        "ticketsCategories",
        "groups",
        "pauses",
        "statuses",
        "templates",
        "campaignsTypes",
    }
)

# ASCII unit separator; never part of a URL, login name, endpoint or sort field.
KEY_DELIMITER = "\x1f"


def build_key(
    identity: str,
    endpoint: str,
    skip: int,
    take: int,
    sort: str | None,
    sort_dir: str,
) -> str:
    return KEY_DELIMITER.join(
        [identity, endpoint, str(skip), str(take), sort or "", sort_dir]
    )


class ReferenceDataCache:
    """Identity-scoped TTL cache for reference listings."""

    def __init__(
        self,
        policy: CachePolicy | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy or CachePolicy()
        self._clock = clock
        self._store: dict[str, tuple[float, ListPage]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def is_cacheable(self, endpoint: str) -> bool:
        return self.policy.enabled and endpoint in CACHEABLE_ENDPOINTS

    def get(
        self,
        identity: str,
        endpoint: str,
        skip: int,
        take: int,
        sort: str | None,
        sort_dir: str,
    ) -> ListPage | None:
        """Return the cached page, or None on miss/expiry/disabled/non-cacheable."""
        if not self.is_cacheable(endpoint):
            return None

        key = build_key(identity, endpoint, skip, take, sort, sort_dir)
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, page = entry
            if self._clock() > expires_at:
                del self._store[key]
                return None
        # Callers get their own copy; the stored page stays as fetched.
        return page.model_copy(deep=True)

    def put(
        self,
        identity: str,
        endpoint: str,
        skip: int,
        take: int,
        sort: str | None,
        sort_dir: str,
        page: ListPage,
    ) -> None:
        """Store a page. Ignored for non-cacheable endpoints or when disabled."""
        if not self.is_cacheable(endpoint):
            return

        key = build_key(identity, endpoint, skip, take, sort, sort_dir)
        with self._lock:
            now = self._clock()
            # Sweep on write so transient identities cannot grow the store.
            expired = [k for k, (expires_at, _) in self._store.items() if now > expires_at]
            for k in expired:
                del self._store[k]
            self._store[key] = (now + self.policy.ttl_seconds, page.model_copy(deep=True))

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
