from __future__ import annotations

import threading
from collections.abc import Callable

"""Identity cache and per-identity lock manager.

Memoizes natural key -> remote id for one import run and hands out one lock per
key, so that the "check cache -> call remote -> cache result" sequence for an
identity runs in exactly one worker at a time.

resolve() uses double-checked locking:
1. under the global mutex: cache hit -> return; else lazily create the key lock
2. release the global mutex, acquire the key lock
3. re-check the cache; on miss call ``lookup`` and cache a found id

Creation paths ask for the key lock (``want_lock=True``) and hold it across the
create call, re-checking the cache inside it. A second worker racing for the
same key then sees the first one's id and reports "already exists".

Lookups that raise (DuplicateIdentity, RemoteServiceError) propagate to the
caller and leave the key unresolved.
"""

__all__ = [
    "IdentityCache",
    "normalize_email",
    "parents_key",
]

LookupFn = Callable[[], "str | None"]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parents_key(parent_ids: list[str]) -> str:
    """Identity key for "the child of exactly these parents"."""
    return "parents:" + "_".join(sorted(parent_ids))


class IdentityCache:
    """Write-once identity -> remote id map with lazily created per-key locks."""

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._ids: dict[str, str] = {}
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, key: str) -> threading.RLock:
        """Return the lock dedicated to ``key``, creating it on first use."""
        with self._mutex:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    def get(self, key: str) -> str | None:
        with self._mutex:
            return self._ids.get(key)

    def store(self, key: str, identifier: str) -> str:
        """Cache ``identifier`` unless the key is already resolved; returns the cached id."""
        with self._mutex:
            return self._ids.setdefault(key, identifier)

    def resolve(
        self, key: str, lookup: LookupFn, *, want_lock: bool = False
    ) -> tuple[str | None, threading.RLock | None]:
        """Resolve ``key`` through the cache, calling ``lookup`` at most once per miss.

        Returns ``(identifier or None, key lock or None)``; the lock is returned
        (not held) when ``want_lock`` is set so the caller can take it again
        around its create call.
        """
        with self._mutex:
            cached = self._ids.get(key)
            if cached is not None and not want_lock:
                return cached, None
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            if cached is not None:
                return cached, lock

        with lock:
            with self._mutex:
                cached = self._ids.get(key)
            if cached is None:
                found = lookup()
                if found is not None:
                    cached = self.store(key, found)
        return cached, (lock if want_lock else None)

    def __contains__(self, key: str) -> bool:
        with self._mutex:
            return key in self._ids

    def __len__(self) -> int:
        with self._mutex:
            return len(self._ids)
