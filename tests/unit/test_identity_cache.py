from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from src.client.base import DuplicateIdentity
from src.services.identity_cache import IdentityCache, normalize_email, parents_key


def test_resolve_caches_found_identifier():
    cache = IdentityCache()
    calls = []

    def lookup():
        calls.append(1)
        return "id-1"

    assert cache.resolve("a@x.com", lookup) == ("id-1", None)
    assert cache.resolve("a@x.com", lookup) == ("id-1", None)
    assert len(calls) == 1
    assert "a@x.com" in cache


def test_resolve_miss_is_not_cached():
    cache = IdentityCache()
    calls = []

    def lookup():
        calls.append(1)
        return None

    assert cache.resolve("a@x.com", lookup) == (None, None)
    assert cache.resolve("a@x.com", lookup) == (None, None)
    assert len(calls) == 2
    assert len(cache) == 0


def test_want_lock_returns_the_key_lock():
    cache = IdentityCache()
    ident, lock = cache.resolve("a@x.com", lambda: None, want_lock=True)
    assert ident is None
    assert lock is cache.lock_for("a@x.com")
    cache.store("a@x.com", "id-1")
    ident, lock_again = cache.resolve("a@x.com", lambda: None, want_lock=True)
    assert ident == "id-1"
    assert lock_again is lock


def test_store_is_write_once():
    cache = IdentityCache()
    assert cache.store("k", "first") == "first"
    assert cache.store("k", "second") == "first"
    assert cache.get("k") == "first"


def test_duplicate_identity_propagates_and_leaves_key_unresolved():
    cache = IdentityCache()

    def lookup():
        raise DuplicateIdentity("2 accounts share a@x.com")

    with pytest.raises(DuplicateIdentity):
        cache.resolve("a@x.com", lookup)
    assert cache.get("a@x.com") is None


def test_racing_creators_issue_exactly_one_create():
    cache = IdentityCache()
    created: list[str] = []
    barrier = threading.Barrier(8)

    def worker() -> str:
        barrier.wait()
        ident, lock = cache.resolve("a@x.com", lambda: None, want_lock=True)
        if ident is not None:
            return "exists"
        with lock:
            if cache.get("a@x.com") is not None:
                return "exists"
            time.sleep(0.01)
            created.append("id-1")
            cache.store("a@x.com", "id-1")
            return "created"

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = [f.result() for f in [pool.submit(worker) for _ in range(8)]]

    assert results.count("created") == 1
    assert results.count("exists") == 7
    assert created == ["id-1"]


def test_lookup_runs_once_under_contention():
    cache = IdentityCache()
    calls: list[int] = []
    barrier = threading.Barrier(6)

    def lookup():
        calls.append(1)
        time.sleep(0.01)
        return "id-9"

    def worker():
        barrier.wait()
        return cache.resolve("k", lookup)[0]

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = [f.result() for f in [pool.submit(worker) for _ in range(6)]]

    assert results == ["id-9"] * 6
    assert len(calls) == 1


def test_key_helpers():
    assert normalize_email("  Ann@Example.COM ") == "ann@example.com"
    assert parents_key(["b", "a"]) == parents_key(["a", "b"]) == "parents:a_b"
