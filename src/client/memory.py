from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

from .base import DirectoryRecord, DuplicateIdentity, RemoteServiceError

"""In-memory directory used for dry runs (``--dry-run``) and tests.

Behaves like the remote directory at the interface level: generates ids,
enforces parent/child links and group existence, and raises the same
exceptions. Every call is recorded so callers can assert on what would have
been sent.
"""

__all__ = [
    "InMemoryDirectoryClient",
    "make_dry_run_client",
]


class InMemoryDirectoryClient:
    """Thread-safe in-memory DirectoryClient.

    Args:
        failures: method name -> message; calling that method raises RemoteServiceError
        latency: seconds to sleep inside every call (widens race windows in tests)
    """

    def __init__(self, failures: Mapping[str, str] | None = None, latency: float = 0.0) -> None:
        self._lock = threading.RLock()
        self.users: dict[str, dict[str, Any]] = {}
        self.groups: dict[str, dict[str, Any]] = {}
        self.children: dict[str, list[str]] = {}
        self.memberships: list[dict[str, Any]] = []
        self.events: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.failures = dict(failures or {})
        self.latency = latency

    # -- bookkeeping -------------------------------------------------------

    def _record(self, method: str, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            self.calls.append((method, args, kwargs))
        if self.latency:
            time.sleep(self.latency)
        if method in self.failures:
            raise RemoteServiceError(self.failures[method])

    def call_count(self, method: str) -> int:
        with self._lock:
            return sum(1 for name, _, _ in self.calls if name == method)

    def calls_to(self, method: str) -> list[tuple[tuple[Any, ...], dict[str, Any]]]:
        with self._lock:
            return [(a, k) for name, a, k in self.calls if name == method]

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    # -- seeding helpers (not part of the protocol) --------------------------

    def add_user(
        self,
        email: str | None,
        first_name: str = "",
        last_name: str = "",
        parents: Sequence[str] = (),
        **fields: Any,
    ) -> dict[str, Any]:
        with self._lock:
            user = {
                "uuid": self._new_id(),
                "email": email,
                "first_name": first_name,
                "last_name": last_name,
                **fields,
            }
            self.users[user["uuid"]] = user
            for parent_id in parents:
                self.children.setdefault(parent_id, []).append(user["uuid"])
            return dict(user)

    def add_group(self, title: str, **fields: Any) -> dict[str, Any]:
        with self._lock:
            group = {"uuid": self._new_id(), "title": title, "active": 1, **fields}
            self.groups[group["uuid"]] = group
            return dict(group)

    def group_titles(self) -> list[str]:
        with self._lock:
            return [g["title"] for g in self.groups.values()]

    # -- users --------------------------------------------------------------

    def user_lookup_by_email(self, email: str) -> DirectoryRecord | None:
        self._record("user_lookup_by_email", email)
        needle = email.strip().lower()
        with self._lock:
            matches = [
                u for u in self.users.values() if (u.get("email") or "").strip().lower() == needle
            ]
        if len(matches) > 1:
            raise DuplicateIdentity(f"{len(matches)} accounts share the email address {email}")
        return dict(matches[0]) if matches else None

    def user_create(
        self,
        email: str | None,
        first_name: str,
        last_name: str,
        gender: str,
        birth_date: date,
        extra: Mapping[str, Any],
    ) -> DirectoryRecord:
        self._record("user_create", email, first_name, last_name, gender, birth_date, dict(extra))
        return self.add_user(
            email, first_name, last_name, gender=gender, birth_date=birth_date, extra=dict(extra)
        )

    def user_create_child(
        self,
        parent_id: str,
        first_name: str,
        last_name: str,
        birth_date: date | None,
        gender: str,
        extra: Mapping[str, Any],
    ) -> DirectoryRecord:
        self._record(
            "user_create_child", parent_id, first_name, last_name, birth_date, gender, dict(extra)
        )
        with self._lock:
            if parent_id not in self.users:
                raise RemoteServiceError(f"parent {parent_id} not found")
            child_id = extra.get("child_uuid")
            if child_id:
                if child_id not in self.users:
                    raise RemoteServiceError(f"child {child_id} not found")
                linked = self.children.setdefault(parent_id, [])
                if child_id not in linked:
                    linked.append(child_id)
                return dict(self.users[child_id])
            return self.add_user(
                extra.get("email"),
                first_name,
                last_name,
                parents=[parent_id],
                gender=gender,
                birth_date=birth_date,
                extra=dict(extra),
            )

    def user_get(self, user_id: str) -> DirectoryRecord:
        self._record("user_get", user_id)
        with self._lock:
            if user_id not in self.users:
                raise RemoteServiceError(f"user {user_id} not found")
            return dict(self.users[user_id])

    def user_list_children(self, user_id: str) -> Sequence[DirectoryRecord]:
        self._record("user_list_children", user_id)
        with self._lock:
            return [{"uuid": c} for c in self.children.get(user_id, [])]

    # -- groups -------------------------------------------------------------

    def group_create(
        self,
        name: str,
        description: str | None,
        location: Mapping[str, str],
        category: str,
        extra: Mapping[str, Any],
    ) -> DirectoryRecord:
        self._record("group_create", name, description, dict(location), category, dict(extra))
        return self.add_group(
            name,
            description=description,
            location=dict(location),
            category=category,
            extra=dict(extra),
        )

    def group_get(self, group_id: str) -> DirectoryRecord:
        self._record("group_get", group_id)
        with self._lock:
            if group_id not in self.groups:
                raise RemoteServiceError(f"group {group_id} not found")
            return dict(self.groups[group_id])

    def group_update(self, group_id: str, fields: Mapping[str, Any]) -> DirectoryRecord:
        self._record("group_update", group_id, dict(fields))
        with self._lock:
            if group_id not in self.groups:
                raise RemoteServiceError(f"group {group_id} not found")
            self.groups[group_id].update(fields)
            return dict(self.groups[group_id])

    def group_delete(self, group_id: str) -> None:
        self._record("group_delete", group_id)
        with self._lock:
            if self.groups.pop(group_id, None) is None:
                raise RemoteServiceError(f"group {group_id} not found")

    def group_clone(self, target_id: str, source_id: str) -> DirectoryRecord:
        self._record("group_clone", target_id, source_id)
        with self._lock:
            if target_id not in self.groups or source_id not in self.groups:
                raise RemoteServiceError(f"cannot clone {source_id} into {target_id}")
            self.groups[target_id]["cloned_from"] = source_id
            return dict(self.groups[target_id])

    def group_search(self, criteria: Mapping[str, Any]) -> Sequence[DirectoryRecord]:
        self._record("group_search", dict(criteria))
        title = criteria.get("title")
        with self._lock:
            return [dict(g) for g in self.groups.values() if title is None or g["title"] == title]

    def user_join_group(
        self,
        group_id: str,
        user_id: str,
        role: str | None = None,
        options: Mapping[str, Any] | None = None,
        webform_ids: Sequence[str] | None = None,
    ) -> DirectoryRecord:
        self._record("user_join_group", group_id, user_id, role, options, webform_ids)
        with self._lock:
            if group_id not in self.groups:
                raise RemoteServiceError(f"group {group_id} not found")
            if user_id not in self.users:
                raise RemoteServiceError(f"user {user_id} not found")
            membership = {
                "uuid": self._new_id(),
                "group_uuid": group_id,
                "user_uuid": user_id,
                "role": role,
                "options": dict(options or {}),
                "webform_ids": list(webform_ids or []),
            }
            self.memberships.append(membership)
            return dict(membership)

    # -- events -------------------------------------------------------------

    def event_create(
        self,
        title: str,
        group_ids: Sequence[str],
        start: datetime,
        duration_minutes: int | None,
        extra: Mapping[str, Any],
    ) -> DirectoryRecord:
        self._record("event_create", title, list(group_ids), start, duration_minutes, dict(extra))
        with self._lock:
            missing = [g for g in group_ids if g not in self.groups]
            if missing:
                raise RemoteServiceError(f"unknown groups: {missing}")
            event = {
                "uuid": self._new_id(),
                "title": title,
                "groups": list(group_ids),
                "start": start,
                "duration_minutes": duration_minutes,
                **dict(extra),
            }
            self.events[event["uuid"]] = event
            return dict(event)


def make_dry_run_client(**options: Any) -> InMemoryDirectoryClient:
    """Factory usable as ``client.factory: src.client.memory:make_dry_run_client``."""
    return InMemoryDirectoryClient(**options)
