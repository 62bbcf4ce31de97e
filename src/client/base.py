from __future__ import annotations

import importlib
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from src.models.config_models import ClientConfig

"""Directory-service client interface.

The importer only talks to the remote directory through this protocol. Records
are plain mappings with at least a ``uuid`` key; user records also carry
``email``, ``first_name`` and ``last_name``, group records carry ``title``.
"""

__all__ = [
    "DirectoryClient",
    "DirectoryRecord",
    "DuplicateIdentity",
    "RemoteServiceError",
    "build_client",
    "record_id",
]

DirectoryRecord = Mapping[str, Any]


class RemoteServiceError(Exception):
    """Raised by a client when a directory service call fails."""


class DuplicateIdentity(Exception):
    """Raised when a natural key (email) maps to more than one remote entity."""


@runtime_checkable
class DirectoryClient(Protocol):
    def user_lookup_by_email(self, email: str) -> DirectoryRecord | None: ...

    def user_create(
        self,
        email: str | None,
        first_name: str,
        last_name: str,
        gender: str,
        birth_date: date,
        extra: Mapping[str, Any],
    ) -> DirectoryRecord: ...

    def user_create_child(
        self,
        parent_id: str,
        first_name: str,
        last_name: str,
        birth_date: date | None,
        gender: str,
        extra: Mapping[str, Any],
    ) -> DirectoryRecord: ...

    def user_get(self, user_id: str) -> DirectoryRecord: ...

    def user_list_children(self, user_id: str) -> Sequence[DirectoryRecord]: ...

    def group_create(
        self,
        name: str,
        description: str | None,
        location: Mapping[str, str],
        category: str,
        extra: Mapping[str, Any],
    ) -> DirectoryRecord: ...

    def group_get(self, group_id: str) -> DirectoryRecord: ...

    def group_update(self, group_id: str, fields: Mapping[str, Any]) -> DirectoryRecord: ...

    def group_delete(self, group_id: str) -> None: ...

    def group_clone(self, target_id: str, source_id: str) -> DirectoryRecord: ...

    def group_search(self, criteria: Mapping[str, Any]) -> Sequence[DirectoryRecord]: ...

    def user_join_group(
        self,
        group_id: str,
        user_id: str,
        role: str | None = None,
        options: Mapping[str, Any] | None = None,
        webform_ids: Sequence[str] | None = None,
    ) -> DirectoryRecord: ...

    def event_create(
        self,
        title: str,
        group_ids: Sequence[str],
        start: datetime,
        duration_minutes: int | None,
        extra: Mapping[str, Any],
    ) -> DirectoryRecord: ...


def record_id(record: DirectoryRecord | None) -> str | None:
    """Return the record's ``uuid`` or None for missing/empty records."""
    if not record:
        return None
    value = record.get("uuid")
    return str(value) if value else None


def build_client(config: ClientConfig) -> DirectoryClient:
    """Instantiate the client named by ``config.factory`` (``module:callable``)."""
    if not config.factory:
        raise RemoteServiceError("no client factory configured (client.factory)")
    module_name, _, attr = config.factory.partition(":")
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise RemoteServiceError(f"cannot load client factory {config.factory}: {e}") from e
    client = factory(**config.options)
    if not isinstance(client, DirectoryClient):
        raise RemoteServiceError(f"{config.factory} did not return a DirectoryClient")
    return client
