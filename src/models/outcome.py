from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""RowOutcome result variants returned by every row pipeline.

Pipelines never raise for "already exists", duplicates, validation failures or
remote failures; they return one of these and let the scheduler classify.
"""

__all__ = [
    "OutcomeKind",
    "RowOutcome",
]


class OutcomeKind(Enum):
    """Classification of a single row pipeline run.

    - CREATED: a new remote entity was committed
    - ALREADY_EXISTS: identity resolved to an existing entity (counts as success)
    - VALIDATION_FAILED: required field missing/invalid, no remote call made
    - DUPLICATE_IDENTITY: identity is ambiguous on the remote side
    - DEFERRED: dependency not resolved yet, row queued for the retry pass
    - DEPENDENCY_UNRESOLVED: dependency still missing on the retry pass
    - REMOTE_FAILURE: directory service call failed
    - SKIPPED: row intentionally not imported (partition filter, housekeeping)
    """
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    VALIDATION_FAILED = "validation_failed"
    DUPLICATE_IDENTITY = "duplicate_identity"
    DEFERRED = "deferred"
    DEPENDENCY_UNRESOLVED = "dependency_unresolved"
    REMOTE_FAILURE = "remote_failure"
    SKIPPED = "skipped"


_SUCCESS = {OutcomeKind.CREATED, OutcomeKind.ALREADY_EXISTS}
_FAILURE = {
    OutcomeKind.VALIDATION_FAILED,
    OutcomeKind.DUPLICATE_IDENTITY,
    OutcomeKind.DEPENDENCY_UNRESOLVED,
    OutcomeKind.REMOTE_FAILURE,
}


@dataclass(frozen=True)
class RowOutcome:
    kind: OutcomeKind
    identifier: str | None = None  # resolved remote id (CREATED / ALREADY_EXISTS)
    email: str | None = None  # resolved contact address for user rows
    reason: str | None = None  # failure reason or deferred dependency name
    category: str | None = None  # entity type label ("Users", "Groups", ...)

    @classmethod
    def created(cls, identifier: str, category: str, email: str | None = None) -> RowOutcome:
        return cls(OutcomeKind.CREATED, identifier=identifier, email=email, category=category)

    @classmethod
    def already_exists(cls, identifier: str, category: str, email: str | None = None) -> RowOutcome:
        return cls(OutcomeKind.ALREADY_EXISTS, identifier=identifier, email=email, category=category)

    @classmethod
    def validation_failed(cls, reason: str) -> RowOutcome:
        return cls(OutcomeKind.VALIDATION_FAILED, reason=reason)

    @classmethod
    def duplicate(cls, reason: str) -> RowOutcome:
        return cls(OutcomeKind.DUPLICATE_IDENTITY, reason=reason)

    @classmethod
    def deferred(cls, dependency: str) -> RowOutcome:
        return cls(OutcomeKind.DEFERRED, reason=dependency)

    @classmethod
    def unresolved(cls, dependency: str) -> RowOutcome:
        return cls(OutcomeKind.DEPENDENCY_UNRESOLVED, reason=dependency)

    @classmethod
    def remote_failure(cls, reason: str) -> RowOutcome:
        return cls(OutcomeKind.REMOTE_FAILURE, reason=reason)

    @classmethod
    def skipped(cls, reason: str) -> RowOutcome:
        return cls(OutcomeKind.SKIPPED, reason=reason)

    @property
    def succeeded(self) -> bool:
        return self.kind in _SUCCESS

    @property
    def failed(self) -> bool:
        return self.kind in _FAILURE

    @property
    def error_type(self) -> str:
        return self.kind.name
