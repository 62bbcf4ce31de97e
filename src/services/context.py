from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path

from src.client.base import DirectoryClient
from src.logging.error_log import ErrorLogBuffer
from src.models.config_models import ImportConfig
from src.models.error_record import ErrorRecord
from src.models.outcome import RowOutcome
from src.models.row import RowContext

from .dependency_resolver import DependencyResolver
from .group_registry import GroupMapFile, GroupRegistry
from .identity_cache import IdentityCache
from .stats import StatsCounter
from .validation import active_email_domain

"""Per-run shared state handed to the scheduler and every row pipeline.

One ImportContext is built per import run; nothing here is a process-wide
singleton, so tests get a fresh cache/registry/stats with each context.
"""

__all__ = [
    "ImportContext",
]

logger = logging.getLogger("directory_importer.context")


@dataclass
class ImportContext:
    client: DirectoryClient
    config: ImportConfig
    identities: IdentityCache = field(default_factory=IdentityCache)
    stats: StatsCounter = field(default_factory=StatsCounter)
    error_log: ErrorLogBuffer = field(default_factory=ErrorLogBuffer)
    today: date = field(default_factory=lambda: datetime.now(UTC).date())
    domain_check: Callable[[str], bool] = active_email_domain
    _registry: GroupRegistry | None = field(default=None, init=False, repr=False)
    _resolver: DependencyResolver | None = field(default=None, init=False, repr=False)
    _registry_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def registry(self) -> GroupRegistry:
        """Group registry, seeded from the persisted group map on first use."""
        with self._registry_lock:
            if self._registry is None:
                map_file = GroupMapFile(Path(self.config.group_map_path))
                self._registry = GroupRegistry(map_file)
                logger.debug(
                    "group registry seeded from %s with %d names",
                    map_file.path,
                    len(self._registry.names()),
                )
            return self._registry

    @property
    def resolver(self) -> DependencyResolver:
        registry = self.registry
        with self._registry_lock:
            if self._resolver is None:
                self._resolver = DependencyResolver(registry, self.client)
            return self._resolver

    def email_domain_ok(self, email: str) -> bool:
        if not self.config.check_email_domains:
            return True
        return self.domain_check(email)

    def record_outcome(self, outcome: RowOutcome) -> None:
        """Count a successful row (new or already existing entity) under its category."""
        if outcome.succeeded and outcome.category:
            self.stats.increment(outcome.category)

    def record_failure(
        self,
        workbook: str,
        rctx: RowContext,
        outcome: RowOutcome,
        error_type: str | None = None,
    ) -> None:
        self.error_log.append(
            ErrorRecord.create(
                workbook=workbook,
                sheet=rctx.sheet,
                row=rctx.row,
                error_type=error_type or outcome.error_type,
                message=outcome.reason or "",
            )
        )
