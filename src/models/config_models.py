from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Config dataclasses for the directory bulk importer.

The loader in src/config/loader.py validates the YAML against the bundled JSON
schema and builds these frozen objects; everything downstream reads settings
from here only.
"""

# Variant names used by the dispatcher and the ``workers`` config map.
VARIANT_MIXED = "mixed"
VARIANT_USERS = "users"
VARIANT_GROUPS = "groups"
VARIANT_MEMBERSHIPS = "memberships"
VARIANT_EVENTS = "events"

DEFAULT_WORKERS: dict[str, int] = {
    VARIANT_MIXED: 7,
    VARIANT_GROUPS: 5,
    VARIANT_USERS: 1,
    VARIANT_MEMBERSHIPS: 1,
    VARIANT_EVENTS: 1,
}

DEFAULT_MINOR_AGE_THRESHOLD = 14
DEFAULT_GROUP_MAP_PATH = "imported_groups.csv"


@dataclass(frozen=True)
class ClientConfig:
    """How to build the DirectoryClient (``module:callable`` + kwargs)."""
    factory: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for an import run."""
    source_directory: str  # Directory scanned for .xlsx workbooks
    thread_count: int | None = None  # Global worker override (all variants)
    workers: dict[str, int] = field(default_factory=dict)  # Per-variant override
    run_character: str | None = None  # Partition filter value
    skip_rows: int = 0  # Leading data rows to discard per sheet
    minor_age_threshold: int = DEFAULT_MINOR_AGE_THRESHOLD
    group_map_path: str = DEFAULT_GROUP_MAP_PATH
    check_email_domains: bool = True  # DNS liveness check for new user emails
    timezone: str = "UTC"
    client: ClientConfig = field(default_factory=ClientConfig)

    def worker_count(self, variant: str) -> int:
        """Resolve worker count: global override > per-variant > default."""
        if self.thread_count:
            return self.thread_count
        return self.workers.get(variant, DEFAULT_WORKERS.get(variant, 1))
