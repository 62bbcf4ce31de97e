from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from src.models.outcome import RowOutcome
from src.models.row import Row, RowContext

from .context import ImportContext
from .membership_pipeline import import_membership
from .user_pipeline import PARENT_PREFIXES, import_user

"""Mixed "Participant Information" rows: parents, then the participant, then group assignments."""

__all__ = [
    "group_indexes",
    "import_mixed",
]

logger = logging.getLogger("directory_importer.mixed")

PARTICIPANT_PREFIX = "participant_"
_NUMBER = re.compile(r"^\d+$")


def group_indexes(columns: Iterable[str]) -> range:
    """1..N where N is the largest numeric segment of any ``group_*`` column."""
    highest = 0
    for column in columns:
        if not column.startswith("group_"):
            continue
        for part in column.split("_"):
            if _NUMBER.match(part):
                highest = max(highest, int(part))
    return range(1, highest + 1)


def _description(prefix: str) -> str:
    return " ".join(prefix.split("_")).strip().capitalize()


def import_mixed(
    ictx: ImportContext, row: Row, rctx: RowContext, *, retry: bool = False
) -> RowOutcome:
    logger.info("Processing...", extra=rctx.log_extra)

    outcome: RowOutcome | None = None
    for prefix in PARENT_PREFIXES:
        values = row.key_filter(prefix)
        if values:
            outcome = import_user(ictx, row.with_values(values), rctx, description=_description(prefix))

    participant_values = row.key_filter(PARTICIPANT_PREFIX)
    if not participant_values:
        return outcome or RowOutcome.skipped("no participant or parent columns")
    # parent addresses are fallback contact info for the participant
    participant_values.update({k: v for k, v in row.items() if "email_address" in k})
    participant = import_user(
        ictx,
        row.with_values(participant_values),
        rctx,
        description=_description(PARTICIPANT_PREFIX),
    )
    if not participant.succeeded:
        return participant

    member = row.key_filter(PARTICIPANT_PREFIX)
    if participant.identifier:
        member["uuid"] = participant.identifier
    if participant.email:
        member["email_address"] = participant.email

    failure: RowOutcome | None = None
    for i in group_indexes(row.keys()):
        group = row.key_filter(f"group_{i}_", "group_")
        if not group:
            continue
        joined = import_membership(ictx, row.with_values({**member, **group}), rctx)
        if joined.failed and failure is None:
            failure = joined
    return failure or participant
