from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date
from threading import RLock

from src.client.base import DuplicateIdentity, RemoteServiceError, record_id
from src.models.outcome import RowOutcome
from src.models.row import Row, RowContext

from .context import ImportContext
from .identity_cache import normalize_email, parents_key
from .validation import ValidationError, age_on, missing_fields, parse_birthdate, valid_email_address

"""Person import: parents, minors, email identity and child de-duplication.

Decision tree per row (first hit wins):
1. birthdate missing/invalid -> VALIDATION_FAILED
2. parent_N_email_address resolved through the identity cache (errors logged, not fatal)
3. minor without any resolved parent -> VALIDATION_FAILED
4. no email: needs a parent, serialized on the parents-set key; email: resolve with lock,
   existing -> ALREADY_EXISTS, new -> syntax + domain checks
5. required fields -> VALIDATION_FAILED
6. under the lock: cache re-check, child de-dup, create
"""

__all__ = [
    "USER_CATEGORY",
    "import_user",
    "verify_children",
]

logger = logging.getLogger("directory_importer.users")

USER_CATEGORY = "Users"
REQUIRED_FIELDS = ("first_name", "last_name", "gender", "birthdate")
PARENT_PREFIXES = ("parent_1_", "parent_2_")


def _describe_prefix(prefix: str) -> str:
    # "parent_1_" -> "Parent 1"
    return " ".join(prefix.split("_")).strip().capitalize()


def _resolve_email(
    ictx: ImportContext, email: str, *, want_lock: bool = False
) -> tuple[str | None, RLock | None]:
    def lookup() -> str | None:
        return record_id(ictx.client.user_lookup_by_email(email))

    return ictx.identities.resolve(normalize_email(email), lookup, want_lock=want_lock)


def _resolve_parents(ictx: ImportContext, row: Row, rctx: RowContext) -> dict[str, str]:
    parents: dict[str, str] = {}
    for prefix in PARENT_PREFIXES:
        email = row.get(prefix + "email_address")
        if not email:
            continue
        label = _describe_prefix(prefix)
        try:
            parent_id, _ = _resolve_email(ictx, email)
        except DuplicateIdentity as e:
            logger.error("%s %s", label, e, extra=rctx.log_extra)
            continue
        if parent_id is None:
            logger.warning("Can't find account for %s: %s", label, email, extra=rctx.log_extra)
            continue
        parents[prefix] = parent_id
    return parents


def verify_children(
    ictx: ImportContext,
    row: Row,
    parents: Mapping[str, str],
    rctx: RowContext,
    description: str = "User",
    matched_id: str | None = None,
) -> tuple[str, str | None] | None:
    """Find an existing child of ``parents`` with the row's name and link it to every parent.

    With ``matched_id`` (the person already exists) only that id counts as a
    match. Returns ``(child id, child email)`` for a name match, else None.
    """
    first, last = row.get("first_name"), row.get("last_name")
    if not parents or not first or not last:
        return None
    wanted = (first.lower(), last.lower())

    found: tuple[str, str | None] | None = None
    linked: list[str] = []
    for prefix, parent_id in parents.items():
        for child in ictx.client.user_list_children(parent_id):
            child_id = record_id(child)
            if child_id is None:
                continue
            if matched_id is not None:
                if child_id == matched_id:
                    linked.append(prefix)
                    break
                continue
            if found is not None:
                if child_id == found[0]:
                    linked.append(prefix)
                    break
                continue
            kid = ictx.client.user_get(child_id)
            name = ((kid.get("first_name") or "").lower(), (kid.get("last_name") or "").lower())
            if name != wanted:
                continue
            logger.info(
                "%s has matching child: %s %s %s",
                _describe_prefix(prefix),
                description,
                first,
                last,
                extra=rctx.log_extra,
            )
            found = (child_id, kid.get("email"))
            linked.append(prefix)
            break

    child_id = matched_id if matched_id is not None else (found[0] if found else None)
    if child_id is None:
        return None
    for prefix, parent_id in parents.items():
        if prefix in linked:
            continue
        logger.info(
            "Adding existing child, %s %s %s to %s",
            description,
            first,
            last,
            _describe_prefix(prefix),
            extra=rctx.log_extra,
        )
        ictx.client.user_create_child(parent_id, "", "", None, "", {"child_uuid": child_id})
    return found


def import_user(
    ictx: ImportContext,
    row: Row,
    rctx: RowContext,
    *,
    retry: bool = False,
    description: str = "User",
) -> RowOutcome:
    """Import one person row; ``description`` labels logs and the role statistic."""
    try:
        return _import_user(ictx, row, rctx, description)
    except RemoteServiceError as e:
        logger.error("Failed to import %s: %s", description, e, extra=rctx.log_extra)
        return RowOutcome.remote_failure(f"Failed to import {description}: {e}")


def _import_user(ictx: ImportContext, row: Row, rctx: RowContext, description: str) -> RowOutcome:
    log_extra = rctx.log_extra

    if not row.get("birthdate"):
        reason = f"No Birth Date Listed. Failed to import {description}."
        logger.error(reason, extra=log_extra)
        return RowOutcome.validation_failed(reason)
    try:
        birthdate = parse_birthdate(row["birthdate"])
    except ValidationError as e:
        reason = f"Invalid Birth Date. Failed to import {description}."
        logger.error("%s %s", reason, e, extra=log_extra)
        return RowOutcome.validation_failed(reason)

    parents = _resolve_parents(ictx, row, rctx)

    threshold = ictx.config.minor_age_threshold
    if age_on(birthdate, ictx.today) < threshold and not parents:
        reason = f"Missing parents for {description} under age {threshold}."
        logger.error(reason, extra=log_extra)
        return RowOutcome.validation_failed(reason)

    email = row.get("email_address")
    extra: dict[str, object] = {}
    if not email:
        if not parents:
            reason = f"Missing parents for {description} without email address."
            logger.error(reason, extra=log_extra)
            return RowOutcome.validation_failed(reason)
        extra["email_alternative"] = 1
        lock = ictx.identities.lock_for(parents_key(list(parents.values())))
    else:
        try:
            existing, lock = _resolve_email(ictx, email, want_lock=True)
        except DuplicateIdentity as e:
            reason = f"{description} {e}"
            logger.error(reason, extra=log_extra)
            return RowOutcome.duplicate(reason)
        if existing is not None:
            return _already_exists(ictx, row, rctx, parents, description, email, existing)
        if not valid_email_address(email):
            reason = f"{description} has an invalid email address: {email}. Skipping."
            logger.error(reason, extra=log_extra)
            return RowOutcome.validation_failed(reason)
        if not ictx.email_domain_ok(email):
            reason = (
                f"{description} has an email address with an invalid or inactive domain: "
                f"{email}. Skipping."
            )
            logger.error(reason, extra=log_extra)
            return RowOutcome.validation_failed(reason)

    missing = missing_fields(row, REQUIRED_FIELDS)
    if missing:
        reason = f"Missing required fields for {description}: {', '.join(missing)}"
        logger.error(reason, extra=log_extra)
        return RowOutcome.validation_failed(reason)

    logger.info("Importing %s: %s %s", description, row["first_name"], row["last_name"], extra=log_extra)

    with lock:
        if email:
            cached = ictx.identities.get(normalize_email(email))
            if cached is not None:
                return _already_exists(ictx, row, rctx, parents, description, email, cached)

        match = verify_children(ictx, row, parents, rctx, description)
        if match is not None:
            child_id, child_email = match
            return _count(
                ictx, RowOutcome.already_exists(child_id, USER_CATEGORY, email=child_email), description
            )

        new_id, new_email = _create(ictx, row, parents, birthdate, email, extra)
        if new_id is None:
            reason = f"Failed to import {description}: directory returned no id"
            logger.error(reason, extra=log_extra)
            return RowOutcome.remote_failure(reason)
        if email:
            ictx.identities.store(normalize_email(email), new_id)

    outcome = _count(ictx, RowOutcome.created(new_id, USER_CATEGORY, email=new_email), description)

    # first parent was linked by user_create_child
    for prefix, parent_id in list(parents.items())[1:]:
        ictx.client.user_create_child(parent_id, "", "", None, "", {"child_uuid": new_id})
        logger.info("Linked %s to %s", description, _describe_prefix(prefix), extra=log_extra)
    return outcome


def _already_exists(
    ictx: ImportContext,
    row: Row,
    rctx: RowContext,
    parents: Mapping[str, str],
    description: str,
    email: str,
    identifier: str,
) -> RowOutcome:
    logger.warning(
        "%s already exists: %s at UUID: %s. Participant will still be added to groups.",
        description,
        email,
        identifier,
        extra=rctx.log_extra,
    )
    verify_children(ictx, row, parents, rctx, description, matched_id=identifier)
    return _count(ictx, RowOutcome.already_exists(identifier, USER_CATEGORY, email=email), description)


def _count(ictx: ImportContext, outcome: RowOutcome, description: str) -> RowOutcome:
    """Record a successful person row, plus its role ("Parent 1s", "Participants")."""
    ictx.record_outcome(outcome)
    if description != "User":
        ictx.stats.increment(description + "s")
    return outcome


def _create(
    ictx: ImportContext,
    row: Row,
    parents: Mapping[str, str],
    birthdate: date,
    email: str | None,
    extra: dict[str, object],
) -> tuple[str | None, str | None]:
    parent_ids = list(parents.values())
    if parent_ids:
        if email:
            extra["email"] = email
        record = ictx.client.user_create_child(
            parent_ids[0], row["first_name"], row["last_name"], birthdate, row["gender"], extra
        )
    else:
        record = ictx.client.user_create(
            email, row["first_name"], row["last_name"], row["gender"], birthdate, extra
        )
    return record_id(record), (record.get("email") if record else None) or email
