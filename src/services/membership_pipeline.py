from __future__ import annotations

import logging
from typing import Any

from src.client.base import DuplicateIdentity, RemoteServiceError, record_id
from src.models.outcome import RowOutcome
from src.models.row import Row, RowContext

from .context import ImportContext
from .identity_cache import normalize_email

"""Membership import ("Users in Groups"): join an existing user to an existing group."""

__all__ = [
    "MEMBERSHIP_CATEGORY",
    "import_membership",
    "payment_options",
]

logger = logging.getLogger("directory_importer.memberships")

MEMBERSHIP_CATEGORY = "Memberships"


def payment_options(fee: str | None) -> dict[str, Any]:
    if fee in ("full", "plan"):
        return {"should_pay": 1, "payment_method": fee}
    return {}


def _split(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _resolve_user(ictx: ImportContext, row: Row) -> tuple[str | None, str | None]:
    """Return (user id, failure reason)."""
    user_ref = row.get("uuid")
    if user_ref:
        try:
            user_id = record_id(ictx.client.user_get(user_ref))
        except RemoteServiceError:
            user_id = None
        if user_id is None:
            return None, f"User {user_ref} doesn't exist to add to group"
        return user_id, None

    email = row.get("email_address")
    if not email:
        return None, "User can't be added to group without email address."

    def lookup() -> str | None:
        return record_id(ictx.client.user_lookup_by_email(email))

    user_id, _ = ictx.identities.resolve(normalize_email(email), lookup)
    if user_id is None:
        return None, f"User {email} doesn't exist to add to group"
    return user_id, None


def import_membership(
    ictx: ImportContext, row: Row, rctx: RowContext, *, retry: bool = False
) -> RowOutcome:
    log_extra = rctx.log_extra
    try:
        user_id, reason = _resolve_user(ictx, row)
    except DuplicateIdentity as e:
        reason = f"User {e}"
        logger.error(reason, extra=log_extra)
        return RowOutcome.duplicate(reason)
    except RemoteServiceError as e:
        reason = f"Failed to look up user: {e}"
        logger.error(reason, extra=log_extra)
        return RowOutcome.remote_failure(reason)
    if user_id is None:
        logger.error(reason, extra=log_extra)
        return RowOutcome.validation_failed(reason or "user not found")

    group_id = row.get("group_uuid")
    group_name = row.get("group_name")
    if not group_id and group_name:
        try:
            group_id = ictx.resolver.find_group(group_name, rctx)
        except RemoteServiceError as e:
            reason = f"Failed to look up group {group_name}: {e}"
            logger.error(reason, extra=log_extra)
            return RowOutcome.remote_failure(reason)
    if not group_id:
        who = row.get("email_address") or user_id
        reason = (
            f"User {who} can't be added to group {group_name}: group not found"
            if group_name
            else f"User {who} can't be added to group without group uuid."
        )
        logger.error(reason, extra=log_extra)
        return RowOutcome.validation_failed(reason)

    roles = _split(row.get("group_role"))
    options = payment_options(row.get("group_fee"))
    webform_ids = _split(row.get("group_webform_id")) or None
    try:
        if roles:
            for role in roles:
                ictx.client.user_join_group(group_id, user_id, role, options, webform_ids)
        else:
            ictx.client.user_join_group(group_id, user_id)
    except RemoteServiceError as e:
        reason = f"User {user_id} failed to join group {group_id}: {e}"
        logger.error(reason, extra=log_extra)
        return RowOutcome.remote_failure(reason)

    if roles:
        logger.info(
            "User %s joined group %s with role(s) %s",
            user_id,
            group_id,
            ", ".join(roles),
            extra=log_extra,
        )
    else:
        logger.info("User %s joined group %s", user_id, group_id, extra=log_extra)
    outcome = RowOutcome.created(user_id, MEMBERSHIP_CATEGORY, email=row.get("email_address"))
    ictx.record_outcome(outcome)
    return outcome
