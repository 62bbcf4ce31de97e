from __future__ import annotations

import logging

from src.client.base import RemoteServiceError, record_id
from src.models.outcome import RowOutcome
from src.models.row import Row, RowContext

from .context import ImportContext
from .dependency_resolver import disambiguate_group_name

"""Group import: resume/delete/clone housekeeping, parent group resolution, creation."""

__all__ = [
    "GROUP_CATEGORY",
    "import_group",
]

logger = logging.getLogger("directory_importer.groups")

GROUP_CATEGORY = "Groups"


def import_group(
    ictx: ImportContext, row: Row, rctx: RowContext, *, retry: bool = False
) -> RowOutcome:
    """Import one group row.

    ``retry`` marks the sequential replay of a deferred row: a parent group
    that is still unknown then fails the row instead of deferring it again.
    """
    try:
        return _import_group(ictx, row, rctx, retry)
    except RemoteServiceError as e:
        logger.error("Failed to import group: %s", e, extra=rctx.log_extra)
        return RowOutcome.remote_failure(f"Failed to import group: {e}")


def _import_group(ictx: ImportContext, row: Row, rctx: RowContext, retry: bool) -> RowOutcome:
    log_extra = rctx.log_extra
    client = ictx.client
    identifier = ictx.registry.id_for_row(row.index) or row.get("uuid")
    clone_from = row.get("group_clone")

    if row.get("delete"):
        return _delete_group(ictx, identifier, rctx)

    if clone_from and identifier:
        try:
            client.group_get(identifier)
            client.group_get(clone_from)
        except RemoteServiceError:
            logger.warning(
                "The group you are trying to clone from can not be found, moving on to creating the group.",
                extra=log_extra,
            )
        else:
            logger.info("Cloning settings from group: %s", clone_from, extra=log_extra)
            client.group_clone(identifier, clone_from)
            return RowOutcome.skipped(f"cloned settings from {clone_from} into {identifier}")
    elif identifier:
        logger.info("Group already imported.", extra=log_extra)
        outcome = RowOutcome.already_exists(identifier, GROUP_CATEGORY)
        ictx.record_outcome(outcome)
        return outcome

    owner_id = row.get("owner_uuid")
    if not owner_id:
        return _invalid("Group import requires group owner", rctx)
    try:
        owner = client.user_get(owner_id)
    except RemoteServiceError:
        owner = None
    if record_id(owner) is None:
        return _invalid(f"Couldn't get group owner from UUID: {owner_id}", rctx)

    location = row.key_filter("address_")
    if not location.get("zip"):
        return _invalid("Location ZIP required for group import.", rctx)

    categories = [c.strip() for c in row.get("group_categories", "").split(",") if c.strip()]
    if not categories:
        return _invalid("Group Type required for group import.", rctx)

    base_name = row.get("group_name")
    if not base_name:
        return _invalid("Group name required for group import.", rctx)

    group_type = row.get("group_type")
    extra: dict[str, object] = {"owner_uuid": owner_id}
    if group_type:
        extra["group_type"] = group_type

    name, above_override = ictx.registry.reserve(
        lambda taken: disambiguate_group_name(base_name, group_type, taken)
    )
    try:
        if name != base_name:
            logger.info("Group name %s taken, importing as %s", base_name, name, extra=log_extra)
        group_above = above_override or row.get("group_above")

        if row.get("group_uuid"):
            extra["groups_above"] = [row["group_uuid"]]
        elif group_above:
            parent_id = ictx.resolver.find_group(group_above, rctx)
            if parent_id is None:
                if retry:
                    reason = f"Couldn't find group above: {group_above}"
                    logger.error(reason, extra=log_extra)
                    return RowOutcome.unresolved(group_above)
                logger.warning(
                    "Couldn't find group above: %s, retrying after the other rows",
                    group_above,
                    extra=log_extra,
                )
                return RowOutcome.deferred(group_above)
            extra["groups_above"] = [parent_id]

        logger.info("Importing group: %s", name, extra=log_extra)
        record = client.group_create(
            name, row.get("group_description"), location, categories[-1], extra
        )
        group_id = record_id(record)
        if group_id is None:
            reason = f"Failed to import group {name}: directory returned no id"
            logger.error(reason, extra=log_extra)
            return RowOutcome.remote_failure(reason)
        ictx.registry.register(row.index, name, group_id)
    finally:
        # no-op once registered
        ictx.registry.release(name)

    logger.info("Group UUID: %s", group_id, extra=log_extra)
    outcome = RowOutcome.created(group_id, GROUP_CATEGORY)
    ictx.record_outcome(outcome)

    if clone_from:
        logger.info("Cloning settings from group: %s", clone_from, extra=log_extra)
        try:
            client.group_clone(group_id, clone_from)
        except RemoteServiceError as e:
            logger.error("Failed to clone settings from %s: %s", clone_from, e, extra=log_extra)
    return outcome


def _delete_group(ictx: ImportContext, identifier: str | None, rctx: RowContext) -> RowOutcome:
    if not identifier:
        return _invalid("Group delete requested without a group UUID", rctx)
    try:
        # deactivate first so registration settings are off
        ictx.client.group_update(identifier, {"active": 0})
        ictx.client.group_delete(identifier)
    except RemoteServiceError as e:
        reason = f"There was a problem deleting group: {identifier} {e}"
        logger.error(reason, extra=rctx.log_extra)
        return RowOutcome.remote_failure(reason)
    logger.info("Deleting group: %s", identifier, extra=rctx.log_extra)
    return RowOutcome.skipped(f"deleted group {identifier}")


def _invalid(reason: str, rctx: RowContext) -> RowOutcome:
    logger.error(reason, extra=rctx.log_extra)
    return RowOutcome.validation_failed(reason)
