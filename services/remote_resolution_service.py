"""
Resolution of imported rows against existing Airtable records.

keep     existing record wins
replace  imported row supersedes every field
merge    per field: existing, or imported when the imported value is non-empty
"""

from typing import Optional
import structlog

from models.app_record import CANONICAL_FIELDS, AppField, FinalRecord, MappedRow, RemoteRecord
from models.imports import (
    FieldResolution,
    RemoteAction,
    RemoteCheckResult,
    RemoteResolution,
)
from utils.domain_utils import extract_root_domain
from exceptions import RemoteRecordNotFoundError

logger = structlog.get_logger(__name__)


def default_resolutions(check: Optional[RemoteCheckResult]) -> dict[str, RemoteResolution]:
    """Every discovered record starts as keep with all fields existing."""
    if check is None:
        return {}
    return {record_id: RemoteResolution() for record_id in check.record_ids}


def _require(resolutions: dict[str, RemoteResolution], record_id: str) -> RemoteResolution:
    resolution = resolutions.get(record_id)
    if resolution is None:
        raise RemoteRecordNotFoundError(record_id)
    return resolution


def set_action(
    resolutions: dict[str, RemoteResolution],
    record_id: str,
    action: RemoteAction
) -> RemoteResolution:
    """
    Change the action for one remote record. Field choices are kept.

    Raises:
        RemoteRecordNotFoundError: Record was not discovered as a duplicate
    """
    current = _require(resolutions, record_id)
    updated = current.model_copy(update={"action": action})
    resolutions[record_id] = updated

    logger.info("remote_action_set", record_id=record_id, action=action.value)
    return updated


def set_field_resolution(
    resolutions: dict[str, RemoteResolution],
    record_id: str,
    field: AppField,
    resolution: FieldResolution
) -> RemoteResolution:
    """
    Choose which side supplies one field when the record is merged.

    Raises:
        RemoteRecordNotFoundError: Record was not discovered as a duplicate
    """
    current = _require(resolutions, record_id)
    field_resolutions = {**current.field_resolutions, field: resolution}
    updated = current.model_copy(update={"field_resolutions": field_resolutions})
    resolutions[record_id] = updated

    logger.debug(
        "remote_field_resolution_set",
        record_id=record_id,
        field=field.value,
        resolution=resolution.value
    )
    return updated


def calculate_final_data(
    existing: RemoteRecord,
    imported: MappedRow,
    resolution: RemoteResolution
) -> FinalRecord:
    """
    Resolved values for one existing/imported pair.

    rootDomain always follows the website that won; custom fields come
    from the imported row.
    """
    values: dict[str, str] = {}

    for field in CANONICAL_FIELDS:
        existing_value = existing.get(field)
        imported_value = imported.get(field)

        if resolution.action == RemoteAction.REPLACE:
            value = imported_value
        elif resolution.action == RemoteAction.MERGE:
            choice = resolution.field_resolutions.get(field, FieldResolution.EXISTING)
            if choice == FieldResolution.IMPORTED and imported_value:
                value = imported_value
            else:
                value = existing_value
        else:
            value = existing_value

        values[field.attr] = value

    return FinalRecord(
        **values,
        root_domain=extract_root_domain(values[AppField.COMPANY_WEBSITE.attr]),
        custom_fields=dict(imported.custom_fields),
    )


def final_record_from_row(row: MappedRow) -> FinalRecord:
    """FinalRecord for an imported row with no remote counterpart."""
    return FinalRecord(
        **{field.attr: row.get(field) for field in CANONICAL_FIELDS},
        root_domain=extract_root_domain(row.get(AppField.COMPANY_WEBSITE)),
        custom_fields=dict(row.custom_fields),
    )
