"""
Column mapping between CSV headers and canonical app fields.

A mapping is a dict of slot -> header, where a slot is a canonical field
key (appName, appId, ...) or custom_<header>. Each header occupies
exactly one slot.
"""

from typing import Iterable
import structlog

from models.app_record import AppField, CANONICAL_FIELDS, REQUIRED_FIELDS, AppSnapshot, MappedRow
from models.imports import AvailableField
from parsers.csv_parser import CsvRow
from exceptions import ValidationError

logger = structlog.get_logger(__name__)

CUSTOM_FIELD_PREFIX = "custom_"

_CANONICAL_KEYS = {field.value for field in CANONICAL_FIELDS}
_FIELDS_BY_LABEL = {field.label.lower(): field for field in CANONICAL_FIELDS}


def custom_field_key(header: str) -> str:
    """Slot used when a header is kept as a custom field."""
    return f"{CUSTOM_FIELD_PREFIX}{header}"


def is_custom_field(slot: str) -> bool:
    return slot.startswith(CUSTOM_FIELD_PREFIX)


def auto_map_columns(headers: Iterable[str]) -> dict[str, str]:
    """
    Build the initial mapping for a fresh upload.

    A header whose text equals a canonical label (case-insensitive) maps
    to that field; every other header maps to its custom slot.

    Args:
        headers: Headers in file order

    Returns:
        dict: slot -> header
    """
    mapping: dict[str, str] = {}

    for header in headers:
        field = _FIELDS_BY_LABEL.get(header.strip().lower())
        if field is not None and field.value not in mapping:
            mapping[field.value] = header
        else:
            mapping[custom_field_key(header)] = header
            logger.debug("column_mapped_as_custom", header=header)

    logger.info(
        "columns_auto_mapped",
        canonical=sum(1 for slot in mapping if not is_custom_field(slot)),
        custom=sum(1 for slot in mapping if is_custom_field(slot))
    )

    return mapping


def set_mapping(mapping: dict[str, str], header: str, slot: str) -> dict[str, str]:
    """
    Map a header to a slot, returning the new mapping.

    The header's previous slot is removed first. If the slot belonged to
    another header, that header falls back to its custom slot so that
    every header keeps exactly one slot.

    Args:
        mapping: Current mapping (not modified)
        header: Header being re-mapped
        slot: Canonical field key or custom_<header>

    Raises:
        ValidationError: Unknown header or slot
    """
    headers = set(mapping.values())
    if header not in headers:
        raise ValidationError(
            code="UNKNOWN_HEADER",
            message=f"Column '{header}' is not in the uploaded file",
            details={"header": header}
        )

    if is_custom_field(slot):
        if slot != custom_field_key(header):
            raise ValidationError(
                code="INVALID_CUSTOM_FIELD",
                message=f"Custom slot for '{header}' must be '{custom_field_key(header)}'",
                details={"header": header, "field": slot}
            )
    elif slot not in _CANONICAL_KEYS:
        raise ValidationError(
            code="UNKNOWN_FIELD",
            message=f"Unknown field '{slot}'",
            details={"field": slot, "valid": sorted(_CANONICAL_KEYS)}
        )

    new_mapping = {key: value for key, value in mapping.items() if value != header}

    displaced = new_mapping.get(slot)
    new_mapping[slot] = header

    if displaced is not None and displaced != header:
        new_mapping[custom_field_key(displaced)] = displaced
        logger.info("column_displaced_to_custom", header=displaced, field=slot)

    logger.info("column_mapped", header=header, field=slot)
    return new_mapping


def has_required_mapping(mapping: dict[str, str]) -> bool:
    """True once every required field (appName) has a column."""
    return all(field.value in mapping for field in REQUIRED_FIELDS)


def custom_fields(mapping: dict[str, str]) -> dict[str, str]:
    """Headers kept as custom fields: header name -> header."""
    return {header: header for slot, header in mapping.items() if is_custom_field(slot)}


def auto_mapped_count(mapping: dict[str, str]) -> int:
    """Number of headers matched to a canonical field."""
    return sum(1 for slot in mapping if not is_custom_field(slot))


def mapping_signature(mapping: dict[str, str]) -> str:
    """Order-independent string form of a mapping."""
    return "|".join(f"{slot}={header}" for slot, header in sorted(mapping.items()))


def available_fields(headers: Iterable[str]) -> list[AvailableField]:
    """Canonical fields followed by the custom slot of every header."""
    fields = [AvailableField(value=field.value, label=field.label) for field in CANONICAL_FIELDS]
    fields.extend(
        AvailableField(value=custom_field_key(header), label=header, is_custom=True)
        for header in headers
    )
    return fields


def build_row(row: CsvRow, mapping: dict[str, str]) -> MappedRow:
    """Project a parsed row through the mapping."""
    values = {
        field.attr: row.cells.get(mapping[field.value], "") if field.value in mapping else ""
        for field in CANONICAL_FIELDS
    }
    extras = {header: row.cells.get(header, "") for header in custom_fields(mapping)}

    return MappedRow(
        original_index=row.original_index,
        snapshot=AppSnapshot(**values),
        custom_fields=extras,
    )


def build_rows(rows: Iterable[CsvRow], mapping: dict[str, str]) -> list[MappedRow]:
    return [build_row(row, mapping) for row in rows]


def mapped_header(mapping: dict[str, str], field: AppField) -> str:
    """
    Column currently feeding a canonical field.

    Raises:
        ValidationError: Field has no column
    """
    header = mapping.get(field.value)
    if header is None:
        raise ValidationError(
            code="FIELD_NOT_MAPPED",
            message=f"No column is mapped to {field.label}",
            details={"field": field.value}
        )
    return header
