"""
Row validation against the import schema.

Only appName is required; all other fields are optional strings.
"""

from typing import Iterable
import pydantic
import structlog

from models.app_record import AppField, AppImportItem, MappedRow
from models.imports import InvalidRow

logger = structlog.get_logger(__name__)

# Friendlier messages than pydantic's defaults for required fields
REQUIRED_MESSAGES = {
    AppField.APP_NAME.value: "App name is required",
}


def validate_row(row: MappedRow) -> dict[str, list[str]]:
    """
    Validate one mapped row.

    Returns:
        dict: field key -> messages; empty when the row is valid
    """
    try:
        AppImportItem.model_validate(row.snapshot.model_dump(by_alias=True))
    except pydantic.ValidationError as e:
        errors: dict[str, list[str]] = {}
        for error in e.errors():
            field = str(error["loc"][0]) if error["loc"] else "__root__"
            message = REQUIRED_MESSAGES.get(field, error["msg"])
            errors.setdefault(field, []).append(message)
        return errors

    return {}


def validate_rows(rows: Iterable[MappedRow]) -> list[InvalidRow]:
    """
    Validate every row and collect the failures.

    One bad row never stops the others from being checked.
    """
    invalid = []
    checked = 0

    for row in rows:
        checked += 1
        errors = validate_row(row)
        if errors:
            invalid.append(InvalidRow(
                original_index=row.original_index,
                row_number=row.original_index + 1,
                values=row.snapshot,
                errors=errors,
            ))

    logger.info("rows_validated", checked=checked, invalid=len(invalid))
    return invalid
