"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, CamelSchema
from models.app_record import (
    AppField,
    FIELD_LABELS,
    CANONICAL_FIELDS,
    IDENTITY_FIELDS,
    REQUIRED_FIELDS,
    AppSnapshot,
    AppImportItem,
    MappedRow,
    RemoteRecord,
    FinalRecord,
)
from models.imports import (
    ImportStep,
    STEP_ORDER,
    CsvDuplicateAction,
    DuplicateGroup,
    CsvDuplicateResolution,
    CsvDuplicateSummary,
    InvalidRow,
    RemoteAction,
    FieldResolution,
    RemoteResolution,
    RemoteDuplicateMatch,
    RemoteCheckResult,
    AnalysisResult,
    UpdatedRecord,
    UnchangedRecord,
    ImportSummary,
    ImportPayload,
    FinalizeResult,
)

__all__ = [
    # Base
    "BaseSchema",
    "CamelSchema",

    # App records
    "AppField",
    "FIELD_LABELS",
    "CANONICAL_FIELDS",
    "IDENTITY_FIELDS",
    "REQUIRED_FIELDS",
    "AppSnapshot",
    "AppImportItem",
    "MappedRow",
    "RemoteRecord",
    "FinalRecord",

    # Import wizard
    "ImportStep",
    "STEP_ORDER",
    "CsvDuplicateAction",
    "DuplicateGroup",
    "CsvDuplicateResolution",
    "CsvDuplicateSummary",
    "InvalidRow",
    "RemoteAction",
    "FieldResolution",
    "RemoteResolution",
    "RemoteDuplicateMatch",
    "RemoteCheckResult",
    "AnalysisResult",
    "UpdatedRecord",
    "UnchangedRecord",
    "ImportSummary",
    "ImportPayload",
    "FinalizeResult",
]
