"""
Import wizard schemas.

Duplicate groups and their resolutions, remote matches, the finalized
payload, and the request/response bodies of the import API.
"""

from enum import Enum
from typing import Optional
from pydantic import Field

from models.base import CamelSchema
from models.app_record import (
    AppField,
    CANONICAL_FIELDS,
    AppSnapshot,
    MappedRow,
    RemoteRecord,
    FinalRecord,
)


class ImportStep(str, Enum):
    """Wizard steps, in order."""
    UPLOAD = "upload"
    MAPPING = "mapping"
    CSV_DUPLICATES = "csvDuplicates"
    VALIDATION = "validation"
    DUPLICATES = "duplicates"
    IMPORT = "import"


STEP_ORDER: list[ImportStep] = list(ImportStep)


# ===================
# CSV DUPLICATES
# ===================

class CsvDuplicateAction(str, Enum):
    """How a group of identical rows collapses."""
    KEEP_FIRST = "keepFirst"
    KEEP_LAST = "keepLast"
    MERGE = "merge"
    SKIP = "skip"


class DuplicateGroup(CamelSchema):
    """Rows of the file that share the same composite key."""

    key: str = Field(..., description="field:value pairs joined with |")
    records: list[MappedRow] = Field(..., min_length=2)
    matched_on: list[AppField]

    @property
    def original_indices(self) -> list[int]:
        return [record.original_index for record in self.records]


class CsvDuplicateResolution(CamelSchema):
    """
    Resolution for one duplicate group.

    selected_index is an original row index (keepFirst/keepLast).
    merge_fields maps a field to the 0-based position of the member
    supplying its value; fields not listed come from the first member.
    """

    action: CsvDuplicateAction
    selected_index: Optional[int] = None
    merge_fields: dict[AppField, int] = Field(default_factory=dict)


class CsvDuplicateSummary(CamelSchema):
    """Counts shown before leaving the CSV duplicates step."""

    total_groups: int = 0
    records_kept: int = 0
    records_skipped: int = 0


# ===================
# VALIDATION
# ===================

class InvalidRow(CamelSchema):
    """Row rejected by the import schema."""

    original_index: int
    row_number: int = Field(..., description="1-based data row number")
    values: AppSnapshot
    errors: dict[str, list[str]]


# ===================
# REMOTE DUPLICATES
# ===================

class RemoteAction(str, Enum):
    """What to do with an existing Airtable record."""
    KEEP = "keep"
    REPLACE = "replace"
    MERGE = "merge"


class FieldResolution(str, Enum):
    """Which side supplies a field under merge."""
    EXISTING = "existing"
    IMPORTED = "imported"


def _all_existing() -> dict[AppField, FieldResolution]:
    return {field: FieldResolution.EXISTING for field in CANONICAL_FIELDS}


class RemoteResolution(CamelSchema):
    """Resolution for one existing Airtable record. Defaults to keep."""

    action: RemoteAction = RemoteAction.KEEP
    field_resolutions: dict[AppField, FieldResolution] = Field(default_factory=_all_existing)


class RemoteDuplicateMatch(CamelSchema):
    """An imported row and the Airtable records it collided with."""

    imported: MappedRow
    duplicates: list[RemoteRecord]
    matched_on: list[AppField]


class RemoteCheckResult(CamelSchema):
    """Outcome of looking every survivor up in Airtable."""

    skipped: bool = Field(False, description="True when no scope ID was supplied")
    rows_checked: int = 0
    matches: list[RemoteDuplicateMatch] = Field(default_factory=list)
    lookup_errors: list[str] = Field(default_factory=list)

    @property
    def record_ids(self) -> list[str]:
        return [record.id for match in self.matches for record in match.duplicates]


# ===================
# FINALIZATION
# ===================

class AnalysisResult(CamelSchema):
    """Top-level outcome of the import analysis."""

    success: bool
    message: str
    analyzed: int = 0
    duplicates_found: int = 0
    errors: list[str] = Field(default_factory=list)


class UpdatedRecord(CamelSchema):
    """Existing record that the import replaces or merges into."""

    id: str
    existing_data: RemoteRecord
    new_data: MappedRow
    action: RemoteAction
    field_resolutions: Optional[dict[AppField, FieldResolution]] = None
    final_data: FinalRecord


class UnchangedRecord(CamelSchema):
    """Existing record kept as is."""

    id: str
    data: FinalRecord


class ImportSummary(CamelSchema):
    """Bucket counts. new + updated + unchanged == total_processed."""

    total_processed: int = 0
    new: int = 0
    updated: int = 0
    unchanged: int = 0


class ImportPayload(CamelSchema):
    """Body posted to the notification webhook."""

    scope_id: Optional[str] = None
    new_records: list[FinalRecord] = Field(default_factory=list)
    updated_records: list[UpdatedRecord] = Field(default_factory=list)
    unchanged_records: list[UnchangedRecord] = Field(default_factory=list)
    summary: ImportSummary = Field(default_factory=ImportSummary)
    import_outcome: AnalysisResult


class FinalizeResult(CamelSchema):
    """Finalized data plus the delivery status of the notification."""

    payload: ImportPayload
    notification_sent: bool = False
    notification_error: Optional[str] = None


# ===================
# API REQUESTS
# ===================

class MappingUpdate(CamelSchema):
    """Map one header to a canonical field or its custom slot."""

    header: str = Field(..., min_length=1)
    field: str = Field(..., min_length=1, description="Canonical key or custom_<header>")


class MatchFieldsUpdate(CamelSchema):
    """Fields compared (AND) when grouping CSV duplicates."""

    fields: list[AppField]


class BulkActionRequest(CamelSchema):
    action: CsvDuplicateAction


class GroupActionRequest(CamelSchema):
    group_key: str
    action: CsvDuplicateAction


class SelectRecordRequest(CamelSchema):
    group_key: str
    original_index: int = Field(..., ge=0)


class MergeFieldRequest(CamelSchema):
    group_key: str
    field: AppField
    member_index: int = Field(..., ge=0, description="0-based position within the group")


class RowCorrection(CamelSchema):
    """Inline fix of one field of one row."""

    field: AppField
    value: str = ""


class RemoteActionRequest(CamelSchema):
    action: RemoteAction


class FieldResolutionRequest(CamelSchema):
    field: AppField
    resolution: FieldResolution


# ===================
# API RESPONSES
# ===================

class AvailableField(CamelSchema):
    value: str
    label: str
    is_custom: bool = False


class SessionStateResponse(CamelSchema):
    """Current wizard state of one import session."""

    session_id: str
    step: ImportStep
    filename: Optional[str] = None
    scope_id: Optional[str] = None
    headers: list[str]
    row_count: int
    mapping: dict[str, str]
    has_required_mapping: bool
    match_fields: list[AppField]
    bulk_action: CsvDuplicateAction
    available_fields: list[AvailableField] = Field(default_factory=list)


class UploadResponse(SessionStateResponse):
    auto_mapped_count: int = 0


class CsvDuplicatesResponse(CamelSchema):
    match_fields: list[AppField]
    groups: list[DuplicateGroup]
    resolutions: dict[str, CsvDuplicateResolution]
    summary: CsvDuplicateSummary


class ValidationResponse(CamelSchema):
    valid: bool
    invalid_rows: list[InvalidRow]


class RemoteDuplicatesResponse(RemoteCheckResult):
    resolutions: dict[str, RemoteResolution] = Field(default_factory=dict)
