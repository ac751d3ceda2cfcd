"""
Import wizard session.

One ImportSession owns every piece of state of one import: parsed rows,
column mapping, match fields, duplicate groups and their resolutions,
validation results, remote matches and their resolutions, and the
current step. The stage services are pure; this class wires them
together and gates step navigation.

Steps: upload → mapping → csvDuplicates → validation → duplicates → import


Editing an earlier stage moves the session back to that stage and
discards everything computed after it.
"""

import uuid
from typing import Optional
import structlog

from parsers.csv_parser import CsvParseResult, parse_upload
from models.app_record import AppField, MappedRow
from models.imports import (
    STEP_ORDER,
    ImportStep,
    CsvDuplicateAction,
    CsvDuplicateResolution,
    CsvDuplicateSummary,
    DuplicateGroup,
    InvalidRow,
    RemoteAction,
    FieldResolution,
    RemoteCheckResult,
    RemoteResolution,
    FinalizeResult,
    SessionStateResponse,
)
from services import column_mapping_service as mapping_service
from services import csv_duplicate_service as duplicate_service
from services import remote_resolution_service as remote_resolution
from services.validation_service import validate_rows
from services.remote_duplicate_service import RemoteDuplicateService, get_remote_duplicate_service
from services.finalize_service import FinalizeService, get_finalize_service
from exceptions import (
    CsvParseError,
    MappingRequiredError,
    NotFoundError,
    RowValidationFailedError,
    InvalidStepTransitionError,
)

logger = structlog.get_logger(__name__)


class ImportSession:
    """
    State and operations of one import.

    Not thread-safe: a session is driven by one user, one action at a time.
    """

    def __init__(
        self,
        parsed: CsvParseResult,
        scope_id: Optional[str] = None,
        session_id: Optional[str] = None,
        remote_service: Optional[RemoteDuplicateService] = None,
        finalize_service: Optional[FinalizeService] = None
    ):
        if not parsed.headers:
            raise CsvParseError("File has no header row", details={"filename": parsed.filename})

        self.id = session_id or str(uuid.uuid4())
        self.scope_id = scope_id or None
        self.filename = parsed.filename
        self.headers = list(parsed.headers)
        self.raw_rows = parsed.rows

        self._remote_service = remote_service
        self._finalize_service = finalize_service

        # Mapping
        self.mapping = mapping_service.auto_map_columns(self.headers)

        # CSV duplicates
        self.match_fields: list[AppField] = list(duplicate_service.DEFAULT_MATCH_FIELDS)
        self.bulk_action = duplicate_service.DEFAULT_BULK_ACTION
        self.groups: list[DuplicateGroup] = []
        self.resolutions: dict[str, CsvDuplicateResolution] = {}
        self._groups_signature: Optional[tuple] = None
        self._rows_version = 0

        # Validation
        self.invalid_rows: list[InvalidRow] = []

        # Remote duplicates
        self.remote_check: Optional[RemoteCheckResult] = None
        self.remote_resolutions: dict[str, RemoteResolution] = {}

        # Import
        self.result: Optional[FinalizeResult] = None

        self.step = ImportStep.MAPPING

        logger.info(
            "import_session_created",
            session_id=self.id,
            filename=self.filename,
            rows=len(self.raw_rows),
            headers=len(self.headers),
            scope_id=self.scope_id
        )

    @classmethod
    def from_upload(
        cls,
        content: bytes,
        filename: Optional[str] = None,
        scope_id: Optional[str] = None,
        **kwargs
    ) -> "ImportSession":
        """Parse an uploaded file and start a session on it."""
        return cls(parse_upload(content, filename), scope_id=scope_id, **kwargs)

    @property
    def remote_service(self) -> RemoteDuplicateService:
        if self._remote_service is None:
            self._remote_service = get_remote_duplicate_service()
        return self._remote_service

    @property
    def finalize_service(self) -> FinalizeService:
        if self._finalize_service is None:
            self._finalize_service = get_finalize_service()
        return self._finalize_service

    # ===================
    # MAPPING
    # ===================

    @property
    def rows(self) -> list[MappedRow]:
        """All parsed rows seen through the current mapping."""
        return mapping_service.build_rows(self.raw_rows, self.mapping)

    @property
    def has_required_mapping(self) -> bool:
        return mapping_service.has_required_mapping(self.mapping)

    def set_mapping(self, header: str, field: str) -> dict[str, str]:
        """Map a header to a canonical field or its custom slot."""
        self.mapping = mapping_service.set_mapping(self.mapping, header, field)
        self._rewind_to(ImportStep.MAPPING)
        return self.mapping

    # ===================
    # CSV DUPLICATES
    # ===================

    def set_match_fields(self, fields: list[AppField]) -> list[AppField]:
        """Select the fields compared when grouping. Groups refresh on next check."""
        self.match_fields = duplicate_service.ordered_match_fields(fields)
        self._rewind_to(ImportStep.CSV_DUPLICATES)
        logger.info(
            "match_fields_set",
            session_id=self.id,
            fields=[field.value for field in self.match_fields]
        )
        return self.match_fields

    def _current_signature(self) -> tuple:
        return (
            self._rows_version,
            mapping_service.mapping_signature(self.mapping),
            duplicate_service.match_fields_key(self.match_fields),
        )

    def check_for_csv_duplicates(self) -> list[DuplicateGroup]:
        """
        Group duplicate rows, recomputing only when rows, mapping or
        match fields changed since the last check.
        """
        signature = self._current_signature()
        if signature == self._groups_signature:
            return self.groups

        groups = duplicate_service.find_csv_duplicates(self.rows, self.match_fields)
        self.resolutions = duplicate_service.reconcile_resolutions(
            groups, self.groups, self.resolutions, self.bulk_action
        )
        self.groups = groups
        self._groups_signature = signature
        return self.groups

    def apply_bulk_action(self, action: CsvDuplicateAction) -> dict[str, CsvDuplicateResolution]:
        """Resolve every group with one action; also the default for new groups."""
        self.check_for_csv_duplicates()
        self.bulk_action = action
        self.resolutions = duplicate_service.apply_bulk_action(self.groups, action)
        self._rewind_to(ImportStep.CSV_DUPLICATES)
        return self.resolutions

    def set_group_action(self, group_key: str, action: CsvDuplicateAction) -> CsvDuplicateResolution:
        group = duplicate_service.find_group(self.check_for_csv_duplicates(), group_key)
        resolution = duplicate_service.set_group_action(group, self.resolutions.get(group_key), action)
        self.resolutions[group_key] = resolution
        self._rewind_to(ImportStep.CSV_DUPLICATES)
        return resolution

    def select_record(self, group_key: str, original_index: int) -> CsvDuplicateResolution:
        group = duplicate_service.find_group(self.check_for_csv_duplicates(), group_key)
        resolution = duplicate_service.select_record(group, self.resolutions.get(group_key), original_index)
        self.resolutions[group_key] = resolution
        self._rewind_to(ImportStep.CSV_DUPLICATES)
        return resolution

    def set_merge_field(self, group_key: str, field: AppField, member_index: int) -> CsvDuplicateResolution:
        group = duplicate_service.find_group(self.check_for_csv_duplicates(), group_key)
        resolution = duplicate_service.set_merge_field(
            group, self.resolutions.get(group_key), field, member_index
        )
        self.resolutions[group_key] = resolution
        self._rewind_to(ImportStep.CSV_DUPLICATES)
        return resolution

    def csv_duplicate_summary(self) -> CsvDuplicateSummary:
        return duplicate_service.summarize(self.check_for_csv_duplicates(), self.resolutions)

    def resolve_survivors(self) -> list[MappedRow]:
        """Rows left once every duplicate group is collapsed."""
        groups = self.check_for_csv_duplicates()
        return duplicate_service.resolve_survivors(self.rows, groups, self.resolutions)

    # ===================
    # VALIDATION
    # ===================

    def validate(self) -> list[InvalidRow]:
        """Validate every parsed row against the import schema."""
        self.invalid_rows = validate_rows(self.rows)
        return self.invalid_rows

    def correct_row(self, original_index: int, field: AppField, value: str) -> list[InvalidRow]:
        """
        Fix one field of one row in place and validate again.

        The value is written to the raw cell under the column mapped to
        the field, so the change survives re-mapping.

        Raises:
            NotFoundError: No row with that index
            ValidationError: Field has no column mapped
        """
        if not 0 <= original_index < len(self.raw_rows):
            raise NotFoundError("Row", str(original_index), code="ROW_NOT_FOUND")

        header = mapping_service.mapped_header(self.mapping, field)
        self.raw_rows[original_index].cells[header] = value.strip()
        self._rows_version += 1
        self._rewind_to(ImportStep.VALIDATION)

        logger.info(
            "row_corrected",
            session_id=self.id,
            original_index=original_index,
            field=field.value
        )

        return self.validate()

    # ===================
    # REMOTE DUPLICATES
    # ===================

    def check_remote_duplicates(self) -> RemoteCheckResult:
        """Look every survivor up in Airtable; all discovered records default to keep."""
        self.remote_check = self.remote_service.check_for_duplicates(
            self.resolve_survivors(), self.scope_id
        )
        self.remote_resolutions = remote_resolution.default_resolutions(self.remote_check)
        return self.remote_check

    def set_remote_action(self, record_id: str, action: RemoteAction) -> RemoteResolution:
        resolution = remote_resolution.set_action(self.remote_resolutions, record_id, action)
        self._rewind_to(ImportStep.DUPLICATES)
        return resolution

    def set_field_resolution(
        self,
        record_id: str,
        field: AppField,
        resolution: FieldResolution
    ) -> RemoteResolution:
        updated = remote_resolution.set_field_resolution(
            self.remote_resolutions, record_id, field, resolution
        )
        self._rewind_to(ImportStep.DUPLICATES)
        return updated

    # ===================
    # IMPORT
    # ===================

    def finalize(self, notify: bool = True) -> FinalizeResult:
        """
        Build the final payload and send it to the webhook.

        Raises:
            InvalidStepTransitionError: Wizard has not reached the import step
        """
        if self.step != ImportStep.IMPORT:
            raise InvalidStepTransitionError(
                self.step.value,
                "Finish reviewing duplicates before importing"
            )

        self.result = self.finalize_service.finalize(
            self.resolve_survivors(),
            self.remote_check,
            self.remote_resolutions,
            scope_id=self.scope_id,
            notify=notify,
        )
        return self.result

    # ===================
    # NAVIGATION
    # ===================

    def advance(self) -> ImportStep:
        """
        Move to the next step, running the work that step needs.

        Raises:
            MappingRequiredError: Leaving mapping without appName mapped
            RowValidationFailedError: Leaving validation with invalid rows
            InvalidStepTransitionError: Already at the import step
        """
        previous = self.step

        if self.step == ImportStep.MAPPING:
            if not self.has_required_mapping:
                raise MappingRequiredError(AppField.APP_NAME.value)
            self.check_for_csv_duplicates()
            self.step = ImportStep.CSV_DUPLICATES

        elif self.step == ImportStep.CSV_DUPLICATES:
            # Surfaces stale or invalid resolutions before moving on
            self.resolve_survivors()
            self.validate()
            self.step = ImportStep.VALIDATION

        elif self.step == ImportStep.VALIDATION:
            if self.validate():
                raise RowValidationFailedError(
                    [row.model_dump(mode="json", by_alias=True) for row in self.invalid_rows]
                )
            check = self.check_remote_duplicates()
            self.step = ImportStep.DUPLICATES if check.matches else ImportStep.IMPORT

        elif self.step == ImportStep.DUPLICATES:
            self.step = ImportStep.IMPORT

        else:
            raise InvalidStepTransitionError(
                self.step.value,
                "Import is the last step; finalize the import instead"
            )

        logger.info(
            "import_step_advanced",
            session_id=self.id,
            from_step=previous.value,
            to_step=self.step.value
        )
        return self.step

    def go_back(self) -> ImportStep:
        """
        Return to the previous step, discarding state owned by the step being left.

        Raises:
            InvalidStepTransitionError: At mapping (start a new upload instead)
        """
        previous = self.step

        if self.step == ImportStep.MAPPING:
            raise InvalidStepTransitionError(
                self.step.value,
                "Upload a new file to start over"
            )

        if self.step == ImportStep.CSV_DUPLICATES:
            self.groups = []
            self.resolutions = {}
            self._groups_signature = None
            self.step = ImportStep.MAPPING

        elif self.step == ImportStep.VALIDATION:
            self.invalid_rows = []
            self.step = ImportStep.CSV_DUPLICATES

        elif self.step == ImportStep.DUPLICATES:
            self.remote_check = None
            self.remote_resolutions = {}
            self.step = ImportStep.VALIDATION

        elif self.step == ImportStep.IMPORT:
            self.result = None
            if self.remote_check is not None and self.remote_check.matches:
                self.step = ImportStep.DUPLICATES
            else:
                self.remote_check = None
                self.remote_resolutions = {}
                self.step = ImportStep.VALIDATION

        logger.info(
            "import_step_back",
            session_id=self.id,
            from_step=previous.value,
            to_step=self.step.value
        )
        return self.step

    def _rewind_to(self, step: ImportStep) -> None:
        """Step back to where an edit was made, discarding every later stage."""
        if STEP_ORDER.index(self.step) <= STEP_ORDER.index(step):
            return

        logger.info(
            "import_session_rewound",
            session_id=self.id,
            from_step=self.step.value,
            to_step=step.value
        )
        while STEP_ORDER.index(self.step) > STEP_ORDER.index(step):
            self.go_back()

    # ===================
    # STATE
    # ===================

    def state(self) -> SessionStateResponse:
        return SessionStateResponse(
            session_id=self.id,
            step=self.step,
            filename=self.filename,
            scope_id=self.scope_id,
            headers=self.headers,
            row_count=len(self.raw_rows),
            mapping=self.mapping,
            has_required_mapping=self.has_required_mapping,
            match_fields=self.match_fields,
            bulk_action=self.bulk_action,
            available_fields=mapping_service.available_fields(self.headers),
        )
