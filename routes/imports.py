"""
Import wizard API routes.

One session per uploaded file; every wizard action is a call on
/api/imports/{session_id}/...
"""

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse, Response
from typing import Optional
import structlog

from config import settings
from models.app_record import MappedRow
from models.imports import (
    MappingUpdate,
    MatchFieldsUpdate,
    BulkActionRequest,
    GroupActionRequest,
    SelectRecordRequest,
    MergeFieldRequest,
    RowCorrection,
    RemoteActionRequest,
    FieldResolutionRequest,
    RemoteResolution,
    SessionStateResponse,
    UploadResponse,
    CsvDuplicatesResponse,
    ValidationResponse,
    RemoteDuplicatesResponse,
    FinalizeResult,
)
from parsers.csv_parser import SAMPLE_CSV, SAMPLE_CSV_FILENAME
from services import column_mapping_service as mapping_service
from services.import_session import ImportSession
from services.session_store import store_session, get_session, delete_session
from exceptions import AppError, ValidationError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def _csv_duplicates_response(session: ImportSession) -> CsvDuplicatesResponse:
    return CsvDuplicatesResponse(
        match_fields=session.match_fields,
        groups=session.check_for_csv_duplicates(),
        resolutions=session.resolutions,
        summary=session.csv_duplicate_summary(),
    )


def _validation_response(session: ImportSession) -> ValidationResponse:
    return ValidationResponse(
        valid=not session.invalid_rows,
        invalid_rows=session.invalid_rows,
    )


def _remote_duplicates_response(session: ImportSession) -> RemoteDuplicatesResponse:
    check = session.remote_check
    return RemoteDuplicatesResponse(
        **check.model_dump(),
        resolutions=session.remote_resolutions,
    )


# ===================
# UPLOAD
# ===================

@router.get("/sample-csv")
async def download_sample_csv():
    """Example file with the expected column layout."""
    return Response(
        content=SAMPLE_CSV,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{SAMPLE_CSV_FILENAME}"'}
    )


@router.post("", response_model=UploadResponse, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    scope_id: Optional[str] = Form(None, description="Campaign ID narrowing the duplicate search")
):
    """
    Upload a CSV or Excel file and start an import session.

    Columns whose header matches a field label are mapped automatically;
    all others become custom fields.

    Raises:
        422: Empty, unreadable or oversized file
    """
    logger.info(
        "import_upload_started",
        filename=file.filename,
        content_type=file.content_type,
        scope_id=scope_id
    )

    try:
        content = await file.read()

        if len(content) > settings.max_upload_bytes:
            raise ValidationError(
                code="FILE_TOO_LARGE",
                message=f"File exceeds {settings.max_upload_bytes} bytes",
                details={"size": len(content), "max_size": settings.max_upload_bytes}
            )

        session = ImportSession.from_upload(content, file.filename, scope_id=scope_id)
        store_session(session)

        return UploadResponse(
            **session.state().model_dump(),
            auto_mapped_count=mapping_service.auto_mapped_count(session.mapping),
        )

    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}", response_model=SessionStateResponse)
async def get_import_session(session_id: str):
    """Current step, headers and mapping of a session."""
    try:
        return get_session(session_id).state()
    except Exception as e:
        return handle_error(e)


@router.delete("/{session_id}", status_code=204)
async def cancel_import(session_id: str):
    """Discard a session."""
    try:
        get_session(session_id)
        delete_session(session_id)
        logger.info("import_session_cancelled", session_id=session_id)
        return Response(status_code=204)
    except Exception as e:
        return handle_error(e)


# ===================
# MAPPING
# ===================

@router.put("/{session_id}/mapping", response_model=SessionStateResponse)
async def update_mapping(session_id: str, data: MappingUpdate):
    """
    Map a column to a field (or back to its custom slot).

    Raises:
        422: Unknown column or field
    """
    try:
        session = get_session(session_id)
        session.set_mapping(data.header, data.field)
        return session.state()
    except Exception as e:
        return handle_error(e)


# ===================
# CSV DUPLICATES
# ===================

@router.put("/{session_id}/match-fields", response_model=CsvDuplicatesResponse)
async def update_match_fields(session_id: str, data: MatchFieldsUpdate):
    """Choose the fields compared when grouping duplicate rows."""
    try:
        session = get_session(session_id)
        session.set_match_fields(data.fields)
        return _csv_duplicates_response(session)
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/csv-duplicates", response_model=CsvDuplicatesResponse)
async def get_csv_duplicates(session_id: str):
    """Duplicate groups in the file with their current resolutions."""
    try:
        return _csv_duplicates_response(get_session(session_id))
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/csv-duplicates/bulk-action", response_model=CsvDuplicatesResponse)
async def apply_bulk_action(session_id: str, data: BulkActionRequest):
    """Apply one action to every duplicate group."""
    try:
        session = get_session(session_id)
        session.apply_bulk_action(data.action)
        return _csv_duplicates_response(session)
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/csv-duplicates/group-action", response_model=CsvDuplicatesResponse)
async def set_group_action(session_id: str, data: GroupActionRequest):
    """
    Override the action of one group.

    Raises:
        404: Group not found
    """
    try:
        session = get_session(session_id)
        session.set_group_action(data.group_key, data.action)
        return _csv_duplicates_response(session)
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/csv-duplicates/select", response_model=CsvDuplicatesResponse)
async def select_record(session_id: str, data: SelectRecordRequest):
    """Pick which row of a group survives."""
    try:
        session = get_session(session_id)
        session.select_record(data.group_key, data.original_index)
        return _csv_duplicates_response(session)
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/csv-duplicates/merge-field", response_model=CsvDuplicatesResponse)
async def set_merge_field(session_id: str, data: MergeFieldRequest):
    """Pick which member of a merged group supplies a field."""
    try:
        session = get_session(session_id)
        session.set_merge_field(data.group_key, data.field, data.member_index)
        return _csv_duplicates_response(session)
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/survivors", response_model=list[MappedRow])
async def get_survivors(session_id: str):
    """Rows left after duplicate resolution."""
    try:
        return get_session(session_id).resolve_survivors()
    except Exception as e:
        return handle_error(e)


# ===================
# VALIDATION
# ===================

@router.get("/{session_id}/validation", response_model=ValidationResponse)
async def validate_rows(session_id: str):
    """Validate every row and list the failures."""
    try:
        session = get_session(session_id)
        session.validate()
        return _validation_response(session)
    except Exception as e:
        return handle_error(e)


@router.patch("/{session_id}/rows/{original_index}", response_model=ValidationResponse)
async def correct_row(session_id: str, original_index: int, data: RowCorrection):
    """
    Fix one field of one row inline.

    Raises:
        404: Row not found
        422: Field has no column mapped
    """
    try:
        session = get_session(session_id)
        session.correct_row(original_index, data.field, data.value)
        return _validation_response(session)
    except Exception as e:
        return handle_error(e)


# ===================
# REMOTE DUPLICATES
# ===================

@router.get("/{session_id}/remote-duplicates", response_model=RemoteDuplicatesResponse)
async def get_remote_duplicates(
    session_id: str,
    refresh: bool = Query(False, description="Query Airtable again")
):
    """
    Airtable records colliding with the surviving rows.

    Raises:
        500: Airtable not configured
    """
    try:
        session = get_session(session_id)
        if session.remote_check is None or refresh:
            session.check_remote_duplicates()
        return _remote_duplicates_response(session)
    except Exception as e:
        return handle_error(e)


@router.put(
    "/{session_id}/remote-duplicates/{record_id}/action",
    response_model=RemoteResolution
)
async def set_remote_action(session_id: str, record_id: str, data: RemoteActionRequest):
    """
    Keep, replace or merge one existing record.

    Raises:
        404: Record not among the duplicates
    """
    try:
        return get_session(session_id).set_remote_action(record_id, data.action)
    except Exception as e:
        return handle_error(e)


@router.put(
    "/{session_id}/remote-duplicates/{record_id}/fields",
    response_model=RemoteResolution
)
async def set_field_resolution(session_id: str, record_id: str, data: FieldResolutionRequest):
    """Choose existing or imported for one field of a merged record."""
    try:
        return get_session(session_id).set_field_resolution(record_id, data.field, data.resolution)
    except Exception as e:
        return handle_error(e)


# ===================
# NAVIGATION
# ===================

@router.post("/{session_id}/next", response_model=SessionStateResponse)
async def next_step(session_id: str):
    """
    Move to the next step.

    Raises:
        422: Required mapping missing, or rows still invalid
    """
    try:
        session = get_session(session_id)
        session.advance()
        return session.state()
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/back", response_model=SessionStateResponse)
async def previous_step(session_id: str):
    """Return to the previous step, discarding later work."""
    try:
        session = get_session(session_id)
        session.go_back()
        return session.state()
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/finalize", response_model=FinalizeResult)
async def finalize_import(
    session_id: str,
    notify: bool = Query(True, description="Send the payload to the webhook")
):
    """
    Build the final payload and send it to the notification webhook.

    Webhook failure is reported in notificationSent/notificationError;
    the payload is returned either way.
    """
    try:
        return get_session(session_id).finalize(notify=notify)
    except Exception as e:
        return handle_error(e)
