"""
Finalization of an import.

Sorts every survivor into new / updated / unchanged, builds the payload
and hands it to the notification webhook. Webhook failure is reported
on the result but never changes the finalized data.
"""

import json
from typing import Callable, Optional
import structlog

from models.app_record import FinalRecord, MappedRow
from models.imports import (
    AnalysisResult,
    FinalizeResult,
    ImportPayload,
    ImportSummary,
    RemoteAction,
    RemoteCheckResult,
    RemoteDuplicateMatch,
    RemoteResolution,
    UnchangedRecord,
    UpdatedRecord,
)
from services.validation_service import validate_rows
from services.remote_resolution_service import calculate_final_data, final_record_from_row
from integrations.webhook import send_import_notification
from exceptions import SubmissionError

logger = structlog.get_logger(__name__)

Notifier = Callable[[dict], bool]

_UPDATE_ACTIONS = (RemoteAction.REPLACE, RemoteAction.MERGE)


def partition_survivors(
    survivors: list[MappedRow],
    remote_check: Optional[RemoteCheckResult],
    resolutions: dict[str, RemoteResolution]
) -> tuple[list[FinalRecord], list[UpdatedRecord], list[UnchangedRecord]]:
    """
    Put each survivor in exactly one bucket.

    - new: no remote duplicate
    - updated: some duplicate resolved replace/merge (first one in match order)
    - unchanged: every duplicate kept (first duplicate represents the row)

    Returns:
        (new_records, updated_records, unchanged_records)
    """
    matches: dict[int, RemoteDuplicateMatch] = {}
    if remote_check is not None:
        matches = {match.imported.original_index: match for match in remote_check.matches}

    new_records: list[FinalRecord] = []
    updated_records: list[UpdatedRecord] = []
    unchanged_records: list[UnchangedRecord] = []

    for row in survivors:
        match = matches.get(row.original_index)
        if match is None or not match.duplicates:
            new_records.append(final_record_from_row(row))
            continue

        updating = next(
            (
                record for record in match.duplicates
                if resolutions.get(record.id, RemoteResolution()).action in _UPDATE_ACTIONS
            ),
            None
        )

        if updating is not None:
            resolution = resolutions[updating.id]
            updated_records.append(UpdatedRecord(
                id=updating.id,
                existing_data=updating,
                new_data=row,
                action=resolution.action,
                field_resolutions=(
                    resolution.field_resolutions
                    if resolution.action == RemoteAction.MERGE else None
                ),
                final_data=calculate_final_data(updating, row, resolution),
            ))
        else:
            existing = match.duplicates[0]
            unchanged_records.append(UnchangedRecord(
                id=existing.id,
                data=calculate_final_data(existing, row, RemoteResolution()),
            ))

    return new_records, updated_records, unchanged_records


def analyze(
    survivors: list[MappedRow],
    resolutions: dict[str, RemoteResolution],
    lookup_errors: Optional[list[str]] = None
) -> AnalysisResult:
    """
    Final check of the rows about to be handed off.

    Survivors are validated again; duplicatesFound counts the remote
    records that received a resolution.
    """
    try:
        invalid = validate_rows(survivors)
        if invalid:
            return AnalysisResult(
                success=False,
                message="Validation failed for some records",
                analyzed=len(survivors),
                duplicates_found=0,
                errors=[
                    f"Row {row.row_number}: {json.dumps(row.errors)}"
                    for row in invalid
                ],
            )

        duplicates_found = len(resolutions)
        return AnalysisResult(
            success=True,
            message=(
                f"Successfully analyzed {len(survivors)} records. "
                f"Found {duplicates_found} potential duplicates."
            ),
            analyzed=len(survivors),
            duplicates_found=duplicates_found,
            errors=list(lookup_errors or []),
        )

    except Exception as e:
        logger.error("import_analysis_failed", error=str(e))
        return AnalysisResult(
            success=False,
            message="Analysis failed",
            analyzed=0,
            duplicates_found=0,
            errors=[str(e)],
        )


class FinalizeService:
    """
    Builds the import payload and delivers it.

    The notifier defaults to the webhook integration; tests pass their own.
    """

    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier or send_import_notification

    def build_payload(
        self,
        survivors: list[MappedRow],
        remote_check: Optional[RemoteCheckResult],
        resolutions: dict[str, RemoteResolution],
        scope_id: Optional[str] = None
    ) -> ImportPayload:
        """Partition survivors and attach the analysis result."""
        new_records, updated_records, unchanged_records = partition_survivors(
            survivors, remote_check, resolutions
        )

        summary = ImportSummary(
            total_processed=len(survivors),
            new=len(new_records),
            updated=len(updated_records),
            unchanged=len(unchanged_records),
        )

        outcome = analyze(
            survivors,
            resolutions,
            lookup_errors=remote_check.lookup_errors if remote_check else None
        )

        logger.info(
            "import_finalized",
            scope_id=scope_id,
            total_processed=summary.total_processed,
            new=summary.new,
            updated=summary.updated,
            unchanged=summary.unchanged,
            success=outcome.success
        )

        return ImportPayload(
            scope_id=scope_id,
            new_records=new_records,
            updated_records=updated_records,
            unchanged_records=unchanged_records,
            summary=summary,
            import_outcome=outcome,
        )

    def finalize(
        self,
        survivors: list[MappedRow],
        remote_check: Optional[RemoteCheckResult],
        resolutions: dict[str, RemoteResolution],
        scope_id: Optional[str] = None,
        notify: bool = True
    ) -> FinalizeResult:
        """
        Build the payload and send it to the webhook.

        Args:
            notify: False builds the payload without sending it

        Returns:
            FinalizeResult; notification_error is set when delivery failed
        """
        payload = self.build_payload(survivors, remote_check, resolutions, scope_id)

        if not notify:
            logger.info("import_notification_skipped")
            return FinalizeResult(payload=payload, notification_sent=False)

        try:
            sent = self.notifier(payload.model_dump(mode="json", by_alias=True))
        except SubmissionError as e:
            logger.warning("import_notification_failed", error=e.message)
            return FinalizeResult(
                payload=payload,
                notification_sent=False,
                notification_error=e.message,
            )

        return FinalizeResult(payload=payload, notification_sent=bool(sent))


# Singleton instance
_finalize_service: Optional[FinalizeService] = None


def get_finalize_service() -> FinalizeService:
    """Get or create FinalizeService instance."""
    global _finalize_service
    if _finalize_service is None:
        _finalize_service = FinalizeService()
    return _finalize_service
