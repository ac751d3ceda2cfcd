"""
Remote duplicate check for surviving rows.

Each survivor is looked up in Airtable within the scope (campaign).
Lookups go through a runner: one row at a time by default, or a bounded
thread pool. Either way a failed lookup only affects its own row, which
is then treated as having no duplicates.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol
import structlog

from config import settings
from models.app_record import IDENTITY_FIELDS, AppField, MappedRow, RemoteRecord
from models.imports import RemoteCheckResult, RemoteDuplicateMatch
from services.airtable_service import AirtableService, get_airtable_service
from exceptions import RemoteLookupError

logger = structlog.get_logger(__name__)

Lookup = Callable[[MappedRow], list[RemoteRecord]]


@dataclass
class LookupOutcome:
    """Result of looking up one row."""
    row: MappedRow
    records: list[RemoteRecord] = field(default_factory=list)
    error: Optional[str] = None


def _safe_lookup(lookup: Lookup, row: MappedRow) -> LookupOutcome:
    """Run one lookup; a RemoteLookupError becomes an outcome with no records."""
    try:
        return LookupOutcome(row=row, records=lookup(row))
    except RemoteLookupError as e:
        logger.warning(
            "remote_lookup_failed_for_row",
            original_index=row.original_index,
            app_name=row.snapshot.app_name,
            error=e.message
        )
        return LookupOutcome(row=row, error=f"Row {row.original_index + 1}: {e.message}")


class LookupRunner(Protocol):
    def run(self, rows: list[MappedRow], lookup: Lookup) -> list[LookupOutcome]:
        ...


class SequentialLookupRunner:
    """Issues lookups one after another."""

    def run(self, rows: list[MappedRow], lookup: Lookup) -> list[LookupOutcome]:
        return [_safe_lookup(lookup, row) for row in rows]


class BoundedLookupRunner:
    """Issues lookups on a thread pool of at most max_workers threads."""

    def __init__(self, max_workers: int):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers

    def run(self, rows: list[MappedRow], lookup: Lookup) -> list[LookupOutcome]:
        if not rows:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            # map() yields in submission order, so each outcome lines up with its row
            return list(executor.map(lambda row: _safe_lookup(lookup, row), rows))


def get_lookup_runner(concurrency: Optional[int] = None) -> LookupRunner:
    """Runner for the configured lookup concurrency."""
    concurrency = concurrency or settings.remote_lookup_concurrency
    if concurrency > 1:
        return BoundedLookupRunner(concurrency)
    return SequentialLookupRunner()


def matched_fields(row: MappedRow, records: list[RemoteRecord]) -> list[AppField]:
    """Identity fields whose non-empty value equals the value on at least one record."""
    return [
        identity
        for identity in IDENTITY_FIELDS
        if row.get(identity) and any(record.get(identity) == row.get(identity) for record in records)
    ]


class RemoteDuplicateService:
    """
    Checks survivors against Airtable.

    Missing credentials surface as ConfigurationError before any row is
    looked up; per-row query failures are collected in lookup_errors.
    """

    def __init__(
        self,
        airtable: Optional[AirtableService] = None,
        runner: Optional[LookupRunner] = None
    ):
        self._airtable = airtable
        self.runner = runner

    @property
    def airtable(self) -> AirtableService:
        if self._airtable is None:
            self._airtable = get_airtable_service()
        return self._airtable

    def check_for_duplicates(
        self,
        survivors: list[MappedRow],
        scope_id: Optional[str]
    ) -> RemoteCheckResult:
        """
        Look every survivor up in the scope.

        Args:
            survivors: Rows left after CSV duplicate resolution
            scope_id: Campaign ID; without it the check is skipped

        Returns:
            RemoteCheckResult with one match per row that has duplicates,
            in survivor order

        Raises:
            ConfigurationError: Airtable credentials missing
        """
        if not scope_id:
            logger.info("remote_check_skipped_no_scope", rows=len(survivors))
            return RemoteCheckResult(skipped=True, rows_checked=0)

        airtable = self.airtable
        # Missing credentials fail the whole check, not each row
        airtable.ensure_configured()

        runner = self.runner or get_lookup_runner()
        logger.info(
            "remote_check_started",
            scope_id=scope_id,
            rows=len(survivors),
            runner=type(runner).__name__
        )

        outcomes = runner.run(
            survivors,
            lambda row: airtable.find_duplicates(row.snapshot, scope_id)
        )

        matches = []
        lookup_errors = []
        for outcome in outcomes:
            if outcome.error:
                lookup_errors.append(outcome.error)
            if outcome.records:
                matches.append(RemoteDuplicateMatch(
                    imported=outcome.row,
                    duplicates=outcome.records,
                    matched_on=matched_fields(outcome.row, outcome.records),
                ))

        result = RemoteCheckResult(
            skipped=False,
            rows_checked=len(outcomes),
            matches=matches,
            lookup_errors=lookup_errors,
        )

        logger.info(
            "remote_check_completed",
            scope_id=scope_id,
            rows_checked=result.rows_checked,
            rows_with_duplicates=len(matches),
            remote_records=len(result.record_ids),
            lookup_errors=len(lookup_errors)
        )

        return result


# Singleton instance
_remote_duplicate_service: Optional[RemoteDuplicateService] = None


def get_remote_duplicate_service() -> RemoteDuplicateService:
    """Get or create RemoteDuplicateService instance."""
    global _remote_duplicate_service
    if _remote_duplicate_service is None:
        _remote_duplicate_service = RemoteDuplicateService()
    return _remote_duplicate_service
