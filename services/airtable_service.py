"""
Airtable service for reading app records.

Read-only: lists the Apps table and finds records that collide with an
imported row inside one campaign scope.
"""

from typing import Optional
import structlog

from pyairtable import Table

from config import get_airtable_table
from models.app_record import AppField, IDENTITY_FIELDS, AppSnapshot, RemoteRecord
from exceptions import RemoteLookupError

logger = structlog.get_logger(__name__)

# Airtable column per canonical field
AIRTABLE_COLUMNS: dict[AppField, str] = {
    AppField.APP_NAME: "App Name",
    AppField.APP_ID: "App ID",
    AppField.DEVELOPER: "Developer",
    AppField.CATEGORY: "Category",
    AppField.COUNTRY: "Country",
    AppField.COMPANY_WEBSITE: "Company Website",
    AppField.COMPANY_LINKEDIN_URL: "Company Linkedin URL",
    AppField.SENSOR_TOWER_ID: "Sensor Tower ID",
    AppField.GOOGLE_PLAY_ID: "Google Play ID",
    AppField.DEVELOPER_ID: "Developer ID",
}

# Lookup column listing the campaign IDs linked through the sequence
SCOPE_COLUMN = "Campaign ID (from Sequence Name)"
SEQUENCE_COLUMN = "Sequence Name"


def escape_formula_value(value: str) -> str:
    """Escape single quotes for use inside a formula string literal."""
    return value.replace("'", "\\'")


def build_duplicate_formula(snapshot: AppSnapshot, scope_id: str) -> Optional[str]:
    """
    Build the filterByFormula used to find duplicates of one row.

    AND(
      FIND('<scope>', {Campaign ID (from Sequence Name)}),
      OR({App Name}='..', {App ID}='..', {Google Play ID}='..', {Sensor Tower ID}='..')
    )

    Only non-empty identity fields take part.

    Returns:
        Formula string, or None if the row has no identity value to match on
    """
    conditions = [
        f"{{{AIRTABLE_COLUMNS[field]}}}='{escape_formula_value(snapshot.get(field))}'"
        for field in IDENTITY_FIELDS
        if snapshot.get(field)
    ]
    if not conditions:
        return None

    scope_condition = f"FIND('{escape_formula_value(scope_id)}', {{{SCOPE_COLUMN}}})"
    return f"AND({scope_condition},OR({','.join(conditions)}))"


class AirtableService:
    """
    Apps table access.

    The table is resolved lazily so that constructing the service never
    needs credentials; the first query raises ConfigurationError instead.
    """

    def __init__(self, table: Optional[Table] = None):
        self._table = table

    @property
    def table(self) -> Table:
        self.ensure_configured()
        return self._table

    def ensure_configured(self) -> None:
        """
        Resolve the table up front.

        Raises:
            ConfigurationError: Credentials missing
        """
        if self._table is None:
            self._table = get_airtable_table()

    def fetch_all(
        self,
        max_records: Optional[int] = None,
        view: Optional[str] = None
    ) -> list[RemoteRecord]:
        """
        List app records.

        Args:
            max_records: Stop after this many records
            view: Airtable view to read through

        Returns:
            List of RemoteRecord

        Raises:
            ConfigurationError: Credentials missing
            RemoteLookupError: Airtable request failed
        """
        table = self.table
        options = {}
        if max_records:
            options["max_records"] = max_records
        if view:
            options["view"] = view

        logger.debug("fetching_airtable_apps", **options)

        try:
            records = table.all(**options)
        except Exception as e:
            logger.error("fetch_airtable_apps_failed", error=str(e))
            raise RemoteLookupError(
                "Failed to fetch app records from Airtable",
                details={"original_error": str(e)}
            ) from e

        logger.info("airtable_apps_fetched", count=len(records))
        return self._records_to_models(records)

    def find_duplicates(
        self,
        snapshot: AppSnapshot,
        scope_id: Optional[str]
    ) -> list[RemoteRecord]:
        """
        Records in the scope sharing any identity value with the row.

        Args:
            snapshot: Canonical values of the imported row
            scope_id: Campaign ID narrowing the search

        Returns:
            Matching records; [] without a query when there is no scope
            or no identity value

        Raises:
            ConfigurationError: Credentials missing
            RemoteLookupError: Airtable request failed
        """
        if not scope_id:
            return []

        formula = build_duplicate_formula(snapshot, scope_id)
        if formula is None:
            logger.debug("no_identity_fields_to_match", app_name=snapshot.app_name)
            return []

        table = self.table
        logger.debug("airtable_duplicate_query", formula=formula)

        try:
            records = table.all(formula=formula)
        except Exception as e:
            logger.error(
                "airtable_duplicate_query_failed",
                app_name=snapshot.app_name,
                scope_id=scope_id,
                error=str(e)
            )
            raise RemoteLookupError(
                f"Failed to look up duplicates for '{snapshot.app_name}'",
                details={"scope_id": scope_id, "original_error": str(e)}
            ) from e

        logger.debug("airtable_duplicates_found", app_name=snapshot.app_name, count=len(records))
        return self._records_to_models(records)

    def _records_to_models(self, records: list[dict]) -> list[RemoteRecord]:
        """
        Convert Airtable records, failing the lookup on a malformed one.

        Raises:
            RemoteLookupError: Record without an id, or a cell that cannot
                be read as text
        """
        try:
            return [self._record_to_model(record) for record in records]
        except (KeyError, ValueError) as e:
            logger.error("airtable_record_unreadable", error=str(e))
            raise RemoteLookupError(
                "Airtable returned a record that could not be read",
                details={"original_error": str(e)}
            ) from e

    def _record_to_model(self, record: dict) -> RemoteRecord:
        """Convert an Airtable record dict to RemoteRecord."""
        fields = record.get("fields", {})

        campaign_ids = fields.get(SCOPE_COLUMN) or []
        if isinstance(campaign_ids, str):
            campaign_ids = [campaign_ids]

        sequence_name = fields.get(SEQUENCE_COLUMN) or ""
        # Linked-record columns come back as a list of names/ids
        if isinstance(sequence_name, list):
            sequence_name = ", ".join(str(item) for item in sequence_name)

        return RemoteRecord(
            id=record["id"],
            campaign_ids=[str(item) for item in campaign_ids],
            sequence_name=sequence_name,
            **{field.attr: fields.get(column) for field, column in AIRTABLE_COLUMNS.items()},
        )


# Singleton instance
_airtable_service: Optional[AirtableService] = None


def get_airtable_service() -> AirtableService:
    """Get or create AirtableService instance."""
    global _airtable_service
    if _airtable_service is None:
        _airtable_service = AirtableService()
    return _airtable_service
