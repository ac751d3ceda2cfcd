"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add project root to Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

import pytest
from unittest.mock import patch
from typing import Generator, Optional

from services.airtable_service import AIRTABLE_COLUMNS, SCOPE_COLUMN
from models.app_record import IDENTITY_FIELDS

# ===================
# MOCK AIRTABLE TABLE
# ===================

_IDENTITY_COLUMNS = [AIRTABLE_COLUMNS[field] for field in IDENTITY_FIELDS]


class MockAirtableTable:
    """
    Mock pyairtable Table.

    all(formula=...) applies a simplified version of the duplicate
    formula: the record must list the scope in its campaign IDs and
    share at least one identity value that appears in the formula.
    """

    def __init__(self, records: list = None):
        self._records = records or []
        self.calls: list[dict] = []
        self.error: Optional[Exception] = None
        self.fail_for: set[str] = set()

    def set_records(self, records: list):
        """Configure the records in the table."""
        self._records = records

    def _matches(self, record: dict, formula: str) -> bool:
        fields = record.get("fields", {})
        scopes = fields.get(SCOPE_COLUMN) or []
        if not any(f"FIND('{scope}'" in formula for scope in scopes):
            return False
        return any(
            fields.get(column) and f"{{{column}}}='{fields[column]}'" in formula
            for column in _IDENTITY_COLUMNS
        )

    def all(self, formula: str = None, view: str = None, max_records: int = None, **kwargs) -> list:
        self.calls.append({"formula": formula, "view": view, "max_records": max_records})

        if self.error is not None:
            raise self.error
        if formula and any(f"'{value}'" in formula for value in self.fail_for):
            raise RuntimeError("422 Client Error: INVALID_FILTER_BY_FORMULA")

        records = self._records
        if formula:
            records = [record for record in records if self._matches(record, formula)]
        if max_records:
            records = records[:max_records]
        return list(records)

    def first(self, **kwargs) -> Optional[dict]:
        if self.error is not None:
            raise self.error
        return self._records[0] if self._records else None


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_table() -> MockAirtableTable:
    """
    Create a mock Airtable table.

    Usage:
        def test_something(mock_table):
            mock_table.set_records([AirtableRecordFactory.create(...)])
    """
    return MockAirtableTable()


@pytest.fixture
def mock_airtable(mock_table) -> Generator:
    """
    Patch the Airtable table getter with the mock.

    Usage:
        def test_something(mock_airtable, mock_table):
            mock_table.set_records([...])
            # Now any code using get_airtable_table() gets the mock
    """
    with patch("config.airtable.get_airtable_table", return_value=mock_table):
        with patch("services.airtable_service.get_airtable_table", return_value=mock_table):
            yield mock_table


@pytest.fixture(autouse=True)
def reset_service_state() -> Generator:
    """Drop cached service singletons and stored sessions between tests."""
    import services.airtable_service as airtable_service
    import services.remote_duplicate_service as remote_duplicate_service
    import services.finalize_service as finalize_service
    from services.session_store import clear_sessions

    airtable_service._airtable_service = None
    remote_duplicate_service._remote_duplicate_service = None
    finalize_service._finalize_service = None
    clear_sessions()

    yield

    airtable_service._airtable_service = None
    remote_duplicate_service._remote_duplicate_service = None
    finalize_service._finalize_service = None
    clear_sessions()


@pytest.fixture
def sample_csv_text() -> str:
    """Five apps, the last two sharing app name and website."""
    return (
        "App Name,App ID,Developer,Company Website,Google Play ID,Region\n"
        "Deepstash,1445023295,Deepstash,https://deepstash.com/,com.deepstash.app,EU\n"
        "LogicLike,1565113819,LogicLike,https://logiclike.com,com.logiclike.app,US\n"
        "Moshi Kids,1306719339,Mind Candy,https://www.moshikids.com/,com.moshikids.app,UK\n"
        "Vocal Image,1535324205,Vocal Image,https://www.vocalimage.app/,com.vocalimage.app,EU\n"
        "Vocal Image,1535324299,Vocal Image Ltd,https://www.vocalimage.app/,,US\n"
    )


@pytest.fixture
def test_client():
    """
    Create FastAPI test client.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/imports/sample-csv")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)


@pytest.fixture
def test_client_with_mock_airtable(mock_airtable):
    """
    Create FastAPI test client with a mocked Airtable table.

    Usage:
        def test_endpoint(test_client_with_mock_airtable, mock_table):
            mock_table.set_records([...])
            response = test_client_with_mock_airtable.get("/api/apps")
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app)
