"""
Unit tests for ImportSession navigation and state.

Run: pytest tests/unit/test_import_session.py -v
"""

from datetime import datetime, timedelta

import pytest
from unittest.mock import MagicMock

from services.import_session import ImportSession
from services.airtable_service import AirtableService
from services.remote_duplicate_service import RemoteDuplicateService, SequentialLookupRunner
from services.finalize_service import FinalizeService
from services import session_store
from models.app_record import AppField
from models.imports import CsvDuplicateAction, ImportStep, RemoteAction
from parsers.csv_parser import CsvParseResult
from exceptions import (
    CsvParseError,
    ImportSessionNotFoundError,
    InvalidStepTransitionError,
    MappingRequiredError,
    NotFoundError,
    RowValidationFailedError,
)
from tests.factories import AirtableRecordFactory


@pytest.fixture
def notifier():
    return MagicMock(return_value=True)


@pytest.fixture
def make_session(mock_table, notifier):
    """Build sessions wired to the mock table and notifier."""
    def _make(content: str, scope_id="CAMP-1") -> ImportSession:
        return ImportSession.from_upload(
            content.encode("utf-8"),
            "apps.csv",
            scope_id=scope_id,
            remote_service=RemoteDuplicateService(
                AirtableService(table=mock_table),
                SequentialLookupRunner()
            ),
            finalize_service=FinalizeService(notifier=notifier),
        )
    return _make


class TestCreation:
    """Tests for session creation"""

    def test_starts_at_mapping_with_auto_mapping(self, make_session, sample_csv_text):
        """Should auto-map known headers and start at the mapping step."""
        session = make_session(sample_csv_text)

        state = session.state()

        assert state.step == ImportStep.MAPPING
        assert state.row_count == 5
        assert state.mapping["appName"] == "App Name"
        assert state.mapping["custom_Region"] == "Region"
        assert state.has_required_mapping is True
        assert state.match_fields == [AppField.APP_NAME]
        assert state.bulk_action == CsvDuplicateAction.KEEP_FIRST

    def test_file_without_headers_is_rejected(self):
        """Should refuse a parse result with no headers."""
        with pytest.raises(CsvParseError):
            ImportSession(CsvParseResult(filename="empty.csv", headers=[], rows=[]))


class TestAdvance:
    """Tests for ImportSession.advance()"""

    def test_mapping_requires_app_name(self, make_session, sample_csv_text):
        """Should not leave mapping while appName is unmapped."""
        session = make_session(sample_csv_text)
        session.set_mapping("App Name", "custom_App Name")

        with pytest.raises(MappingRequiredError):
            session.advance()

        assert session.step == ImportStep.MAPPING

    def test_full_flow_with_remote_duplicate(self, make_session, sample_csv_text, mock_table, notifier):
        """Should walk every step and finalize with one updated record."""
        mock_table.set_records([
            AirtableRecordFactory.create(id="recDeep", app_name="Deepstash", developer="Old Name"),
        ])
        session = make_session(sample_csv_text)

        assert session.advance() == ImportStep.CSV_DUPLICATES
        assert len(session.groups) == 1
        assert session.groups[0].original_indices == [3, 4]

        assert session.advance() == ImportStep.VALIDATION
        assert session.invalid_rows == []

        assert session.advance() == ImportStep.DUPLICATES
        assert session.remote_check.record_ids == ["recDeep"]
        assert session.remote_resolutions["recDeep"].action == RemoteAction.KEEP

        session.set_remote_action("recDeep", RemoteAction.REPLACE)
        assert session.advance() == ImportStep.IMPORT

        result = session.finalize()

        summary = result.payload.summary
        assert summary.total_processed == 4
        assert (summary.new, summary.updated, summary.unchanged) == (3, 1, 0)
        assert result.payload.updated_records[0].final_data.developer == "Deepstash"
        assert result.notification_sent is True
        notifier.assert_called_once()

    def test_no_remote_matches_goes_straight_to_import(self, make_session, sample_csv_text):
        """Should skip the duplicates step when nothing collides."""
        session = make_session(sample_csv_text)

        for _ in range(3):
            session.advance()

        assert session.step == ImportStep.IMPORT
        assert session.remote_check.matches == []

    def test_no_scope_skips_remote_check(self, make_session, sample_csv_text, mock_table):
        """Should reach import without querying Airtable."""
        session = make_session(sample_csv_text, scope_id=None)

        for _ in range(3):
            session.advance()

        assert session.step == ImportStep.IMPORT
        assert session.remote_check.skipped is True
        assert mock_table.calls == []

    def test_invalid_rows_block_validation_until_corrected(self, make_session):
        """Should refuse to leave validation until every row is valid."""
        session = make_session("App Name,App ID\n,123\nAlpha,1\n")
        session.advance()
        session.advance()

        assert [row.original_index for row in session.invalid_rows] == [0]
        with pytest.raises(RowValidationFailedError):
            session.advance()
        assert session.step == ImportStep.VALIDATION

        remaining = session.correct_row(0, AppField.APP_NAME, "Fixed App")

        assert remaining == []
        assert session.rows[0].get(AppField.APP_NAME) == "Fixed App"
        assert session.advance() == ImportStep.IMPORT

    def test_advance_at_import_raises(self, make_session, sample_csv_text):
        """Should not advance past the last step."""
        session = make_session(sample_csv_text, scope_id=None)
        for _ in range(3):
            session.advance()

        with pytest.raises(InvalidStepTransitionError):
            session.advance()


class TestGoBack:
    """Tests for ImportSession.go_back()"""

    def test_cannot_go_back_from_mapping(self, make_session, sample_csv_text):
        """Should raise at the first step."""
        session = make_session(sample_csv_text)

        with pytest.raises(InvalidStepTransitionError):
            session.go_back()

    def test_leaving_csv_duplicates_clears_groups(self, make_session, sample_csv_text):
        """Should discard groups and resolutions."""
        session = make_session(sample_csv_text)
        session.advance()

        assert session.go_back() == ImportStep.MAPPING
        assert session.groups == []
        assert session.resolutions == {}

    def test_import_returns_to_duplicates_when_there_were_matches(
        self, make_session, sample_csv_text, mock_table
    ):
        """Should go back to the duplicates review and keep its state."""
        mock_table.set_records([AirtableRecordFactory.create(id="recDeep", app_name="Deepstash")])
        session = make_session(sample_csv_text)
        for _ in range(4):
            session.advance()

        assert session.go_back() == ImportStep.DUPLICATES
        assert "recDeep" in session.remote_resolutions

        assert session.go_back() == ImportStep.VALIDATION
        assert session.remote_check is None

    def test_import_returns_to_validation_without_matches(self, make_session, sample_csv_text):
        """Should skip the empty duplicates step on the way back."""
        session = make_session(sample_csv_text)
        for _ in range(3):
            session.advance()

        assert session.go_back() == ImportStep.VALIDATION
        assert session.remote_check is None


class TestEditingEarlierSteps:
    """Tests for edits made after the wizard has moved past their step"""

    @pytest.fixture
    def at_import(self, make_session, sample_csv_text, mock_table):
        """Session at import with Deepstash set to replace recDeep."""
        mock_table.set_records([
            AirtableRecordFactory.create(id="recDeep", app_name="Deepstash", developer="Old Name"),
        ])
        session = make_session(sample_csv_text)
        for _ in range(3):
            session.advance()
        session.set_remote_action("recDeep", RemoteAction.REPLACE)
        session.advance()
        assert session.step == ImportStep.IMPORT
        return session

    def test_corrected_row_is_looked_up_again(self, at_import, mock_table):
        """Should not replace a record the corrected row no longer matches."""
        lookups_before = len(mock_table.calls)

        at_import.correct_row(0, AppField.APP_NAME, "Totally Different App")
        at_import.correct_row(0, AppField.APP_ID, "999")
        at_import.correct_row(0, AppField.GOOGLE_PLAY_ID, "com.other.app")

        assert at_import.step == ImportStep.VALIDATION
        assert at_import.remote_check is None
        assert at_import.remote_resolutions == {}

        assert at_import.advance() == ImportStep.IMPORT
        result = at_import.finalize(notify=False)

        assert len(mock_table.calls) > lookups_before
        assert result.payload.updated_records == []
        assert result.payload.summary.new == 4

    def test_duplicate_resolution_change_returns_to_csv_duplicates(self, at_import):
        """Should drop validation and remote results."""
        key = at_import.groups[0].key

        at_import.set_group_action(key, CsvDuplicateAction.SKIP)

        assert at_import.step == ImportStep.CSV_DUPLICATES
        assert at_import.invalid_rows == []
        assert at_import.remote_check is None
        assert at_import.result is None
        assert at_import.resolutions[key].action == CsvDuplicateAction.SKIP
        with pytest.raises(InvalidStepTransitionError):
            at_import.finalize()

    def test_match_field_change_returns_to_csv_duplicates(self, at_import):
        """Should regroup on the next check."""
        at_import.set_match_fields([AppField.APP_NAME, AppField.APP_ID])

        assert at_import.step == ImportStep.CSV_DUPLICATES
        assert at_import.check_for_csv_duplicates() == []

    def test_mapping_change_returns_to_mapping(self, at_import):
        """Should discard groups along with every later stage."""
        at_import.set_mapping("Region", "country")

        assert at_import.step == ImportStep.MAPPING
        assert at_import.groups == []
        assert at_import.resolutions == {}
        assert at_import.remote_check is None

    def test_remote_resolution_change_keeps_remote_check(self, at_import):
        """Should return to the duplicates review without a new lookup."""
        at_import.set_remote_action("recDeep", RemoteAction.KEEP)

        assert at_import.step == ImportStep.DUPLICATES
        assert at_import.remote_check.record_ids == ["recDeep"]
        assert at_import.remote_resolutions["recDeep"].action == RemoteAction.KEEP

    def test_edit_at_current_step_does_not_move(self, make_session, sample_csv_text):
        """Should stay on the step the edit belongs to."""
        session = make_session(sample_csv_text)
        session.advance()
        key = session.groups[0].key

        session.select_record(key, 4)

        assert session.step == ImportStep.CSV_DUPLICATES

    def test_failed_edit_keeps_step(self, at_import):
        """Should leave the session untouched when the edit is rejected."""
        with pytest.raises(NotFoundError):
            at_import.correct_row(99, AppField.APP_NAME, "X")

        assert at_import.step == ImportStep.IMPORT
        assert at_import.remote_check is not None


class TestCsvDuplicates:
    """Tests for CSV duplicate handling on the session"""

    def test_groups_are_cached_until_inputs_change(self, make_session, sample_csv_text):
        """Should reuse groups when nothing changed."""
        session = make_session(sample_csv_text)

        first = session.check_for_csv_duplicates()
        second = session.check_for_csv_duplicates()

        assert first is second

    def test_matching_on_name_and_website(self, make_session, sample_csv_text):
        """Should still group the two Vocal Image rows on both fields."""
        session = make_session(sample_csv_text)
        session.set_match_fields([AppField.APP_NAME, AppField.COMPANY_WEBSITE])

        groups = session.check_for_csv_duplicates()

        assert len(groups) == 1
        assert groups[0].matched_on == [AppField.APP_NAME, AppField.COMPANY_WEBSITE]

    def test_selection_survives_recheck(self, make_session, sample_csv_text):
        """Should keep a selection while the group membership is unchanged."""
        session = make_session(sample_csv_text)
        groups = session.check_for_csv_duplicates()
        session.select_record(groups[0].key, 4)

        session.correct_row(0, AppField.DEVELOPER, "Deepstash Inc")
        session.check_for_csv_duplicates()

        assert session.resolutions[groups[0].key].selected_index == 4
        assert [row.original_index for row in session.resolve_survivors()] == [0, 1, 2, 4]

    def test_skip_drops_both_rows(self, make_session, sample_csv_text):
        """Should drop the whole group under skip."""
        session = make_session(sample_csv_text)
        session.apply_bulk_action(CsvDuplicateAction.SKIP)

        summary = session.csv_duplicate_summary()

        assert summary.records_skipped == 2
        assert len(session.resolve_survivors()) == 3


class TestCorrectRowAndFinalize:
    """Tests for correct_row() and finalize() guards"""

    def test_unknown_row_raises(self, make_session, sample_csv_text):
        """Should raise NotFoundError for an index outside the file."""
        session = make_session(sample_csv_text)

        with pytest.raises(NotFoundError) as exc_info:
            session.correct_row(99, AppField.APP_NAME, "X")

        assert exc_info.value.code == "ROW_NOT_FOUND"

    def test_finalize_before_import_raises(self, make_session, sample_csv_text):
        """Should refuse to finalize from an earlier step."""
        session = make_session(sample_csv_text)

        with pytest.raises(InvalidStepTransitionError):
            session.finalize()

    def test_finalize_without_notification(self, make_session, sample_csv_text, notifier):
        """Should build the payload without calling the webhook."""
        session = make_session(sample_csv_text, scope_id=None)
        for _ in range(3):
            session.advance()

        result = session.finalize(notify=False)

        notifier.assert_not_called()
        assert result.payload.summary.new == 4


class TestSessionStore:
    """Tests for the in-memory session store"""

    def test_store_and_get(self, make_session, sample_csv_text):
        """Should return the stored session by id."""
        session = make_session(sample_csv_text)

        session_id = session_store.store_session(session)

        assert session_store.get_session(session_id) is session

    def test_unknown_session_raises(self):
        """Should raise ImportSessionNotFoundError."""
        with pytest.raises(ImportSessionNotFoundError):
            session_store.get_session("missing")

    def test_expired_session_is_removed(self, make_session, sample_csv_text):
        """Should forget sessions past their expiry."""
        session = make_session(sample_csv_text)
        session_store._sessions[session.id] = (datetime.now() - timedelta(minutes=1), session)

        with pytest.raises(ImportSessionNotFoundError):
            session_store.get_session(session.id)

        assert session.id not in session_store._sessions

    def test_delete_session(self, make_session, sample_csv_text):
        """Should drop the session."""
        session = make_session(sample_csv_text)
        session_store.store_session(session)

        session_store.delete_session(session.id)

        with pytest.raises(ImportSessionNotFoundError):
            session_store.get_session(session.id)
