"""
API tests for the import wizard and app listing routes.

Run: pytest tests/test_import_routes.py -v
"""

import pytest
from unittest.mock import patch

from tests.factories import AirtableRecordFactory


def _upload(client, content: str, scope_id: str = "CAMP-1", filename: str = "apps.csv"):
    data = {"scope_id": scope_id} if scope_id else {}
    return client.post(
        "/api/imports",
        files={"file": (filename, content.encode("utf-8"), "text/csv")},
        data=data,
    )


@pytest.fixture
def session_id(test_client_with_mock_airtable, sample_csv_text):
    response = _upload(test_client_with_mock_airtable, sample_csv_text)
    assert response.status_code == 201
    return response.json()["sessionId"]


# ===================
# UPLOAD
# ===================

class TestUpload:
    """Tests for POST /api/imports"""

    def test_upload_starts_session(self, test_client, sample_csv_text):
        """Should parse the file and auto-map known headers."""
        response = _upload(test_client, sample_csv_text)

        assert response.status_code == 201
        body = response.json()
        assert body["step"] == "mapping"
        assert body["rowCount"] == 5
        assert body["scopeId"] == "CAMP-1"
        assert body["autoMappedCount"] == 5
        assert body["mapping"]["custom_Region"] == "Region"
        assert body["hasRequiredMapping"] is True

    def test_empty_file_is_rejected(self, test_client):
        """Should return 422 for an empty file."""
        response = _upload(test_client, "")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "CSV_PARSE_ERROR"

    def test_sample_csv_download(self, test_client):
        """Should serve the sample file as an attachment."""
        response = test_client.get("/api/imports/sample-csv")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "test_apps.csv" in response.headers["content-disposition"]
        assert response.text.startswith("App Name,")

    def test_unknown_session_returns_404(self, test_client):
        """Should return the not-found error body."""
        response = test_client.get("/api/imports/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "IMPORT_SESSION_NOT_FOUND"

    def test_cancel_removes_session(self, test_client_with_mock_airtable, session_id):
        """Should delete the session."""
        client = test_client_with_mock_airtable

        assert client.delete(f"/api/imports/{session_id}").status_code == 204
        assert client.get(f"/api/imports/{session_id}").status_code == 404


# ===================
# MAPPING AND CSV DUPLICATES
# ===================

class TestMappingAndDuplicates:
    """Tests for mapping and CSV duplicate endpoints"""

    def test_mapping_update(self, test_client_with_mock_airtable, session_id):
        """Should remap a column."""
        response = test_client_with_mock_airtable.put(
            f"/api/imports/{session_id}/mapping",
            json={"header": "Region", "field": "country"},
        )

        assert response.status_code == 200
        assert response.json()["mapping"]["country"] == "Region"

    def test_unknown_mapping_field_returns_422(self, test_client_with_mock_airtable, session_id):
        """Should reject fields that do not exist."""
        response = test_client_with_mock_airtable.put(
            f"/api/imports/{session_id}/mapping",
            json={"header": "Region", "field": "rating"},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "UNKNOWN_FIELD"

    def test_csv_duplicates_listed(self, test_client_with_mock_airtable, session_id):
        """Should list the Vocal Image group with a keepFirst resolution."""
        response = test_client_with_mock_airtable.get(f"/api/imports/{session_id}/csv-duplicates")

        body = response.json()
        assert response.status_code == 200
        assert len(body["groups"]) == 1
        key = body["groups"][0]["key"]
        assert key == "appName:Vocal Image"
        assert body["resolutions"][key]["action"] == "keepFirst"
        assert body["resolutions"][key]["selectedIndex"] == 3
        assert body["summary"] == {"totalGroups": 1, "recordsKept": 1, "recordsSkipped": 1}

    def test_select_and_survivors(self, test_client_with_mock_airtable, session_id):
        """Should keep the selected row in the survivors."""
        client = test_client_with_mock_airtable

        response = client.post(
            f"/api/imports/{session_id}/csv-duplicates/select",
            json={"groupKey": "appName:Vocal Image", "originalIndex": 4},
        )
        survivors = client.get(f"/api/imports/{session_id}/survivors").json()

        assert response.status_code == 200
        assert [row["originalIndex"] for row in survivors] == [0, 1, 2, 4]
        assert survivors[3]["snapshot"]["developer"] == "Vocal Image Ltd"

    def test_unknown_group_returns_404(self, test_client_with_mock_airtable, session_id):
        """Should return 404 for a group key that does not exist."""
        response = test_client_with_mock_airtable.post(
            f"/api/imports/{session_id}/csv-duplicates/group-action",
            json={"groupKey": "appName:Nope", "action": "skip"},
        )

        assert response.status_code == 404

    def test_merge_field_requires_merge_action(self, test_client_with_mock_airtable, session_id):
        """Should reject merge choices on a keep group."""
        response = test_client_with_mock_airtable.post(
            f"/api/imports/{session_id}/csv-duplicates/merge-field",
            json={"groupKey": "appName:Vocal Image", "field": "developer", "memberIndex": 1},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_RESOLUTION"


# ===================
# NAVIGATION
# ===================

class TestNavigation:
    """Tests for next/back/finalize"""

    def test_next_requires_app_name_mapping(self, test_client_with_mock_airtable, session_id):
        """Should refuse to leave mapping without appName."""
        client = test_client_with_mock_airtable
        client.put(
            f"/api/imports/{session_id}/mapping",
            json={"header": "App Name", "field": "custom_App Name"},
        )

        response = client.post(f"/api/imports/{session_id}/next")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "MAPPING_REQUIRED"

    def test_wizard_to_finalize(self, test_client_with_mock_airtable, mock_table, session_id):
        """Should reach duplicates, resolve one record and finalize."""
        client = test_client_with_mock_airtable
        mock_table.set_records([
            AirtableRecordFactory.create(id="recDeep", app_name="Deepstash", developer="Old Name"),
        ])

        steps = [client.post(f"/api/imports/{session_id}/next").json()["step"] for _ in range(3)]
        assert steps == ["csvDuplicates", "validation", "duplicates"]

        remote = client.get(f"/api/imports/{session_id}/remote-duplicates").json()
        assert remote["matches"][0]["duplicates"][0]["id"] == "recDeep"
        assert remote["resolutions"]["recDeep"]["action"] == "keep"

        action = client.put(
            f"/api/imports/{session_id}/remote-duplicates/recDeep/action",
            json={"action": "merge"},
        )
        fields = client.put(
            f"/api/imports/{session_id}/remote-duplicates/recDeep/fields",
            json={"field": "developer", "resolution": "imported"},
        )
        assert action.status_code == 200
        assert fields.json()["fieldResolutions"]["developer"] == "imported"

        assert client.post(f"/api/imports/{session_id}/next").json()["step"] == "import"

        with patch("integrations.webhook.get_webhook_config", return_value=(None, 10)):
            response = client.post(f"/api/imports/{session_id}/finalize")

        body = response.json()
        assert response.status_code == 200
        assert body["notificationSent"] is False
        assert body["notificationError"] == "Notification webhook URL is not configured"
        summary = body["payload"]["summary"]
        assert summary == {"totalProcessed": 4, "new": 3, "updated": 1, "unchanged": 0}
        assert body["payload"]["updatedRecords"][0]["finalData"]["developer"] == "Deepstash"

    def test_finalize_before_import_returns_422(self, test_client_with_mock_airtable, session_id):
        """Should refuse to finalize early."""
        response = test_client_with_mock_airtable.post(f"/api/imports/{session_id}/finalize")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_STEP_TRANSITION"

    def test_back_from_mapping_returns_422(self, test_client_with_mock_airtable, session_id):
        """Should refuse to go back from the first step."""
        response = test_client_with_mock_airtable.post(f"/api/imports/{session_id}/back")

        assert response.status_code == 422

    def test_inline_correction(self, test_client):
        """Should fix an invalid row and report the file as valid."""
        upload = _upload(test_client, "App Name,App ID\n,123\nAlpha,1\n", scope_id=None)
        session_id = upload.json()["sessionId"]

        invalid = test_client.get(f"/api/imports/{session_id}/validation").json()
        fixed = test_client.patch(
            f"/api/imports/{session_id}/rows/0",
            json={"field": "appName", "value": "Fixed"},
        ).json()

        assert invalid["valid"] is False
        assert invalid["invalidRows"][0]["rowNumber"] == 1
        assert invalid["invalidRows"][0]["errors"] == {"appName": ["App name is required"]}
        assert fixed == {"valid": True, "invalidRows": []}


# ===================
# APPS
# ===================

class TestAppsRoute:
    """Tests for GET /api/apps"""

    def test_lists_records(self, test_client_with_mock_airtable, mock_table):
        """Should return mapped Airtable records."""
        mock_table.set_records([
            AirtableRecordFactory.create(id="rec1", app_name="Deepstash"),
            AirtableRecordFactory.create(id="rec2", app_name="LogicLike"),
        ])

        response = test_client_with_mock_airtable.get("/api/apps", params={"max_records": 1})

        assert response.status_code == 200
        assert [record["id"] for record in response.json()] == ["rec1"]
        assert response.json()[0]["appName"] == "Deepstash"

    def test_lookup_failure_returns_503(self, test_client_with_mock_airtable, mock_table):
        """Should map Airtable errors to 503."""
        mock_table.error = RuntimeError("boom")

        response = test_client_with_mock_airtable.get("/api/apps")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "AIRTABLE_ERROR"
