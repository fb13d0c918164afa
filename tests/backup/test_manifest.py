"""Tests for backup.json parsing and validation."""

import json
from datetime import datetime

import pytest

from plantcare.backup.exceptions import ManifestValidationError
from plantcare.backup.manifest import find_dangling_references, parse_manifest
from plantcare.db.models import CareActivityType, HealthStatus


def _encode(data) -> bytes:
    return json.dumps(data).encode("utf-8")


class TestParseManifest:
    """Test decoding of valid manifests."""

    def test_parses_wire_format(self, manifest_data):
        """Test that camelCase fields map onto the model."""
        manifest = parse_manifest(_encode(manifest_data))

        assert manifest.export_info.username == "alice"
        assert [p.name for p in manifest.plants] == ["Monstera", "Fern"]
        assert manifest.plants[0].watering_frequency == 7
        assert manifest.plants[1].species is None
        assert manifest.locations[0].is_default is True
        assert manifest.watering_history[0].plant_id == 10
        assert manifest.plant_health_records[0].status == HealthStatus.THRIVING
        assert manifest.care_activities[0].activity_type == CareActivityType.MISTING
        assert manifest.notification_settings.reminder_time == "07:30"

    def test_dates_become_naive_utc(self, manifest_data):
        """Test that ISO strings are coerced to naive UTC datetimes."""
        manifest_data["plants"][1]["lastWatered"] = "2024-05-02T11:00:00+02:00"

        manifest = parse_manifest(_encode(manifest_data))

        assert manifest.plants[0].last_watered == datetime(2024, 5, 1, 8, 30)
        assert manifest.plants[1].last_watered == datetime(2024, 5, 2, 9, 0)
        assert manifest.export_info.export_date.tzinfo is None

    def test_optional_sections_default(self, manifest_data):
        """Test that older exports without history sections are accepted."""
        for key in ("wateringHistory", "plantHealthRecords", "careActivities"):
            del manifest_data[key]
        del manifest_data["notificationSettings"]

        manifest = parse_manifest(_encode(manifest_data))

        assert manifest.watering_history == []
        assert manifest.plant_health_records == []
        assert manifest.care_activities == []
        assert manifest.notification_settings is None

    def test_unknown_fields_ignored(self, manifest_data):
        """Test that extra fields do not cause rejection."""
        manifest_data["futureSection"] = [{"id": 1}]
        manifest_data["plants"][0]["favourite"] = True

        manifest = parse_manifest(_encode(manifest_data))

        assert not hasattr(manifest.plants[0], "favourite")
        assert not hasattr(manifest.plants[0], "user_id")

    def test_secret_notification_fields_dropped(self, manifest_data):
        """Test that credentials in an uploaded manifest never reach the model."""
        manifest_data["notificationSettings"]["pushoverAppToken"] = "stolen-token"
        manifest_data["notificationSettings"]["sendgridApiKey"] = "SG.stolen"

        manifest = parse_manifest(_encode(manifest_data))

        dumped = manifest.notification_settings.model_dump()
        assert "pushover_app_token" not in dumped
        assert "sendgrid_api_key" not in dumped
        assert "stolen" not in manifest.model_dump_json()

    def test_missing_location_flag_defaults_false(self, manifest_data):
        """Test that locations without isDefault are treated as user-created."""
        del manifest_data["locations"][1]["isDefault"]

        manifest = parse_manifest(_encode(manifest_data))

        assert manifest.locations[1].is_default is False


class TestManifestErrors:
    """Test rejection of malformed manifests."""

    def test_invalid_json(self):
        """Test that non-JSON content is rejected."""
        with pytest.raises(ManifestValidationError, match="not valid JSON"):
            parse_manifest(b"{not json")

    def test_invalid_utf8(self):
        """Test that undecodable bytes are rejected."""
        with pytest.raises(ManifestValidationError, match="UTF-8"):
            parse_manifest(b"\xff\xfe\x00")

    def test_top_level_must_be_object(self):
        """Test that a JSON array is rejected."""
        with pytest.raises(ManifestValidationError, match="JSON object"):
            parse_manifest(b"[]")

    def test_missing_required_section(self, manifest_data):
        """Test that plants are mandatory."""
        del manifest_data["plants"]

        with pytest.raises(ManifestValidationError, match="plants: Field required"):
            parse_manifest(_encode(manifest_data))

    def test_error_names_offending_record(self, manifest_data):
        """Test that the message points at the record by index and ID."""
        del manifest_data["plants"][1]["name"]

        with pytest.raises(ManifestValidationError) as exc_info:
            parse_manifest(_encode(manifest_data))

        assert "plants[1] (id=11): name: Field required" in str(exc_info.value)
        assert str(exc_info.value).startswith("Backup data validation failed: ")

    def test_unknown_enum_value(self, manifest_data):
        """Test that unknown health statuses are rejected."""
        manifest_data["plantHealthRecords"][0]["status"] = "wilting"

        with pytest.raises(ManifestValidationError, match=r"plantHealthRecords\[0\] \(id=200\)"):
            parse_manifest(_encode(manifest_data))

    def test_wrong_type(self, manifest_data):
        """Test that a non-numeric watering frequency is rejected."""
        manifest_data["plants"][0]["wateringFrequency"] = "weekly"

        with pytest.raises(ManifestValidationError, match="wateringFrequency"):
            parse_manifest(_encode(manifest_data))

    def test_stored_values_are_not_range_checked(self, manifest_data):
        """Test that any value the app can store is accepted back."""
        manifest_data["plants"][1]["wateringFrequency"] = 0
        manifest_data["plants"][1]["name"] = ""
        manifest_data["plantHealthRecords"][0]["imageUrl"] = "/uploads/" + "a" * 1100 + ".jpg"
        manifest_data["notificationSettings"]["reminderTime"] = "7:30am"

        manifest = parse_manifest(_encode(manifest_data))

        assert manifest.plants[1].watering_frequency == 0
        assert manifest.plants[1].name == ""
        assert len(manifest.plant_health_records[0].image_url) > 1024
        assert manifest.notification_settings.reminder_time == "7:30am"

    def test_duplicate_plant_ids(self, manifest_data):
        """Test that ambiguous plant IDs are rejected."""
        manifest_data["plants"][1]["id"] = 10

        with pytest.raises(ManifestValidationError, match="Duplicate plant ids"):
            parse_manifest(_encode(manifest_data))

    def test_error_list_is_truncated(self, manifest_data):
        """Test that only the first few problems are echoed back."""
        template = manifest_data["plants"][1]
        manifest_data["plants"] = [
            {key: value for key, value in template.items() if key != "name"} | {"id": i}
            for i in range(12)
        ]

        with pytest.raises(ManifestValidationError) as exc_info:
            parse_manifest(_encode(manifest_data))

        assert len(exc_info.value.errors) == 12
        assert "(and 2 more)" in str(exc_info.value)


class TestDanglingReferences:
    """Test detection of records pointing at missing plants."""

    def test_no_dangling_references(self, manifest_data):
        """Test that a consistent manifest has no warnings."""
        manifest = parse_manifest(_encode(manifest_data))

        assert find_dangling_references(manifest) == []

    def test_reports_each_dangling_record(self, manifest_data):
        """Test that orphaned history records are listed."""
        manifest_data["wateringHistory"][0]["plantId"] = 999
        manifest_data["careActivities"][0]["plantId"] = 998
        manifest = parse_manifest(_encode(manifest_data))

        problems = find_dangling_references(manifest)

        assert problems == [
            "Watering history entry 100 references missing plant 999",
            "Care activity 300 references missing plant 998",
        ]
