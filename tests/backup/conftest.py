"""Fixtures for backup tests."""

import io
import json
import zipfile

import pytest


def _make_archive(manifest=None, files=None, compression=zipfile.ZIP_DEFLATED) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as zf:
        if manifest is not None:
            content = manifest if isinstance(manifest, bytes) else json.dumps(manifest).encode()
            zf.writestr("backup.json", content)
        for name, content in (files or {}).items():
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def make_archive():
    """Build ZIP bytes from a manifest (dict or raw bytes) and extra entries."""
    return _make_archive


@pytest.fixture
def manifest_data() -> dict:
    """A small but complete backup.json document in wire format."""
    return {
        "exportInfo": {
            "version": "1.0.0",
            "exportDate": "2024-05-03T10:00:00.000Z",
            "username": "alice",
        },
        "plants": [
            {
                "id": 10,
                "name": "Monstera",
                "species": "Monstera deliciosa",
                "location": "Living Room",
                "wateringFrequency": 7,
                "lastWatered": "2024-05-01T08:30:00.000Z",
                "notes": "Likes indirect light",
                "imageUrl": "/uploads/monstera.png",
                "userId": 99,
            },
            {
                "id": 11,
                "name": "Fern",
                "species": None,
                "location": "Balcony",
                "wateringFrequency": 3,
                "lastWatered": "2024-05-02T09:00:00.000Z",
                "notes": None,
                "imageUrl": None,
            },
        ],
        "locations": [
            {"id": 1, "name": "Living Room", "isDefault": True},
            {"id": 2, "name": "Balcony", "isDefault": False},
        ],
        "wateringHistory": [
            {"id": 100, "plantId": 10, "wateredAt": "2024-04-24T08:00:00.000Z"},
        ],
        "plantHealthRecords": [
            {
                "id": 200,
                "plantId": 10,
                "status": "thriving",
                "notes": "New leaf",
                "imageUrl": "https://images.example.com/leaf.jpg",
                "recordedAt": "2024-04-20T12:00:00.000Z",
            },
        ],
        "careActivities": [
            {
                "id": 300,
                "plantId": 11,
                "activityType": "misting",
                "notes": None,
                "performedAt": "2024-04-30T18:00:00.000Z",
                "originalWateringId": None,
            },
        ],
        "notificationSettings": {
            "enabled": True,
            "pushoverEnabled": False,
            "emailEnabled": True,
            "emailAddress": "alice@example.com",
            "reminderTime": "07:30",
            "reminderDaysBefore": 1,
            "lastUpdated": "2024-05-01T00:00:00.000Z",
        },
    }
