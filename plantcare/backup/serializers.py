"""Serialization utilities for backup/restore.

Handles conversion between SQLAlchemy models and manifest records.
"""

import re
from datetime import UTC, datetime

from plantcare.backup.schemas import (
    BackupCareActivity,
    BackupHealthRecord,
    BackupLocation,
    BackupNotificationSettings,
    BackupPlant,
    BackupWateringEntry,
)
from plantcare.db.models import (
    CareActivity,
    Location,
    NotificationSettings,
    Plant,
    PlantHealthRecord,
    WateringHistory,
)

MAX_IMAGE_NAME_LENGTH = 100


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(UTC).replace(tzinfo=None)


def sanitize_name(name: str) -> str:
    """Make a plant name safe for use in an archive entry name.

    Args:
        name: Plant display name.

    Returns:
        str: Name with every non-alphanumeric character replaced by ``_``.
    """
    return re.sub(r"[^a-zA-Z0-9]", "_", name)[:MAX_IMAGE_NAME_LENGTH]


def image_entry_name(plant_id: int, plant_name: str, extension: str) -> str:
    """Archive entry name for a plant's image.

    Args:
        plant_id: Source plant ID.
        plant_name: Plant display name.
        extension: File extension without the dot.

    Returns:
        str: ``images/plant-<id>-<sanitized-name>.<ext>``
    """
    return f"images/plant-{plant_id}-{sanitize_name(plant_name)}.{extension.lower()}"


def image_prefix(plant_id: int) -> str:
    """Prefix shared by image names bundled for a source plant."""
    return f"plant-{plant_id}-"


# --- Records ---


def serialize_location(location: Location) -> BackupLocation:
    return BackupLocation(
        id=location.id,
        name=location.name,
        is_default=bool(location.is_default),
    )


def serialize_plant(plant: Plant) -> BackupPlant:
    return BackupPlant(
        id=plant.id,
        name=plant.name,
        species=plant.species,
        location=plant.location,
        watering_frequency=plant.watering_frequency,
        last_watered=plant.last_watered,
        notes=plant.notes,
        image_url=plant.image_url,
    )


def serialize_watering_entry(entry: WateringHistory) -> BackupWateringEntry:
    return BackupWateringEntry(id=entry.id, plant_id=entry.plant_id, watered_at=entry.watered_at)


def serialize_health_record(record: PlantHealthRecord) -> BackupHealthRecord:
    return BackupHealthRecord(
        id=record.id,
        plant_id=record.plant_id,
        status=record.status,
        notes=record.notes,
        image_url=record.image_url,
        recorded_at=record.recorded_at,
    )


def serialize_care_activity(activity: CareActivity) -> BackupCareActivity:
    return BackupCareActivity(
        id=activity.id,
        plant_id=activity.plant_id,
        activity_type=activity.activity_type,
        notes=activity.notes,
        performed_at=activity.performed_at,
    )


def serialize_notification_settings(
    settings: NotificationSettings | None,
) -> BackupNotificationSettings | None:
    """Project notification settings onto their exportable subset.

    Credential columns are never read here.

    Args:
        settings: Stored settings row, if any.

    Returns:
        BackupNotificationSettings | None: Sanitized settings.
    """
    if settings is None:
        return None
    return BackupNotificationSettings(
        enabled=settings.enabled,
        pushover_enabled=settings.pushover_enabled,
        email_enabled=settings.email_enabled,
        email_address=settings.email_address,
        reminder_time=settings.reminder_time,
        reminder_days_before=settings.reminder_days_before,
        last_updated=settings.last_updated,
    )


def notification_settings_fields(settings: BackupNotificationSettings) -> dict:
    """Column values to restore from exported notification settings.

    Only non-secret columns are produced; unset reminder fields keep the
    destination's current values.

    Args:
        settings: Settings from the manifest.

    Returns:
        dict: Column name to value.
    """
    fields = {
        "enabled": settings.enabled,
        "pushover_enabled": settings.pushover_enabled,
        "email_enabled": settings.email_enabled,
        "email_address": settings.email_address,
    }
    if settings.reminder_time is not None:
        fields["reminder_time"] = settings.reminder_time
    if settings.reminder_days_before is not None:
        fields["reminder_days_before"] = settings.reminder_days_before
    return fields
