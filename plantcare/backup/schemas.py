"""Pydantic schemas for backup/restore functionality.

Field names are snake_case in Python and camelCase on the wire, matching the
``backup.json`` format produced by earlier exports.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from plantcare.db.models import CareActivityType, HealthStatus


def _to_naive_utc(value: datetime) -> datetime:
    """Normalize timestamps to naive UTC, the form stored in the database."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value


Timestamp = Annotated[datetime, AfterValidator(_to_naive_utc)]


class BackupModel(BaseModel):
    """Base for every manifest record: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ImportMode(str, Enum):
    """How an import treats the account's existing data."""

    MERGE = "merge"  # Reconcile with existing records by natural key
    REPLACE = "replace"  # Delete existing data first


# --- Manifest records ---


class ExportInfo(BackupModel):
    """Provenance of a backup. Informational only."""

    version: str
    export_date: Timestamp
    username: str


class BackupPlant(BackupModel):
    id: int
    name: str
    species: str | None = None
    location: str
    watering_frequency: int = Field(description="Days between waterings")
    last_watered: Timestamp | None = None
    notes: str | None = None
    image_url: str | None = None


class BackupLocation(BackupModel):
    id: int
    name: str
    is_default: bool | None = False


class BackupWateringEntry(BackupModel):
    """Legacy watering log entry."""

    id: int
    plant_id: int
    watered_at: Timestamp


class BackupHealthRecord(BackupModel):
    id: int
    plant_id: int
    status: HealthStatus
    notes: str | None = None
    image_url: str | None = None
    recorded_at: Timestamp


class BackupCareActivity(BackupModel):
    id: int
    plant_id: int
    activity_type: CareActivityType
    notes: str | None = None
    performed_at: Timestamp


class BackupNotificationSettings(BackupModel):
    """Notification settings without any credentials.

    There are deliberately no token/key fields here: anything of the sort in an
    uploaded manifest is dropped at parse time, and exports cannot emit them.
    """

    enabled: bool
    pushover_enabled: bool = False
    email_enabled: bool = False
    email_address: str | None = None
    reminder_time: str | None = None
    reminder_days_before: int | None = None
    last_updated: Timestamp | None = None


class BackupManifest(BackupModel):
    """Root document stored as backup.json."""

    export_info: ExportInfo
    plants: list[BackupPlant]
    locations: list[BackupLocation]
    # Optional for compatibility with older exports
    watering_history: list[BackupWateringEntry] = Field(default_factory=list)
    plant_health_records: list[BackupHealthRecord] = Field(default_factory=list)
    care_activities: list[BackupCareActivity] = Field(default_factory=list)
    notification_settings: BackupNotificationSettings | None = None

    @model_validator(mode="after")
    def check_unique_plant_ids(self) -> "BackupManifest":
        # Dependent records are re-linked through plant IDs, which must be unambiguous
        seen: set[int] = set()
        duplicates: set[int] = set()
        for plant in self.plants:
            if plant.id in seen:
                duplicates.add(plant.id)
            seen.add(plant.id)
        if duplicates:
            raise ValueError(f"Duplicate plant ids: {sorted(duplicates)}")
        return self

    def record_counts(self) -> dict[str, int]:
        """Count of records per manifest section."""
        return {
            "plants": len(self.plants),
            "locations": len(self.locations),
            "wateringHistory": len(self.watering_history),
            "plantHealthRecords": len(self.plant_health_records),
            "careActivities": len(self.care_activities),
        }


# --- API results ---


class ImportSummary(BaseModel):
    """Outcome of an import. Frozen once returned."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    mode: ImportMode
    plants_imported: int = 0
    locations_imported: int = 0
    watering_history_imported: int = 0
    health_records_imported: int = 0
    care_activities_imported: int = 0
    images_imported: int = 0
    notification_settings_updated: bool = False
    warnings: tuple[str, ...] = ()


class ImportResponse(BaseModel):
    """Response body of the import endpoint."""

    success: bool
    message: str
    summary: ImportSummary


class BackupPreview(BaseModel):
    """Result of validating a backup archive without importing it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_valid: bool = Field(description="Whether the archive can be imported")
    export_info: ExportInfo | None = None
    record_counts: dict[str, int] = Field(default_factory=dict)
    image_count: int = 0
    has_notification_settings: bool = False
    warnings: list[str] = Field(default_factory=list, description="Non-fatal warnings")
    errors: list[str] = Field(default_factory=list, description="Fatal errors preventing import")
