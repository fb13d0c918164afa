"""Export of a user's data as a backup archive."""

import io
import logging
import zipfile
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from plantcare import __version__
from plantcare.backup.archive import IMAGE_EXTENSIONS, MANIFEST_NAME
from plantcare.backup.schemas import BackupManifest, ExportInfo
from plantcare.backup.serializers import (
    image_entry_name,
    serialize_care_activity,
    serialize_health_record,
    serialize_location,
    serialize_notification_settings,
    serialize_plant,
    serialize_watering_entry,
    utcnow,
)
from plantcare.db.models import Plant
from plantcare.storage.blobs import LocalBlobStore, get_local_blob_store
from plantcare.storage.repository import UserDataStore

logger = logging.getLogger(__name__)

BACKUP_FORMAT_VERSION = __version__


@dataclass
class ExportArchive:
    """A finished backup archive ready for download."""

    content: bytes
    filename: str
    images_included: int = 0
    images_skipped: list[str] = field(default_factory=list)


def build_archive(manifest_bytes: bytes, images: list[tuple[str, bytes]]) -> bytes:
    """Write a backup ZIP.

    Args:
        manifest_bytes: Encoded backup.json, written as the first entry.
        images: ``(entry name, content)`` pairs.

    Returns:
        bytes: The archive.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(MANIFEST_NAME, manifest_bytes)
        for name, content in images:
            zf.writestr(name, content)
    return buffer.getvalue()


def generate_backup_filename(username: str) -> str:
    """Download filename, e.g. ``plantcare-backup-alice-2024-05-01T08-30-00.zip``."""
    timestamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S")
    return f"plantcare-backup-{username}-{timestamp}.zip"


def backup_summary(manifest: BackupManifest) -> str:
    """One-line human-readable description of a manifest's contents."""
    counts = manifest.record_counts()
    parts = [
        f"{counts['plants']} plants",
        f"{counts['locations']} locations",
        f"{counts['wateringHistory']} watering entries",
        f"{counts['plantHealthRecords']} health records",
        f"{counts['careActivities']} care activities",
    ]
    if manifest.notification_settings is not None:
        parts.append("notification settings")
    return ", ".join(parts)


class ExportService:
    """Builds backups of one user's data."""

    def __init__(self, db: Session, user_id: int, blob_store: LocalBlobStore | None = None):
        """Initialize export service.

        Args:
            db: Database session.
            user_id: User whose data is exported.
            blob_store: Local upload store that plant images are read from.
        """
        self.db = db
        self.user_id = user_id
        self.store = UserDataStore(db, user_id)
        self.blob_store = blob_store or get_local_blob_store()

    def export_user_data(self) -> BackupManifest:
        """Collect every record owned by the user.

        Returns:
            BackupManifest: The user's data. Notification credentials are never included.

        Raises:
            ValueError: If the user does not exist.
        """
        return self._build_manifest(self.store.get_all_plants())

    def _build_manifest(self, plants: list[Plant]) -> BackupManifest:
        user = self.store.get_user()
        if user is None:
            raise ValueError(f"User {self.user_id} not found")

        return BackupManifest(
            export_info=ExportInfo(
                version=BACKUP_FORMAT_VERSION,
                export_date=utcnow(),
                username=user.username,
            ),
            plants=[serialize_plant(p) for p in plants],
            locations=[serialize_location(loc) for loc in self.store.get_all_locations()],
            watering_history=[
                serialize_watering_entry(e) for e in self.store.get_all_watering_history()
            ],
            plant_health_records=[
                serialize_health_record(r) for r in self.store.get_all_health_records()
            ],
            care_activities=[
                serialize_care_activity(a) for a in self.store.get_all_care_activities()
            ],
            notification_settings=serialize_notification_settings(
                self.store.get_notification_settings()
            ),
        )

    def export_archive(self) -> ExportArchive:
        """Build the downloadable backup archive.

        Returns:
            ExportArchive: ZIP bytes with backup.json and the plants' local images.
        """
        # Image entries are named after the same rows the manifest lists
        plants = self.store.get_all_plants()
        manifest = self._build_manifest(plants)
        manifest_bytes = manifest.model_dump_json(by_alias=True, indent=2).encode("utf-8")

        images: list[tuple[str, bytes]] = []
        skipped: list[str] = []
        for plant in plants:
            if not plant.image_url:
                continue
            entry = self._read_plant_image(plant)
            if entry is None:
                skipped.append(plant.image_url)
            else:
                images.append(entry)

        if skipped:
            logger.info(
                f"Export for user {self.user_id} skipped {len(skipped)} images "
                "not held in local storage"
            )

        archive = ExportArchive(
            content=build_archive(manifest_bytes, images),
            filename=generate_backup_filename(manifest.export_info.username),
            images_included=len(images),
            images_skipped=skipped,
        )
        logger.info(
            f"Exported backup for user {self.user_id}: {backup_summary(manifest)}, "
            f"{archive.images_included} images"
        )
        return archive

    def _read_plant_image(self, plant: Plant) -> tuple[str, bytes] | None:
        """Load a plant's image from local storage.

        Returns:
            tuple[str, bytes] | None: Archive entry name and content, or None if
            the image is remote, missing or of an unsupported type.
        """
        key = LocalBlobStore.key_from_url(plant.image_url)
        if key is None:
            return None

        extension = key.rsplit(".", 1)[-1].lower() if "." in key else ""
        if f".{extension}" not in IMAGE_EXTENSIONS:
            logger.warning(f"Not exporting image with unsupported type for plant {plant.id}")
            return None

        try:
            content = self.blob_store.read_by_key(key)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read image for plant {plant.id}: {e}")
            return None

        return image_entry_name(plant.id, plant.name, extension), content
