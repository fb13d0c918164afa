"""Business logic for restoring a user's data from a backup archive."""

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field

from sqlalchemy.orm import Session

from plantcare.backup.archive import ArchiveLimits, read_archive
from plantcare.backup.exceptions import (
    BackupError,
    ImportCancelledError,
    ReplaceWipeError,
)
from plantcare.backup.images import BindOutcome, ImageBinder
from plantcare.backup.locks import AccountLockManager, account_locks
from plantcare.backup.manifest import find_dangling_references, parse_manifest
from plantcare.backup.schemas import (
    BackupCareActivity,
    BackupHealthRecord,
    BackupLocation,
    BackupManifest,
    BackupNotificationSettings,
    BackupPlant,
    BackupPreview,
    BackupWateringEntry,
    ImportMode,
    ImportSummary,
)
from plantcare.backup.serializers import notification_settings_fields, utcnow
from plantcare.db.models import Plant
from plantcare.storage.blobs import BlobStore
from plantcare.storage.repository import UserDataStore

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]


@dataclass
class _ImportTally:
    """Mutable counters for a single import run."""

    plants_imported: int = 0
    locations_imported: int = 0
    watering_history_imported: int = 0
    health_records_imported: int = 0
    care_activities_imported: int = 0
    images_imported: int = 0
    notification_settings_updated: bool = False
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def freeze(self, mode: ImportMode) -> ImportSummary:
        values = asdict(self)
        values["warnings"] = tuple(self.warnings)
        return ImportSummary(mode=mode, **values)


class ImportService:
    """Restores backups into one user's account.

    Everything written by an import happens inside a single database
    transaction; each record gets its own savepoint so that one bad record is
    skipped without undoing the rest. The transaction is committed only after
    every entity type has been restored.
    """

    def __init__(
        self,
        db: Session,
        user_id: int,
        blob_store: BlobStore | None = None,
        lock_manager: AccountLockManager | None = None,
        limits: ArchiveLimits | None = None,
    ):
        """Initialize import service.

        Args:
            db: Database session.
            user_id: Acting user's ID; every write is scoped to it.
            blob_store: Where restored plant images are uploaded. Without one,
                bundled images are reported as not restored.
            lock_manager: Per-account lock registry.
            limits: Archive extraction bounds.
        """
        self.db = db
        self.user_id = user_id
        self.store = UserDataStore(db, user_id)
        self.blob_store = blob_store
        self.locks = lock_manager or account_locks
        self.limits = limits

    def import_archive(
        self,
        data: bytes,
        mode: ImportMode = ImportMode.MERGE,
        should_cancel: CancelCheck | None = None,
        dry_run: bool = False,
    ) -> ImportSummary:
        """Read, validate and restore a backup archive.

        Args:
            data: Raw ZIP bytes.
            mode: Merge with or replace the account's existing data. The caller
                is responsible for confirming a replace with the user.
            should_cancel: Polled between records; returning True aborts the
                import and rolls everything back.
            dry_run: Run the full restore, then roll it back.

        Returns:
            ImportSummary: Counts of restored records and non-fatal warnings.

        Raises:
            ArchiveError: If the archive is corrupt, unsafe or too large.
            ManifestValidationError: If backup.json is malformed.
            ReplaceWipeError: If existing data could not be deleted.
            ImportInProgressError: If another import is running for the account.
            ImportCancelledError: If ``should_cancel`` returned True.
        """
        with self.locks.hold(self.user_id):
            extracted = read_archive(data, self.limits)
            manifest = parse_manifest(extracted.manifest_bytes)
            return self._restore(manifest, mode, extracted.image_files, should_cancel, dry_run)

    def import_manifest(
        self,
        manifest: BackupManifest,
        mode: ImportMode = ImportMode.MERGE,
        image_files: dict[str, bytes] | None = None,
        should_cancel: CancelCheck | None = None,
        dry_run: bool = False,
    ) -> ImportSummary:
        """Restore an already validated manifest.

        See ``import_archive`` for arguments and errors.
        """
        with self.locks.hold(self.user_id):
            return self._restore(manifest, mode, image_files or {}, should_cancel, dry_run)

    def _restore(
        self,
        manifest: BackupManifest,
        mode: ImportMode,
        image_files: dict[str, bytes],
        should_cancel: CancelCheck | None,
        dry_run: bool,
    ) -> ImportSummary:
        """Write the manifest's records in one transaction. The account lock must be held."""
        tally = _ImportTally()
        plant_ids: dict[int, int] = {}  # source plant ID -> destination plant ID
        binder = ImageBinder(self.store, self.blob_store)

        try:
            if mode == ImportMode.REPLACE:
                self._wipe_existing_data()

            self._restore_locations(manifest.locations, tally, should_cancel)
            self._restore_plants(
                manifest.plants, mode, image_files, binder, plant_ids, tally, should_cancel
            )
            tally.watering_history_imported = self._restore_dependents(
                manifest.watering_history,
                "watering history entry",
                self._create_watering_entry,
                plant_ids,
                tally,
                should_cancel,
            )
            tally.health_records_imported = self._restore_dependents(
                manifest.plant_health_records,
                "health record",
                self._create_health_record,
                plant_ids,
                tally,
                should_cancel,
            )
            tally.care_activities_imported = self._restore_dependents(
                manifest.care_activities,
                "care activity",
                self._create_care_activity,
                plant_ids,
                tally,
                should_cancel,
            )
            if manifest.notification_settings is not None:
                self._restore_notification_settings(manifest.notification_settings, tally)

            if dry_run:
                self._abort(binder)
            else:
                self.db.commit()
        except ImportCancelledError:
            self._abort(binder)
            logger.info(f"Import cancelled for user {self.user_id}; changes rolled back")
            raise
        except Exception:
            self._abort(binder)
            logger.exception(f"Import failed for user {self.user_id}")
            raise

        summary = tally.freeze(mode)
        action = "validated (dry run)" if dry_run else "imported"
        logger.info(
            f"Backup {action} for user {self.user_id} in {mode.value} mode: "
            f"{summary.plants_imported} plants, {summary.locations_imported} locations, "
            f"{summary.watering_history_imported} watering entries, "
            f"{summary.health_records_imported} health records, "
            f"{summary.care_activities_imported} care activities, "
            f"{summary.images_imported} images, {len(summary.warnings)} warnings"
        )
        return summary

    def preview_archive(self, data: bytes) -> BackupPreview:
        """Validate a backup archive without writing anything.

        Args:
            data: Raw ZIP bytes.

        Returns:
            BackupPreview: Record counts and any problems found.
        """
        try:
            extracted = read_archive(data, self.limits)
            manifest = parse_manifest(extracted.manifest_bytes)
        except BackupError as e:
            return BackupPreview(is_valid=False, errors=[str(e)])

        warnings = find_dangling_references(manifest)
        warnings.extend(f"Ignored archive entry {note}" for note in extracted.skipped)

        return BackupPreview(
            is_valid=True,
            export_info=manifest.export_info,
            record_counts=manifest.record_counts(),
            image_count=len(extracted.image_files),
            has_notification_settings=manifest.notification_settings is not None,
            warnings=warnings,
        )

    # --- Steps ---

    def _abort(self, binder: ImageBinder) -> None:
        self.db.rollback()
        binder.discard_uploads()

    @staticmethod
    def _checkpoint(should_cancel: CancelCheck | None) -> None:
        if should_cancel is not None and should_cancel():
            raise ImportCancelledError("Import cancelled; no changes were saved")

    def _wipe_existing_data(self) -> None:
        """Delete the account's plants, custom locations and notification settings."""
        try:
            with self.db.begin_nested():
                self.store.delete_all_user_data()
        except Exception as e:
            raise ReplaceWipeError(f"Failed to clear existing data before replace: {e}") from e
        logger.info(f"Cleared existing data for user {self.user_id} before replace import")

    def _restore_locations(
        self,
        locations: list[BackupLocation],
        tally: _ImportTally,
        should_cancel: CancelCheck | None,
    ) -> None:
        """Create user-defined locations that do not exist yet.

        Default locations are seeded per account and never restored. Existing
        locations are matched by case-insensitive name and reused.
        """
        for location in locations:
            self._checkpoint(should_cancel)
            if location.is_default:
                continue

            try:
                with self.db.begin_nested():
                    created = self.store.find_location_by_name(location.name) is None
                    if created:
                        self.store.create_location(location.name)
            except Exception as e:
                tally.warn(f"Failed to restore location '{location.name}': {e}")
                continue

            if created:
                tally.locations_imported += 1

    def _restore_plants(
        self,
        plants: list[BackupPlant],
        mode: ImportMode,
        image_files: dict[str, bytes],
        binder: ImageBinder,
        plant_ids: dict[int, int],
        tally: _ImportTally,
        should_cancel: CancelCheck | None,
    ) -> None:
        """Create or update plants and record their new IDs."""
        for record in plants:
            self._checkpoint(should_cancel)

            try:
                with self.db.begin_nested():
                    plant, created = self._restore_plant(record, mode)
            except Exception as e:
                tally.warn(f"Failed to restore plant '{record.name}': {e}")
                continue

            plant_ids[record.id] = plant.id
            tally.plants_imported += 1

            if created:
                self._restore_plant_image(record, plant, image_files, binder, tally)

    def _restore_plant(self, record: BackupPlant, mode: ImportMode) -> tuple[Plant, bool]:
        """Restore a single plant.

        Returns:
            tuple[Plant, bool]: The destination plant and whether it was created.
        """
        if mode == ImportMode.MERGE:
            existing = self.store.find_plant(record.name, record.species, record.location)
            if existing is not None:
                updates = {
                    "watering_frequency": record.watering_frequency,
                    "notes": record.notes,
                }
                if record.last_watered is not None:
                    updates["last_watered"] = record.last_watered
                return self.store.update_plant(existing, **updates), False

        # Images are attached separately once the plant exists
        plant = self.store.create_plant(
            name=record.name,
            species=record.species,
            location=record.location,
            watering_frequency=record.watering_frequency,
            last_watered=record.last_watered or utcnow(),
            notes=record.notes,
            image_url=None,
        )
        return plant, True

    def _restore_plant_image(
        self,
        record: BackupPlant,
        plant: Plant,
        image_files: dict[str, bytes],
        binder: ImageBinder,
        tally: _ImportTally,
    ) -> None:
        try:
            with self.db.begin_nested():
                outcome = binder.bind(record.id, plant, image_files)
        except Exception as e:
            tally.warn(f"Failed to restore image for plant '{record.name}': {e}")
            return

        if outcome == BindOutcome.BOUND:
            tally.images_imported += 1
        elif outcome == BindOutcome.NOT_FOUND:
            if record.image_url:
                tally.warn(f"Image for plant '{record.name}' was not included in the backup")
        else:
            tally.warn(f"Image for plant '{record.name}' not restored: {binder.last_error}")

    def _restore_dependents(
        self,
        records: list,
        kind: str,
        create: Callable[[object, int], object],
        plant_ids: dict[int, int],
        tally: _ImportTally,
        should_cancel: CancelCheck | None,
    ) -> int:
        """Restore records that reference a plant.

        Records whose plant was not restored are skipped with a warning, so no
        row is ever written with a dangling plant reference.

        Args:
            records: Manifest records with a ``plant_id``.
            kind: Human-readable record kind for warnings.
            create: Writes one record given the destination plant ID.
            plant_ids: Source to destination plant ID map.
            tally: Run counters.
            should_cancel: Cancellation check.

        Returns:
            int: Number of records written.
        """
        restored = 0
        for record in records:
            self._checkpoint(should_cancel)

            plant_id = plant_ids.get(record.plant_id)
            if plant_id is None:
                tally.warn(f"Skipping {kind}: plant ID {record.plant_id} not found")
                continue

            try:
                with self.db.begin_nested():
                    create(record, plant_id)
            except Exception as e:
                tally.warn(f"Failed to restore {kind}: {e}")
                continue

            restored += 1
        return restored

    def _create_watering_entry(self, record: BackupWateringEntry, plant_id: int) -> None:
        self.store.create_watering_history(plant_id, record.watered_at)

    def _create_health_record(self, record: BackupHealthRecord, plant_id: int) -> None:
        # Health photos are not bundled in archives, so source URLs would dangle
        self.store.create_health_record(
            plant_id=plant_id,
            status=record.status.value,
            notes=record.notes,
            recorded_at=record.recorded_at,
            image_url=None,
        )

    def _create_care_activity(self, record: BackupCareActivity, plant_id: int) -> None:
        self.store.create_care_activity(
            plant_id=plant_id,
            activity_type=record.activity_type.value,
            notes=record.notes,
            performed_at=record.performed_at,
        )

    def _restore_notification_settings(
        self, settings: BackupNotificationSettings, tally: _ImportTally
    ) -> None:
        """Restore non-secret notification preferences."""
        try:
            with self.db.begin_nested():
                self.store.upsert_notification_settings(**notification_settings_fields(settings))
        except Exception as e:
            tally.warn(f"Failed to restore notification settings: {e}")
            return
        tally.notification_settings_updated = True
