"""User-scoped data access for plants and their related records.

Every query and write is filtered by the user the store was created for,
so callers cannot reach another account's rows.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from plantcare.db.models import (
    NOTIFICATION_SECRET_FIELDS,
    CareActivity,
    Location,
    NotificationSettings,
    Plant,
    PlantHealthRecord,
    User,
    WateringHistory,
)

# Plant columns that an update may change
PLANT_MUTABLE_FIELDS = frozenset(
    {"name", "species", "location", "watering_frequency", "last_watered", "notes", "image_url"}
)


class UserDataStore:
    """Storage operations scoped to a single user.

    Writes are flushed but never committed; the caller owns the transaction.
    """

    def __init__(self, db: Session, user_id: int):
        """Initialize the store.

        Args:
            db: Database session.
            user_id: Acting user's ID.
        """
        self.db = db
        self.user_id = user_id

    def get_user(self) -> User | None:
        """Get the acting user."""
        return self.db.query(User).filter(User.id == self.user_id).first()

    # --- Locations ---

    def get_all_locations(self) -> list[Location]:
        return (
            self.db.query(Location)
            .filter(Location.user_id == self.user_id)
            .order_by(Location.id)
            .all()
        )

    def find_location_by_name(self, name: str) -> Location | None:
        """Find a location by case-insensitive name.

        Args:
            name: Location name.

        Returns:
            Location | None: The matching location, default or not.
        """
        return (
            self.db.query(Location)
            .filter(
                Location.user_id == self.user_id,
                func.lower(Location.name) == name.lower(),
            )
            .first()
        )

    def create_location(self, name: str, is_default: bool = False) -> Location:
        location = Location(name=name, is_default=is_default, user_id=self.user_id)
        self.db.add(location)
        self.db.flush()
        return location

    def delete_custom_locations(self) -> int:
        """Delete the user's non-default locations.

        Returns:
            int: Number of rows deleted.
        """
        return (
            self.db.query(Location)
            .filter(Location.user_id == self.user_id, Location.is_default.is_(False))
            .delete(synchronize_session="fetch")
        )

    # --- Plants ---

    def get_all_plants(self) -> list[Plant]:
        return self.db.query(Plant).filter(Plant.user_id == self.user_id).order_by(Plant.id).all()

    def find_plant(self, name: str, species: str | None, location: str) -> Plant | None:
        """Find a plant by its natural key (name, species, location).

        Matching is case-insensitive. A missing species only matches plants
        that have no species either.

        Args:
            name: Plant name.
            species: Species name or None.
            location: Location name.

        Returns:
            Plant | None: First matching plant.
        """
        query = self.db.query(Plant).filter(
            Plant.user_id == self.user_id,
            func.lower(Plant.name) == name.lower(),
            func.lower(Plant.location) == location.lower(),
        )
        if species is None:
            query = query.filter(Plant.species.is_(None))
        else:
            query = query.filter(func.lower(Plant.species) == species.lower())
        return query.order_by(Plant.id).first()

    def create_plant(
        self,
        name: str,
        location: str,
        watering_frequency: int,
        last_watered: datetime,
        species: str | None = None,
        notes: str | None = None,
        image_url: str | None = None,
    ) -> Plant:
        plant = Plant(
            name=name,
            species=species,
            location=location,
            watering_frequency=watering_frequency,
            last_watered=last_watered,
            notes=notes,
            image_url=image_url,
            user_id=self.user_id,
        )
        self.db.add(plant)
        self.db.flush()
        return plant

    def update_plant(self, plant: Plant, **fields: Any) -> Plant:
        """Update mutable fields on one of the user's plants.

        Args:
            plant: Plant to update.
            **fields: Column values to set.

        Returns:
            Plant: The updated plant.

        Raises:
            ValueError: If the plant belongs to another user or a field is not mutable.
        """
        if plant.user_id != self.user_id:
            raise ValueError(f"Plant {plant.id} does not belong to user {self.user_id}")
        unknown = set(fields) - PLANT_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update plant fields: {sorted(unknown)}")

        for field, value in fields.items():
            setattr(plant, field, value)
        self.db.flush()
        return plant

    def delete_all_plants(self) -> int:
        """Delete the user's plants together with their dependent records.

        Returns:
            int: Number of plants deleted.
        """
        plant_ids = select(Plant.id).where(Plant.user_id == self.user_id)
        for model in (WateringHistory, PlantHealthRecord, CareActivity):
            self.db.query(model).filter(model.plant_id.in_(plant_ids)).delete(
                synchronize_session="fetch"
            )
        return (
            self.db.query(Plant)
            .filter(Plant.user_id == self.user_id)
            .delete(synchronize_session="fetch")
        )

    # --- Plant history ---

    def get_all_watering_history(self) -> list[WateringHistory]:
        return (
            self.db.query(WateringHistory)
            .filter(WateringHistory.user_id == self.user_id)
            .order_by(WateringHistory.id)
            .all()
        )

    def create_watering_history(self, plant_id: int, watered_at: datetime) -> WateringHistory:
        entry = WateringHistory(plant_id=plant_id, watered_at=watered_at, user_id=self.user_id)
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_all_health_records(self) -> list[PlantHealthRecord]:
        return (
            self.db.query(PlantHealthRecord)
            .filter(PlantHealthRecord.user_id == self.user_id)
            .order_by(PlantHealthRecord.id)
            .all()
        )

    def create_health_record(
        self,
        plant_id: int,
        status: str,
        recorded_at: datetime,
        notes: str | None = None,
        image_url: str | None = None,
    ) -> PlantHealthRecord:
        record = PlantHealthRecord(
            plant_id=plant_id,
            status=status,
            notes=notes,
            image_url=image_url,
            recorded_at=recorded_at,
            user_id=self.user_id,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get_all_care_activities(self) -> list[CareActivity]:
        return (
            self.db.query(CareActivity)
            .filter(CareActivity.user_id == self.user_id)
            .order_by(CareActivity.id)
            .all()
        )

    def create_care_activity(
        self,
        plant_id: int,
        activity_type: str,
        performed_at: datetime,
        notes: str | None = None,
    ) -> CareActivity:
        activity = CareActivity(
            plant_id=plant_id,
            activity_type=activity_type,
            notes=notes,
            performed_at=performed_at,
            user_id=self.user_id,
        )
        self.db.add(activity)
        self.db.flush()
        return activity

    # --- Notification settings ---

    def get_notification_settings(self) -> NotificationSettings | None:
        return (
            self.db.query(NotificationSettings)
            .filter(NotificationSettings.user_id == self.user_id)
            .first()
        )

    def upsert_notification_settings(self, **fields: Any) -> NotificationSettings:
        """Create or update the user's notification settings.

        Args:
            **fields: Column values to set.

        Returns:
            NotificationSettings: The stored row.

        Raises:
            ValueError: If a secret credential field is passed.
        """
        secret = NOTIFICATION_SECRET_FIELDS & set(fields)
        if secret:
            raise ValueError(f"Refusing to write secret notification fields: {sorted(secret)}")

        settings = self.get_notification_settings()
        if settings is None:
            settings = NotificationSettings(user_id=self.user_id)
            self.db.add(settings)
        for field, value in fields.items():
            setattr(settings, field, value)
        self.db.flush()
        return settings

    def delete_notification_settings(self) -> int:
        return (
            self.db.query(NotificationSettings)
            .filter(NotificationSettings.user_id == self.user_id)
            .delete(synchronize_session="fetch")
        )

    # --- Bulk ---

    def delete_all_user_data(self) -> None:
        """Delete plants (with history), custom locations and notification settings."""
        self.delete_all_plants()
        self.delete_custom_locations()
        self.delete_notification_settings()
