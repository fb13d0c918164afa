"""Tests for user-scoped storage operations."""

from datetime import datetime

import pytest

from plantcare.db.models import CareActivity, Location, NotificationSettings, Plant
from plantcare.storage.repository import UserDataStore


@pytest.fixture
def store(db, test_user) -> UserDataStore:
    return UserDataStore(db, test_user.id)


def _plant(store: UserDataStore, name="Monstera", species=None, location="Kitchen") -> Plant:
    return store.create_plant(
        name=name,
        species=species,
        location=location,
        watering_frequency=7,
        last_watered=datetime(2024, 5, 1),
    )


class TestLocations:
    """Tests for location lookups."""

    def test_find_by_name_ignores_case(self, store):
        """Test case-insensitive lookup, default locations included."""
        assert store.find_location_by_name("living room").is_default is True
        assert store.find_location_by_name("Garage") is None

    def test_delete_custom_locations_keeps_defaults(self, db, store, test_user):
        """Test that only user-created locations are removed."""
        store.create_location("Office")

        deleted = store.delete_custom_locations()

        assert deleted == 1
        names = [loc.name for loc in db.query(Location).filter(Location.user_id == test_user.id)]
        assert names == ["Living Room"]


class TestPlants:
    """Tests for plant lookups and updates."""

    def test_find_plant_by_natural_key(self, store):
        """Test case-insensitive matching on name, species and location."""
        plant = _plant(store, species="Monstera deliciosa")

        assert store.find_plant("MONSTERA", "monstera deliciosa", "kitchen").id == plant.id
        assert store.find_plant("Monstera", None, "Kitchen") is None
        assert store.find_plant("Monstera", "Monstera deliciosa", "Office") is None

    def test_find_plant_null_species(self, store):
        """Test that a missing species matches only a missing species."""
        plant = _plant(store)

        assert store.find_plant("Monstera", None, "Kitchen").id == plant.id
        assert store.find_plant("Monstera", "Anything", "Kitchen") is None

    def test_plants_are_scoped_to_user(self, db, store, other_user):
        """Test that another user's plants are invisible."""
        _plant(UserDataStore(db, other_user.id))

        assert store.get_all_plants() == []
        assert store.find_plant("Monstera", None, "Kitchen") is None

    def test_update_rejects_foreign_plant(self, db, store, other_user):
        """Test that plants of other users cannot be updated."""
        foreign = _plant(UserDataStore(db, other_user.id))

        with pytest.raises(ValueError, match="does not belong"):
            store.update_plant(foreign, notes="mine now")

    def test_update_rejects_unknown_field(self, store):
        """Test that ownership columns cannot be changed through updates."""
        plant = _plant(store)

        with pytest.raises(ValueError, match="user_id"):
            store.update_plant(plant, user_id=999)

    def test_delete_all_plants_removes_history(self, db, store, test_user):
        """Test that dependent rows go with their plants."""
        plant = _plant(store)
        store.create_care_activity(plant.id, "pruning", datetime(2024, 5, 2))

        assert store.delete_all_plants() == 1
        assert db.query(CareActivity).filter(CareActivity.user_id == test_user.id).count() == 0


class TestNotificationSettings:
    """Tests for notification settings writes."""

    def test_upsert_creates_then_updates(self, db, store, test_user):
        """Test that a single row is kept per user."""
        store.upsert_notification_settings(enabled=True, reminder_time="07:00")
        store.upsert_notification_settings(enabled=False)

        rows = (
            db.query(NotificationSettings).filter(NotificationSettings.user_id == test_user.id).all()
        )
        assert len(rows) == 1
        assert rows[0].enabled is False
        assert rows[0].reminder_time == "07:00"

    def test_upsert_refuses_secrets(self, store):
        """Test that credential columns cannot be written."""
        with pytest.raises(ValueError, match="pushover_app_token"):
            store.upsert_notification_settings(pushover_app_token="x")
