"""Database module."""

from plantcare.db.database import SessionLocal, engine, init_db
from plantcare.db.models import (
    Base,
    CareActivity,
    Location,
    NotificationSettings,
    Plant,
    PlantHealthRecord,
    User,
    WateringHistory,
)

__all__ = [
    "SessionLocal",
    "engine",
    "init_db",
    "Base",
    "User",
    "Location",
    "Plant",
    "WateringHistory",
    "PlantHealthRecord",
    "CareActivity",
    "NotificationSettings",
]
