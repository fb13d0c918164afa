"""SQLAlchemy database models."""

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class HealthStatus(str, enum.Enum):
    """Plant health status enumeration."""

    THRIVING = "thriving"
    STRUGGLING = "struggling"
    SICK = "sick"


class CareActivityType(str, enum.Enum):
    """Kinds of care that can be logged against a plant."""

    WATERING = "watering"
    FERTILIZING = "fertilizing"
    REPOTTING = "repotting"
    PRUNING = "pruning"
    MISTING = "misting"
    ROTATING = "rotating"


class User(Base):
    """Application user.

    Attributes:
        id: Primary key.
        username: Unique login name.
        password_hash: Bcrypt password hash.
        created_at: Creation timestamp.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    plants: Mapped[list["Plant"]] = relationship("Plant", back_populates="user")
    locations: Mapped[list["Location"]] = relationship("Location", back_populates="user")


class Location(Base):
    """A named place where plants live (e.g. "Kitchen").

    Default locations are seeded for every user and never exported as
    user-created data.
    """

    __tablename__ = "locations"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_location_user_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="locations")


class Plant(Base):
    """A plant owned by a user.

    Attributes:
        id: Primary key.
        name: Display name.
        species: Optional species name.
        location: Location name (free text, matched against Location.name).
        watering_frequency: Days between waterings.
        last_watered: When the plant was last watered.
        notes: Free-form notes.
        image_url: Image reference; ``/uploads/...`` for local files, otherwise an
            object store key or URL.
        user_id: Owning user.
    """

    __tablename__ = "plants"
    __table_args__ = (Index("ix_plants_user_id", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    species: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    watering_frequency: Mapped[int] = mapped_column(Integer, nullable=False)
    last_watered: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="plants")


class WateringHistory(Base):
    """Legacy watering log, superseded by CareActivity."""

    __tablename__ = "watering_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plant_id: Mapped[int] = mapped_column(
        ForeignKey("plants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    watered_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)


class PlantHealthRecord(Base):
    """Point-in-time health observation for a plant."""

    __tablename__ = "plant_health_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plant_id: Mapped[int] = mapped_column(
        ForeignKey("plants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)


class CareActivity(Base):
    """A care action (watering, pruning, ...) performed on a plant."""

    __tablename__ = "care_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plant_id: Mapped[int] = mapped_column(
        ForeignKey("plants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    activity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)


class NotificationSettings(Base):
    """Per-user reminder configuration.

    The pushover/sendgrid credential columns are secrets: they are never
    exported and never restored from a backup.
    """

    __tablename__ = "notification_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pushover_app_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    pushover_user_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    pushover_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sendgrid_api_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reminder_time: Mapped[str] = mapped_column(String(5), default="08:00", nullable=False)
    reminder_days_before: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# Columns on NotificationSettings that must never leave or enter the system via backups
NOTIFICATION_SECRET_FIELDS = frozenset(
    {"pushover_app_token", "pushover_user_key", "sendgrid_api_key"}
)
