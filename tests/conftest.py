"""Pytest configuration and fixtures."""

import io
import os
from collections.abc import Generator
from datetime import datetime

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["DEBUG"] = "false"
os.environ["R2_ACCOUNT_ID"] = ""

import pytest
from PIL import Image
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from plantcare.auth.utils import get_password_hash
from plantcare.db.database import enable_sqlite_savepoints
from plantcare.db.models import Base, Location, NotificationSettings, User
from plantcare.storage.blobs import LocalBlobStore

# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_savepoints(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    """Local blob store rooted in a temporary directory."""
    return LocalBlobStore(tmp_path / "uploads")


@pytest.fixture(scope="function")
def client(db: Session, blob_store: LocalBlobStore) -> Generator[TestClient, None, None]:
    """Create a test client with database and storage overrides."""
    # Import here to ensure env vars are set
    from plantcare.dependencies import get_db, get_image_blob_store, get_upload_store
    from plantcare.main import app

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_image_blob_store] = lambda: blob_store
    app.dependency_overrides[get_upload_store] = lambda: blob_store
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), "green").save(buffer, "PNG")
    return buffer.getvalue()


def _create_user(db: Session, username: str) -> User:
    user = User(username=username, password_hash=get_password_hash("testpassword123"))
    db.add(user)
    db.flush()
    db.add(Location(name="Living Room", is_default=True, user_id=user.id))
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a test user with one default location."""
    return _create_user(db, "alice")


@pytest.fixture
def other_user(db: Session) -> User:
    """Create a second user."""
    return _create_user(db, "bob")


@pytest.fixture
def authenticated_client(client: TestClient, test_user: User) -> TestClient:
    """Create an authenticated test client."""
    from plantcare.dependencies import get_current_user
    from plantcare.main import app

    def override_get_current_user():
        return test_user

    app.dependency_overrides[get_current_user] = override_get_current_user
    yield client
    if get_current_user in app.dependency_overrides:
        del app.dependency_overrides[get_current_user]


@pytest.fixture
def populated_user(db: Session, test_user: User, blob_store: LocalBlobStore) -> User:
    """A user with plants, history, a custom location, settings and one local image."""
    from plantcare.storage.repository import UserDataStore

    store = UserDataStore(db, test_user.id)
    store.create_location("Balcony")

    image_url = blob_store.write_bytes(
        f"users/{test_user.id}/plants/monstera.png", _png_bytes()
    )
    monstera = store.create_plant(
        name="Monstera",
        species="Monstera deliciosa",
        location="Living Room",
        watering_frequency=7,
        last_watered=datetime(2024, 5, 1, 8, 30),
        notes="Likes indirect light",
        image_url=image_url,
    )
    fern = store.create_plant(
        name="Fern",
        location="Balcony",
        watering_frequency=3,
        last_watered=datetime(2024, 5, 2, 9, 0),
    )

    store.create_watering_history(monstera.id, datetime(2024, 4, 24, 8, 0))
    store.create_health_record(
        monstera.id,
        status="thriving",
        recorded_at=datetime(2024, 4, 20, 12, 0),
        notes="New leaf",
        image_url="/uploads/health/leaf.jpg",
    )
    store.create_care_activity(fern.id, "misting", datetime(2024, 4, 30, 18, 0))
    store.create_care_activity(monstera.id, "fertilizing", datetime(2024, 4, 15, 10, 0))

    db.add(
        NotificationSettings(
            user_id=test_user.id,
            enabled=True,
            pushover_enabled=True,
            pushover_app_token="secret-app-token",
            pushover_user_key="secret-user-key",
            sendgrid_api_key="SG.secret-sendgrid-key",
            email_enabled=True,
            email_address="alice@example.com",
            reminder_time="07:30",
            reminder_days_before=1,
        )
    )
    db.commit()
    db.refresh(test_user)
    return test_user
