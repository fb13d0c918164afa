"""Dependency injection for FastAPI."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from plantcare.auth.utils import decode_access_token
from plantcare.db.database import SessionLocal
from plantcare.db.models import User
from plantcare.storage.blobs import BlobStore, LocalBlobStore, get_image_store, get_local_blob_store

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """Get database session.

    Yields:
        Session: SQLAlchemy session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    access_token: str | None = Cookie(None),
) -> User:
    """Get the current authenticated user from JWT token or cookie.

    Args:
        credentials: HTTP Bearer token credentials.
        db: Database session.
        access_token: Access token from cookie.

    Returns:
        User: The authenticated user.

    Raises:
        HTTPException: If authentication fails.
    """
    # Try Bearer token first, then fall back to cookie
    token = None
    if credentials is not None:
        token = credentials.credentials
    elif access_token is not None:
        token = access_token

    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = decode_access_token(token)
    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.get(User, token_data.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return user


def get_image_blob_store() -> BlobStore:
    """Store that restored plant images are uploaded to."""
    return get_image_store()


def get_upload_store() -> LocalBlobStore:
    """Local uploads directory that exported images are read from."""
    return get_local_blob_store()


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
ImageStore = Annotated[BlobStore, Depends(get_image_blob_store)]
UploadStore = Annotated[LocalBlobStore, Depends(get_upload_store)]
