"""Authentication utilities for JWT and password handling."""

from datetime import UTC, datetime, timedelta

import bcrypt
from jose import JWTError, jwt
from pydantic import BaseModel

from plantcare.config import get_settings

settings = get_settings()


class TokenData(BaseModel):
    """Token payload data.

    Attributes:
        user_id: User's integer ID.
        username: User's login name.
    """

    user_id: int
    username: str


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash.

    Args:
        plain_password: Plain text password.
        hashed_password: Hashed password to compare against.

    Returns:
        bool: True if password matches, False otherwise.
    """
    password_bytes = plain_password.encode("utf-8")
    hash_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(password_bytes, hash_bytes)


def get_password_hash(password: str) -> str:
    """Hash a password.

    Args:
        password: Plain text password.

    Returns:
        str: Hashed password.
    """
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def create_access_token(
    user_id: int,
    username: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token.

    Args:
        user_id: User's ID.
        username: User's login name.
        expires_delta: Optional custom expiration time.

    Returns:
        str: Encoded JWT token.
    """
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )

    to_encode = {
        "sub": str(user_id),
        "username": username,
        "exp": expire,
        "type": "access",
    }

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> TokenData | None:
    """Decode and validate a JWT access token.

    Args:
        token: JWT token string.

    Returns:
        TokenData | None: Token data if valid, None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    if subject is None or payload.get("type") != "access":
        return None

    try:
        return TokenData(user_id=int(subject), username=payload.get("username", ""))
    except ValueError:
        return None
