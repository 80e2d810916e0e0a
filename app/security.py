"""
Security utilities: password hashing, access tokens, and refresh tokens.

This module centralizes all cryptographic operations so they're easy to
audit and update. Three concerns are handled here:

1. PASSWORD HASHING (Argon2)
   - Passwords are never stored in plaintext
   - passlib's CryptContext handles hashing and future scheme migration

2. ACCESS TOKENS (JWT, HS256)
   - Short-lived, stateless, carry the user id ("sub") and email
   - Signed with SECRET_KEY; expire after ACCESS_TOKEN_EXPIRE_MINUTES

3. REFRESH TOKENS (opaque)
   - 128 hex characters of randomness handed to the client
   - Only the SHA-256 digest is stored, so a database leak does not leak
     usable tokens
   - Rotated on every use (see services/auth_service.py)

Provider webhook JWTs (Plaid, ES256) are verified in
app/providers/plaid_provider.py with the same python-jose library.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from app.config import settings


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2)
# ---------------------------------------------------------------------------

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """
    Hash a plaintext password using Argon2id.

    Args:
        plain_password: The user's raw password input.

    Returns:
        An Argon2 hash string (e.g., "$argon2id$v=19$m=65536,t=3,p=4$...").
    """
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a stored Argon2 hash."""
    return pwd_context.verify(plain_password, hashed_password)


# ---------------------------------------------------------------------------
# 2. Access tokens (JWT)
# ---------------------------------------------------------------------------


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Dictionary of claims to encode (must include "sub").
        expires_delta: Optional custom expiration time. Defaults to
                       ACCESS_TOKEN_EXPIRE_MINUTES from settings.

    Returns:
        An encoded JWT string.
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT access token.

    Raises:
        JWTError: If the token is expired, tampered with, or invalid.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


# ---------------------------------------------------------------------------
# 3. Refresh tokens (opaque)
# ---------------------------------------------------------------------------


def generate_refresh_token() -> str:
    """Return a new random refresh token (128 hex characters)."""
    return secrets.token_hex(64)


def hash_refresh_token(token: str) -> str:
    """SHA-256 hex digest of a refresh token; this is what gets stored."""
    return hashlib.sha256(token.encode()).hexdigest()
