"""Password hashing and access tokens."""
import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Optional
from uuid import UUID

from jose import jwt, JWTError

from .clock import utc_now
from .config import Settings
from .errors import UnauthorizedError

logger = logging.getLogger("tasktrack-core.security")

PBKDF2_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ITERATIONS = 200_000


def _pbkdf2(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


def hash_password(password: str) -> str:
    """
    Hash a password with a fresh random salt.

    Returns:
        Encoded hash ``pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>``
    """
    salt = secrets.token_bytes(16)
    digest = _pbkdf2(password, salt, PBKDF2_ITERATIONS)
    return f"{PBKDF2_ALGORITHM}${PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    """Check a plaintext password against an encoded hash in constant time."""
    try:
        algorithm, iterations, salt_hex, hash_hex = encoded.split("$")
        if algorithm != PBKDF2_ALGORITHM:
            return False
        digest = _pbkdf2(password, bytes.fromhex(salt_hex), int(iterations))
    except (ValueError, TypeError):
        logger.warning("Stored password hash has an unexpected format")
        return False
    return hmac.compare_digest(digest.hex(), hash_hex)


def create_access_token(
    settings: Settings,
    user_id: UUID,
    username: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Issue a signed bearer token for a user.

    Args:
        settings: Application settings (secret, algorithm, default lifetime)
        user_id: Subject of the token
        username: Included for client display only
        role: Role at issue time; authorization always re-reads the stored role
        expires_delta: Override for the token lifetime

    Returns:
        Encoded JWT
    """
    expires = utc_now() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {
        "sub": str(user_id),
        "username": username,
        "role": role,
        "exp": expires,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> UUID:
    """
    Validate a bearer token and return the user id it was issued for.

    Raises:
        UnauthorizedError: If the token is invalid, expired, or malformed
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return UUID(payload["sub"])
    except (JWTError, KeyError, ValueError) as e:
        logger.warning(f"Rejected access token: {e.__class__.__name__}")
        raise UnauthorizedError("Invalid or expired token") from e
