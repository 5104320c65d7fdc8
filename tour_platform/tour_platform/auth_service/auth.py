from passlib.context import CryptContext
from datetime import datetime, timedelta
from typing import Optional
import calendar
import hashlib
import secrets
import jwt

# Use pbkdf2_sha256 to avoid external bcrypt backend issues in some environments
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not plain_password or not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def to_timestamp(moment: datetime) -> int:
    """Epoch seconds for a naive UTC datetime."""
    return calendar.timegm(moment.utctimetuple())


def create_access_token(
    user_id: int,
    secret: str,
    expires_in: timedelta,
    algorithm: str = "HS256",
    issued_at: Optional[datetime] = None,
) -> str:
    issued_at = issued_at or datetime.utcnow()
    payload = {
        "id": user_id,
        "iat": to_timestamp(issued_at),
        "exp": to_timestamp(issued_at + expires_in),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256") -> dict:
    """
    Verify signature and expiry of a session token.

    Raises:
        jwt.ExpiredSignatureError: token is past its `exp`
        jwt.InvalidTokenError: any other verification failure
    """
    return jwt.decode(
        token,
        secret,
        algorithms=[algorithm],
        options={"require": ["id", "iat", "exp"]},
    )


def create_reset_token() -> tuple[str, str]:
    """
    Generate a password reset token.

    Returns:
        Tuple of (raw_token, hashed_token). Only the hash is stored; the raw
        token goes out by email.
    """
    raw_token = secrets.token_hex(32)
    return raw_token, hash_reset_token(raw_token)


def hash_reset_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()
