from datetime import datetime, timezone
from typing import Optional
from passlib.context import CryptContext
from fastapi.security import HTTPBearer
import hashlib
import secrets
from enum import Enum

from .config import settings

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

# Bearer session tokens; a missing header is reported as TokenInvalid by deps
security = HTTPBearer(auto_error=False)

class Role(str, Enum):
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"

# Password utilities
def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a plain password against its hash."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Generate password hash."""
    return pwd_context.hash(password)

# Session token utilities
def generate_session_token() -> str:
    """Generate an opaque, unguessable session token (256 bits)."""
    return secrets.token_urlsafe(32)

def hash_session_token(token: str) -> str:
    """Storage key for a session token; raw tokens are never persisted."""
    return hashlib.sha256(token.encode()).hexdigest()

def utcnow() -> datetime:
    """Naive UTC timestamp, the format session rows are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def clinic_now() -> datetime:
    """Naive wall-clock time at the clinic, the format appointments use."""
    return datetime.now(settings.clinic_timezone).replace(tzinfo=None)

def to_clinic_time(value: datetime) -> datetime:
    """Convert an aware datetime to naive clinic time; naive input is kept."""
    if value.tzinfo is None:
        return value
    return value.astimezone(settings.clinic_timezone).replace(tzinfo=None)
