"""
core/security.py
----------------
Password hashing and JWT token utilities.

Design decisions:
  - bcrypt work factor 12 (good balance of security vs latency)
  - JWT payload contains sub (user_id), company_id, email and role for
    zero-DB-round-trip tenant resolution in the gate chain.
  - Decoded payloads are validated against TokenPayload; a token signed
    with the right secret but carrying a different shape is rejected.
  - Refresh and invitation tokens are opaque random strings. Only their
    SHA-256 digest is stored, so a database leak does not leak live tokens.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ValidationError

from app.core.config import settings
from app.core.exceptions import Unauthenticated
from app.models.user import UserRole

# bcrypt context — rounds=12 is OWASP recommended minimum
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


class TokenPayload(BaseModel):
    """Shape every access token must decode to."""

    model_config = {"extra": "forbid"}

    sub: str
    company_id: str
    email: str
    role: UserRole
    iat: int
    exp: int


# ── Password Utilities ────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the plain-text password."""
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time comparison of plain password against stored hash."""
    return pwd_context.verify(plain, hashed)


# ── JWT Utilities ─────────────────────────────────────────────────────────────

def create_access_token(
    subject: str,
    company_id: str,
    email: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mint a JWT access token.

    Args:
        subject: User UUID (stored in 'sub' claim).
        company_id: Company UUID, read by the tenant gate.
        email: User email, informational.
        role: 'USER' | 'MANAGER' | 'ADMIN'
        expires_delta: Optional custom expiry; defaults to settings value.

    Returns:
        Signed JWT string.
    """
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload: Dict[str, Any] = {
        "sub": subject,
        "company_id": company_id,
        "email": email,
        "role": role,
        "exp": expire,
        "iat": now,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> TokenPayload:
    """
    Decode and validate a JWT access token.

    Raises:
        Unauthenticated: expired (AUTH_TOKEN_EXPIRED), tampered, or of an
            unexpected shape (AUTH_INVALID_TOKEN).
    """
    try:
        raw = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthenticated("Access token expired", code="AUTH_TOKEN_EXPIRED")
    except JWTError:
        raise Unauthenticated("Invalid access token", code="AUTH_INVALID_TOKEN")

    try:
        return TokenPayload.model_validate(raw)
    except ValidationError:
        raise Unauthenticated("Invalid access token", code="AUTH_INVALID_TOKEN")


# ── Opaque Tokens ─────────────────────────────────────────────────────────────

def generate_opaque_token() -> str:
    """URL-safe random token for refresh and invitation links."""
    return secrets.token_urlsafe(32)


def hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
