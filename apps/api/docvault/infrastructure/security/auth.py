import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

JWT_SECRET = os.environ.get("JWT_SECRET")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
JWT_ISSUER = os.environ.get("JWT_ISSUER", "docvault-api")
JWT_AUDIENCE = os.environ.get("JWT_AUDIENCE", "docvault-web")
JWT_EXPIRE_MINUTES = int(os.environ.get("JWT_EXPIRE_MINUTES", "60"))
REFRESH_EXPIRE_DAYS = int(os.environ.get("JWT_REFRESH_EXPIRE_DAYS", "7"))
JWT_LEEWAY_SECONDS = int(os.environ.get("JWT_LEEWAY_SECONDS", "0"))

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET env var is required.")
if len(JWT_SECRET) < 32:
    raise RuntimeError("JWT_SECRET must be at least 32 characters.")

# Use pbkdf2_sha256 to sidestep bcrypt backend issues in slim images.
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
# Checked against when no account matches so lookups cost the same either way.
DUMMY_PASSWORD_HASH = pwd_context.hash(secrets.token_urlsafe(16))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time check of ``password`` against a stored hash; malformed hashes never match."""
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def create_access_token(
    user_id: str, email: str, role: str, expires_minutes: Optional[int] = None
) -> str:
    exp_minutes = JWT_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    now = utcnow()
    to_encode = {
        "sub": user_id,
        "email": email,
        "role": role,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": int(now.timestamp()),
        "exp": now + timedelta(minutes=exp_minutes),
        # jti keeps tokens issued within the same second distinct.
        "jti": secrets.token_hex(16),
        "token_type": "access",
    }
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str, expected_type: str = "access") -> Optional[dict]:
    """Verified claims of ``token``, or None when it is malformed, forged or expired."""
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
            options={
                "require_exp": True,
                "require_iat": True,
                "require_sub": True,
                "require_jti": True,
                "leeway": JWT_LEEWAY_SECONDS,
            },
        )
    except JWTError:
        return None
    if payload.get("token_type") != expected_type:
        return None
    return payload


def new_refresh_token_value() -> str:
    return secrets.token_urlsafe(32)


def refresh_token_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(days=REFRESH_EXPIRE_DAYS)
