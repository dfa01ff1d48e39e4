import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import Response
from jose import jwt
from passlib.context import CryptContext
from passlib.exc import MissingBackendError

from researcher_hut.core.config import settings


pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)

def ensure_password_backend() -> None:
    """
    Fails startup when bcrypt cannot be loaded. There is no weaker fallback
    scheme: credentials are never stored with anything but bcrypt.
    """
    try:
        pwd_context.handler("bcrypt").get_backend()
    except MissingBackendError as exc:
        raise RuntimeError("bcrypt backend is unavailable; refusing to start") from exc

# --- OTP helpers ---

OTP_MIN = 100000
OTP_MAX = 999999

def generate_otp() -> str:
    # uniform over [100000, 999999]
    return str(secrets.randbelow(OTP_MAX - OTP_MIN + 1) + OTP_MIN)

def hash_otp(otp: str) -> str:
    return hashlib.sha256((otp + settings.OTP_SECRET).encode("utf-8")).hexdigest()

def otp_matches(otp: str, otp_hash: str) -> bool:
    return hmac.compare_digest(hash_otp(otp), otp_hash)

# --- admin session ---

ADMIN_ROLE = "admin"

def create_admin_session_token(admin_id: str, expires_minutes: int | None = None) -> str:
    now = datetime.now(tz=timezone.utc)
    to_encode = {
        "sub": admin_id,
        "role": ADMIN_ROLE,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or settings.ADMIN_SESSION_EXPIRE_MINUTES),
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

def decode_admin_session_token(token: str) -> dict:
    """Raises jose.JWTError on a bad signature, a malformed token or an expired one."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])

def set_admin_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.ADMIN_COOKIE_NAME,
        value=token,
        max_age=settings.ADMIN_SESSION_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )

def clear_admin_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.ADMIN_COOKIE_NAME,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )
