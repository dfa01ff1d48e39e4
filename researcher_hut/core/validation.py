import re

from researcher_hut.core.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SIGNUP_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
ADMIN_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]{3,32}$")
OTP_RE = re.compile(r"^\d{6}$")
TAG_RE = re.compile(r"<[^>]*>")

MAX_EMAIL_LENGTH = 254
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128
MAX_NAME_LENGTH = 100


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email)) and len(email) <= MAX_EMAIL_LENGTH

def normalize_email(email: str) -> str:
    return (email or "").strip().lower()

def sanitize_text(text: str) -> str:
    return TAG_RE.sub("", text or "").strip()

# --- raising validators (messages are safe to return to the client) ---

def require_email(email: str, field: str = "Email") -> str:
    email = normalize_email(email)
    if not email:
        raise ValidationError(f"{field} is required")
    if not is_valid_email(email):
        raise ValidationError("Invalid email format")
    return email

def require_otp(otp: str) -> str:
    otp = (otp or "").strip()
    if not OTP_RE.match(otp):
        raise ValidationError("OTP must be exactly 6 digits")
    return otp

def require_password(password: str, field: str = "Password") -> str:
    if not password:
        raise ValidationError(f"{field} is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"{field} must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationError(f"{field} must be at most {MAX_PASSWORD_LENGTH} characters")
    return password

def require_signup_username(username: str) -> str:
    username = (username or "").strip()
    if not SIGNUP_USERNAME_RE.match(username):
        raise ValidationError(
            "Username must be 3-20 characters and contain only letters, numbers and underscores"
        )
    return username.lower()

def require_admin_username(username: str) -> str:
    username = (username or "").strip()
    if not ADMIN_USERNAME_RE.match(username):
        raise ValidationError(
            "Username must be 3-32 characters and contain only letters, numbers, hyphens and underscores"
        )
    return username

def require_name(name: str) -> str:
    name = sanitize_text(name)
    if not name:
        raise ValidationError("Name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")
    return name
