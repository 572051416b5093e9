import re

from passlib.hash import bcrypt
from quizhub.config import config


EMAIL_REGEX = re.compile(r"^[^@]+@[^@]+\.[^@]+$")

# bcrypt ignores everything past this many bytes of input
BCRYPT_MAX_BYTES = 72

PROFILE_FIELDS = ("full_name", "email", "password")


def _bcrypt_input(plain_password: str) -> str:
    # Drop any multi-byte character cut in half by the byte limit
    password_bytes = plain_password.encode('utf-8')[:BCRYPT_MAX_BYTES]
    return password_bytes.decode('utf-8', errors='ignore')


def hash_password(plain_password: str) -> str:
    """Hash a password with bcrypt after cutting it to the bytes bcrypt reads."""
    return bcrypt.hash(_bcrypt_input(plain_password))


def verify_password(plain_password: str, password_hash: str) -> bool:
    return bcrypt.verify(_bcrypt_input(plain_password), password_hash)


def normalize_email(email) -> str:
    return (email or "").strip().lower() if isinstance(email, str) else ""


def is_valid_email(email: str) -> bool:
    return bool(email and EMAIL_REGEX.match(email))


def validate_password(password: str) -> tuple[bool, str | None]:
    """
    Basic server-side password validation.
    Returns (is_valid, error_message).
    """
    if not isinstance(password, str):
        return False, "Password must be a string"
    min_length = config.MIN_PASSWORD_LENGTH
    if len(password) < min_length:
        return False, f"Password must be at least {min_length} characters long"
    if len(password.encode('utf-8')) > BCRYPT_MAX_BYTES:
        return False, f"Password must be at most {BCRYPT_MAX_BYTES} bytes long"
    return True, None


def validate_role(role, allowed: list[str]) -> str | None:
    """Return an error message when ``role`` is not one of ``allowed``."""
    if role not in allowed:
        return f"Role must be one of: {', '.join(allowed)}"
    return None


def validate_profile_update(data: dict) -> tuple[dict, str | None]:
    """
    Check a profile update payload.

    Only full_name, email and password may change. Returns the cleaned
    values and an error message (None when the payload is acceptable).
    """
    unknown = sorted(set(data) - set(PROFILE_FIELDS))
    if unknown:
        return {}, f"Invalid updates: {', '.join(unknown)}"
    if not data:
        return {}, "Nothing to update"

    cleaned = {}
    if "full_name" in data:
        full_name = data["full_name"].strip() if isinstance(data["full_name"], str) else ""
        if not full_name:
            return {}, "Full name cannot be empty"
        cleaned["full_name"] = full_name
    if "email" in data:
        email = normalize_email(data["email"])
        if not is_valid_email(email):
            return {}, "Please provide a valid email address"
        cleaned["email"] = email
    if "password" in data:
        is_valid, error_message = validate_password(data["password"])
        if not is_valid:
            return {}, error_message
        cleaned["password_hash"] = hash_password(data["password"])
    return cleaned, None
