"""
Security Module

Handles password hashing and the signup password policy.
Uses passlib with bcrypt.

SECURITY NOTES:
- Passwords are hashed with bcrypt (slow by design to prevent brute force)
- The policy is configurable through Settings (PASSWORD_* fields)
"""
import re
from typing import List
from passlib.context import CryptContext
from zyrapay.config import Settings

# Password hashing context
# Using bcrypt with default rounds (12) - good balance of security and performance
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SYMBOLS = re.compile(r"[^A-Za-z0-9\s]")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    Uses constant-time comparison to prevent timing attacks.
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    NOTE: This is intentionally slow (100ms+) to prevent brute force attacks.
    """
    return pwd_context.hash(password)


def password_policy_errors(password: str, settings: Settings) -> List[str]:
    """
    Check a password against the configured strength policy.

    Returns a list of human-readable problems, empty when the password passes.
    """
    errors = []

    if len(password) < settings.PASSWORD_MIN_LENGTH:
        errors.append(f"The password must be at least {settings.PASSWORD_MIN_LENGTH} characters.")

    if settings.PASSWORD_REQUIRE_MIXED_CASE and not (
        re.search(r"[a-z]", password) and re.search(r"[A-Z]", password)
    ):
        errors.append("The password must contain at least one uppercase and one lowercase letter.")

    if settings.PASSWORD_REQUIRE_NUMBERS and not re.search(r"\d", password):
        errors.append("The password must contain at least one number.")

    if settings.PASSWORD_REQUIRE_SYMBOLS and not SYMBOLS.search(password):
        errors.append("The password must contain at least one symbol.")

    return errors
