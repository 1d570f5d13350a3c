"""
One-time code helpers.
Pure functions with no database dependencies; callers supply the clock.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional


# Configuration
CODE_LENGTH = 6
MAX_VERIFICATION_ATTEMPTS = 3
OTP_EXPIRY_MINUTES = 10
WHATSAPP_OTP_EXPIRY_MINUTES = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_otp(length: int = CODE_LENGTH) -> str:
    """
    Generate a random numeric one-time code.

    The value is drawn uniformly from every string of `length` digits,
    leading zeros included, using the OS CSPRNG.

    Args:
        length: The length of the code (default: 6)

    Returns:
        A string of `length` digits
    """
    if length < 1:
        raise ValueError("OTP length must be at least 1")
    return str(secrets.randbelow(10 ** length)).zfill(length)


def expiry_from(now: Optional[datetime] = None, minutes: int = OTP_EXPIRY_MINUTES) -> datetime:
    """
    Calculate when a code issued at `now` stops being valid.

    Args:
        now: Issue time (defaults to the current UTC time)
        minutes: Validity window in minutes

    Returns:
        Expiry timestamp
    """
    if now is None:
        now = utc_now()
    return now + timedelta(minutes=minutes)


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Check whether a code has expired.

    A missing expiry is treated as expired. The code is still valid at the
    exact expiry instant and expired strictly after it.
    """
    if expires_at is None:
        return True
    if now is None:
        now = utc_now()
    return now > expires_at


def is_valid_code_format(code: str, length: int = CODE_LENGTH) -> bool:
    """
    Check if a string matches the expected code format (all digits, correct length).

    Args:
        code: The code to check
        length: Expected number of digits

    Returns:
        True if it matches the expected format, False otherwise
    """
    return isinstance(code, str) and code.isdigit() and len(code) == length
