"""
Input validation utilities for security.
"""
import re
from typing import Optional, Tuple


# Input length limits
MAX_EMAIL_LENGTH = 254  # RFC 5321
MAX_DOMAIN_LENGTH = 253  # RFC 1035
MAX_NAME_LENGTH = 200
MAX_REGISTRATION_NUMBER_LENGTH = 32
MAX_TOKEN_LENGTH = 128


def validate_email_address(email: str) -> bool:
    """
    Validate email address format.

    Args:
        email: Email address to validate

    Returns:
        True if valid format, False otherwise
    """
    if not email or not isinstance(email, str):
        return False

    if len(email) > MAX_EMAIL_LENGTH:
        return False

    # RFC-leaning pattern (prevents consecutive dots and leading/trailing dots)
    pattern = r'^[a-zA-Z0-9]([a-zA-Z0-9._%+-]*[a-zA-Z0-9])?@[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?)*\.[a-zA-Z]{2,}$'
    if not re.match(pattern, email):
        return False

    return '..' not in email


def validate_domain(domain: str) -> bool:
    """
    Validate domain name format.

    Args:
        domain: Domain name to validate

    Returns:
        True if valid format, False otherwise
    """
    if not domain or not isinstance(domain, str):
        return False

    if len(domain) > MAX_DOMAIN_LENGTH:
        return False

    pattern = r'^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?)*$'
    return bool(re.match(pattern, domain))


def normalize_phone_number(phone: str) -> str:
    """
    Strip formatting from a phone number and prefix it with '+'.

    Args:
        phone: Phone number as typed (spaces, dashes, brackets allowed)

    Returns:
        Normalized number such as '+2348012345678'
    """
    digits = re.sub(r'[^0-9]', '', phone or '')
    return f"+{digits}"


def validate_phone_number(phone: str) -> bool:
    """
    Validate a phone number in international format.

    Accepts 8-15 digits with an optional leading '+' and common separators.

    Args:
        phone: Phone number to validate

    Returns:
        True if valid, False otherwise
    """
    if not phone or not isinstance(phone, str):
        return False

    if not re.match(r'^\+?[0-9 ()\-]+$', phone.strip()):
        return False

    digits = re.sub(r'[^0-9]', '', phone)
    return 8 <= len(digits) <= 15


def validate_registration_number(registration_number: str) -> bool:
    """
    Validate a university registration (matriculation) number.

    Args:
        registration_number: Value supplied by the student

    Returns:
        True if it only contains letters, digits, '/', '-' and '.'
    """
    if not registration_number or not isinstance(registration_number, str):
        return False

    value = registration_number.strip()
    if len(value) > MAX_REGISTRATION_NUMBER_LENGTH:
        return False

    return bool(re.match(r'^[A-Za-z0-9][A-Za-z0-9/.\-]*$', value))


def validate_input_lengths(
    email: Optional[str] = None,
    name: Optional[str] = None,
    token: Optional[str] = None
) -> Tuple[bool, Optional[str]]:
    """
    Validate input lengths to prevent resource exhaustion.

    Args:
        email: Email address (optional)
        name: Student name (optional)
        token: Presented token (optional)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if email and len(email) > MAX_EMAIL_LENGTH:
        return (False, f"Email address too long (max {MAX_EMAIL_LENGTH} characters)")

    if name and len(name) > MAX_NAME_LENGTH:
        return (False, f"Name too long (max {MAX_NAME_LENGTH} characters)")

    if token and len(token) > MAX_TOKEN_LENGTH:
        return (False, f"Token too long (max {MAX_TOKEN_LENGTH} characters)")

    return (True, None)
