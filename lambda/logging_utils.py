"""
Logging utilities with sensitive data sanitization.
"""
import re
import json
from typing import Any, Optional


# Sensitive keys that should be redacted
SENSITIVE_KEYS = {
    'email', 'code', 'otp', 'token', 'password', 'secret',
    'authorization', 'x-api-key', 'api_key', 'api_key_parameter',
    'phone', 'phone_number', 'registration_number', 'private_key'
}


def sanitize_for_logging(data: Any) -> Any:
    """
    Sanitize sensitive data before logging.

    Recursively processes dictionaries, lists, and strings to remove
    sensitive information like emails, phone numbers, tokens, and credentials.

    Args:
        data: Data to sanitize (dict, str, list, or other types)

    Returns:
        Sanitized data safe for logging
    """
    if isinstance(data, dict):
        sanitized = {}
        for key, value in data.items():
            if isinstance(key, str) and key.lower() in SENSITIVE_KEYS:
                sanitized[key] = '***REDACTED***'
            elif isinstance(value, (dict, list)):
                sanitized[key] = sanitize_for_logging(value)
            elif isinstance(value, str):
                sanitized[key] = sanitize_string(value)
            else:
                sanitized[key] = value
        return sanitized

    elif isinstance(data, list):
        return [sanitize_for_logging(item) for item in data]

    elif isinstance(data, str):
        return sanitize_string(data)

    return data


def sanitize_string(text: str) -> str:
    """
    Sanitize sensitive patterns in strings.

    Args:
        text: String to sanitize

    Returns:
        Sanitized string with sensitive patterns redacted
    """
    if not isinstance(text, str):
        return text

    # Redact email addresses
    text = re.sub(
        r'\b[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}\b',
        '***EMAIL***',
        text
    )

    # Redact verification tokens (long hex runs, optionally prefixed)
    text = re.sub(
        r'\b(?:mlk_|wgt_)?[a-f0-9]{32,}\b',
        '***TOKEN***',
        text
    )

    # Redact AWS access keys
    text = re.sub(
        r'(AKIA|ASIA)[0-9A-Z]{16}',
        '***AWS_KEY***',
        text
    )

    # Redact phone numbers in international format
    text = re.sub(
        r'\+\d{8,15}\b',
        '***PHONE***',
        text
    )

    # Redact one-time codes (4-8 digit numbers in isolation)
    text = re.sub(
        r'\b\d{4,8}\b',
        '***CODE***',
        text
    )

    return text


def log_safe(message: str, data: Any = None) -> None:
    """
    Log a message with automatically sanitized data.

    Args:
        message: Log message
        data: Optional data to include (will be sanitized)
    """
    if data is not None:
        sanitized_data = sanitize_for_logging(data)
        if isinstance(sanitized_data, (dict, list)):
            print(f"{message}: {json.dumps(sanitized_data, default=str)}")
        else:
            print(f"{message}: {sanitized_data}")
    else:
        print(message)


def log_email_event(operation: str, email: str, success: bool, details: Optional[str] = None) -> None:
    """
    Log an email-related event with sanitized email address.

    Args:
        operation: Operation name (e.g., "sent", "validated")
        email: Email address (only the domain is logged)
        success: Whether operation succeeded
        details: Optional additional details
    """
    domain = email.rsplit('@', 1)[1] if '@' in email else 'unknown'
    status = "SUCCESS" if success else "FAILED"

    if details:
        print(f"Email {operation} {status} to domain @{domain}: {sanitize_string(details)}")
    else:
        print(f"Email {operation} {status} to domain @{domain}")


def log_upstream_error(operation: str, status_code: Optional[int], university_id: Optional[str] = None) -> None:
    """
    Log external API errors without exposing response bodies or credentials.

    Args:
        operation: Operation that failed (e.g., "registration_lookup", "whatsapp_send")
        status_code: HTTP status code, or None for network failures
        university_id: University whose endpoint was called, if any
    """
    error_info = {
        'operation': operation,
        'status_code': status_code,
        'university_id': university_id
    }
    print(f"Upstream API error: {json.dumps(error_info)}")


def log_operator_alert(kind: str, university_id: Optional[str], detail: str) -> None:
    """
    Log a condition that needs an administrator, not the student, to fix.

    Args:
        kind: Failure classification (e.g., "NOT_CONFIGURED")
        university_id: Affected university
        detail: Human-readable description (will be sanitized)
    """
    print(
        f"OPERATOR ACTION REQUIRED [{kind}] university={university_id}: "
        f"{sanitize_string(detail)}"
    )
