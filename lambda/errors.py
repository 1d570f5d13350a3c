"""
Typed failures for student verification.

Every failure the orchestrator reports to its caller is one of these classes,
so the entrypoint can turn it into a response without inspecting messages.
"""
from typing import Any, Dict, List, Optional


class VerificationError(Exception):
    """Base class for all verification failures."""

    code = 'VERIFICATION_ERROR'
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {'code': self.code, 'message': self.message}
        if self.details:
            body['details'] = self.details
        return body


# ==============================================================================
# Administrative gaps
# ==============================================================================

class NotConfigured(VerificationError):
    """The university (or a delivery channel) is missing required setup."""
    code = 'NOT_CONFIGURED'
    status_code = 503


class NoDomainsConfigured(NotConfigured):
    code = 'NO_DOMAINS_CONFIGURED'


# ==============================================================================
# Caller mistakes
# ==============================================================================

class InvalidInput(VerificationError):
    code = 'INVALID_INPUT'
    status_code = 400


class DomainMismatch(InvalidInput):
    """Email domain is not one of the university's accepted domains."""
    code = 'DOMAIN_MISMATCH'

    def __init__(self, accepted_domains: List[str]):
        listed = ', '.join(accepted_domains)
        super().__init__(
            f"Email domain does not match; use an email ending with {listed}",
            {'accepted_domains': list(accepted_domains)}
        )
        self.accepted_domains = list(accepted_domains)


# ==============================================================================
# Missing entities
# ==============================================================================

class NotFound(VerificationError):
    code = 'NOT_FOUND'
    status_code = 404


class UniversityNotFound(NotFound):
    code = 'UNIVERSITY_NOT_FOUND'


class StudentNotFound(NotFound):
    code = 'STUDENT_NOT_FOUND'


class VendorNotFound(NotFound):
    code = 'VENDOR_NOT_FOUND'


class ProductNotFound(NotFound):
    code = 'PRODUCT_NOT_FOUND'


class TokenNotFound(NotFound):
    code = 'TOKEN_NOT_FOUND'


class ChallengeNotFound(NotFound):
    code = 'CHALLENGE_NOT_FOUND'


# ==============================================================================
# Authorization
# ==============================================================================

class Unauthorized(VerificationError):
    code = 'UNAUTHORIZED'
    status_code = 401


class TokenOwnerMismatch(Unauthorized):
    """Widget token presented by a vendor other than the one it was issued to."""
    code = 'TOKEN_OWNER_MISMATCH'
    status_code = 403


class StudentNotVerified(Unauthorized):
    code = 'STUDENT_NOT_VERIFIED'
    status_code = 403


class InvalidCode(Unauthorized):
    code = 'INVALID_CODE'

    def __init__(self, attempts_remaining: int):
        super().__init__(
            f"Incorrect code. {attempts_remaining} attempt(s) remaining.",
            {'attempts_remaining': attempts_remaining}
        )
        self.attempts_remaining = attempts_remaining


class TooManyAttempts(Unauthorized):
    code = 'TOO_MANY_ATTEMPTS'
    status_code = 403


# ==============================================================================
# Credential lifecycle
# ==============================================================================

class Expired(VerificationError):
    code = 'EXPIRED'
    status_code = 410


class TokenExpired(Expired):
    code = 'TOKEN_EXPIRED'


class OtpExpired(Expired):
    code = 'OTP_EXPIRED'


class AlreadyUsed(VerificationError):
    code = 'ALREADY_USED'
    status_code = 409


class TokenAlreadyUsed(AlreadyUsed):
    code = 'TOKEN_ALREADY_USED'


class InvalidTransition(VerificationError):
    code = 'INVALID_TRANSITION'
    status_code = 409


# ==============================================================================
# Throttling and delivery
# ==============================================================================

class RateLimited(VerificationError):
    code = 'RATE_LIMITED'
    status_code = 429

    def __init__(self, retry_after_seconds: int):
        super().__init__(
            f"Please wait {retry_after_seconds} seconds before requesting another code.",
            {'retry_after_seconds': retry_after_seconds}
        )
        self.retry_after_seconds = retry_after_seconds


class DeliveryFailed(VerificationError):
    """The email or WhatsApp collaborator did not accept the message."""
    code = 'DELIVERY_FAILED'
    status_code = 502
