"""
Verification orchestrator.

Picks the best verification tier for a student's available signals, runs the
issuance and completion steps of each tier, and writes a verification record
when a tier succeeds.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from config import Settings
from credential_store import CredentialStore, from_epoch
from directory import Directory
from domain_validator import is_academic_email, is_email_domain_allowed
from errors import (
    AlreadyUsed,
    ChallengeNotFound,
    DeliveryFailed,
    DomainMismatch,
    InvalidCode,
    InvalidInput,
    NoDomainsConfigured,
    OtpExpired,
    RateLimited,
    TooManyAttempts,
)
from logging_utils import log_operator_alert, log_safe
from method_registry import EMAIL, PORTAL, REGISTRATION, WHATSAPP, MethodInfo, MethodRegistry
from otp_manager import (
    OTP_EXPIRY_MINUTES,
    WHATSAPP_OTP_EXPIRY_MINUTES,
    expiry_from,
    generate_otp,
    is_expired,
    is_valid_code_format,
    utc_now,
)
from registration_lookup import LookupResult, RegistrationLookupClient
from ses_email import SesEmailSender, build_magic_link_email, build_otp_email
from token_service import (
    MAGIC_LINK_EXPIRY_MINUTES,
    IssuedToken,
    TokenKind,
    TokenService,
    TokenValidity,
    WidgetOwner,
)
from university_config import University, UniversityDirectory
from validation_utils import (
    normalize_phone_number,
    validate_email_address,
    validate_input_lengths,
    validate_phone_number,
    validate_registration_number,
)
from verification_status import (
    JourneyEvent,
    JourneyState,
    StatusView,
    advance,
    project_status,
)
from whatsapp_api import WhatsAppClient


@dataclass
class MethodEligibility:
    method: str
    is_available: bool
    priority: int
    eligible: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'method': self.method,
            'isAvailable': self.is_available,
            'priority': self.priority,
            'eligible': self.eligible,
        }
        if self.reason:
            body['reason'] = self.reason
        return body


@dataclass
class IssuanceResult:
    channel: str
    expires_at: datetime
    expires_in_minutes: int
    state: JourneyState

    def to_dict(self) -> Dict[str, Any]:
        return {
            'channel': self.channel,
            'expiresAt': self.expires_at.isoformat(),
            'expiresInMinutes': self.expires_in_minutes,
            'state': self.state.value,
        }


@dataclass
class CompletedVerification:
    student_id: str
    method: str
    status: StatusView
    state: JourneyState

    def to_dict(self) -> Dict[str, Any]:
        return {
            'verified': True,
            'studentId': self.student_id,
            'method': self.method,
            'state': self.state.value,
            'status': self.status.to_dict(),
        }


@dataclass
class RegistrationVerification:
    lookup: LookupResult
    state: JourneyState
    student_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body = self.lookup.to_dict()
        body['state'] = self.state.value
        if self.student_id:
            body['studentId'] = self.student_id
        return body


class VerificationOrchestrator:
    """Coordinates the four verification tiers."""

    def __init__(
        self,
        settings: Settings,
        universities: UniversityDirectory,
        registry: MethodRegistry,
        store: CredentialStore,
        directory: Directory,
        tokens: TokenService,
        lookup_client: RegistrationLookupClient,
        email_sender: SesEmailSender,
        whatsapp: WhatsAppClient
    ):
        self.settings = settings
        self.universities = universities
        self.registry = registry
        self.store = store
        self.directory = directory
        self.tokens = tokens
        self.lookup_client = lookup_client
        self.email_sender = email_sender
        self.whatsapp = whatsapp

    # ==========================================================================
    # Method selection
    # ==========================================================================

    def get_available_methods(self, university_id: str) -> List[MethodInfo]:
        return self.registry.get_available_methods(university_id)

    def _email_eligibility(self, university: University, email: Optional[str]):
        if not email:
            return False, 'no email supplied'
        try:
            check = is_email_domain_allowed(email, university)
        except NoDomainsConfigured as e:
            log_operator_alert('NOT_CONFIGURED', university.university_id, e.message)
            return False, 'no email domains configured for this university'
        if check.allowed:
            return True, None
        return False, f"email domain must be one of: {', '.join(check.accepted_domains)}"

    def evaluate_methods(
        self,
        university_id: str,
        email: Optional[str] = None,
        has_registration_number: bool = False,
        has_phone_number: bool = False
    ) -> List[MethodEligibility]:
        """
        Check every method's precondition against the supplied signals.

        Returns:
            One MethodEligibility per method, in priority order

        Raises:
            UniversityNotFound: Missing or inactive university
        """
        university = self.universities.get_active_university(university_id)

        results = []
        for info in self.registry.get_available_methods(university_id):
            if not info.is_available:
                eligible, reason = False, 'disabled for this university'
            elif info.method == PORTAL:
                eligible, reason = True, None
            elif info.method == EMAIL:
                eligible, reason = self._email_eligibility(university, email)
            elif info.method == REGISTRATION:
                eligible = bool(has_registration_number)
                reason = None if eligible else 'no registration number supplied'
            elif info.method == WHATSAPP:
                eligible = bool(has_phone_number)
                reason = None if eligible else 'no phone number supplied'
            else:
                eligible, reason = False, 'unsupported method'

            results.append(MethodEligibility(
                method=info.method,
                is_available=info.is_available,
                priority=info.priority,
                eligible=eligible,
                reason=reason,
            ))
        return results

    def determine_best_method(
        self,
        university_id: str,
        email: Optional[str] = None,
        has_registration_number: bool = False,
        has_phone_number: bool = False
    ) -> Optional[str]:
        """
        Return the first method that is both available and usable, or None.
        """
        for result in self.evaluate_methods(university_id, email, has_registration_number, has_phone_number):
            if result.eligible:
                return result.method
        return None

    @staticmethod
    def precheck_email(email: str) -> bool:
        """Lower-trust academic suffix hint for signup forms."""
        return validate_email_address(email) and is_academic_email(email)

    # ==========================================================================
    # Shared helpers
    # ==========================================================================

    def _claim_cooldown(self, target: str, channel: str, now: datetime) -> None:
        try:
            remaining = self.store.claim_cooldown(target, channel, now, self.settings.resend_cooldown_seconds)
        except Exception as e:
            print(f"ERROR: Cooldown check failed: {type(e).__name__}")
            # Fail closed
            raise RateLimited(self.settings.resend_cooldown_seconds) from e
        if remaining:
            raise RateLimited(remaining)

    def _release_cooldown(self, target: str, channel: str, claimed_at: datetime) -> None:
        try:
            self.store.release_cooldown(target, channel, claimed_at)
        except Exception as e:
            print(f"ERROR: Could not release cooldown after failed delivery: {type(e).__name__}")

    def _require_email(self, email: Optional[str]) -> str:
        is_valid, message = validate_input_lengths(email=email)
        if not is_valid:
            raise InvalidInput(message)
        if not validate_email_address(email or ''):
            raise InvalidInput('A valid email address is required')
        return email.strip().lower()

    def _require_domain_match(self, university: University, email: str) -> None:
        check = is_email_domain_allowed(email, university)
        if not check.allowed:
            raise DomainMismatch(check.accepted_domains)

    def _complete(self, student_id: str, method: str, now: datetime,
                  details: Optional[Dict[str, Any]] = None) -> CompletedVerification:
        expires_at = now + timedelta(days=self.settings.verification_validity_days)
        record = self.store.put_record(student_id, method, now, expires_at, details)
        return CompletedVerification(
            student_id=student_id,
            method=method,
            status=project_status(record, now),
            state=advance(JourneyState.PENDING, JourneyEvent.COMPLETED),
        )

    # ==========================================================================
    # Email tier (magic link)
    # ==========================================================================

    def request_magic_link(self, email: str, university_id: str) -> IssuanceResult:
        """
        Validate the email against the university and send a magic link.

        Raises:
            InvalidInput, DomainMismatch, NoDomainsConfigured, UniversityNotFound,
            RateLimited, DeliveryFailed
        """
        now = utc_now()
        email = self._require_email(email)
        university = self.universities.get_active_university(university_id)
        self._require_domain_match(university, email)
        self._claim_cooldown(email, 'magic_link', now)

        issued = self.tokens.issue_magic_link(email, university.university_id, now=now)
        link = f"{self.settings.frontend_url}/verify/email?token={issued.token}"
        subject, html, text = build_magic_link_email(link, university.name, MAGIC_LINK_EXPIRY_MINUTES)

        result = self.email_sender.send_email(email, subject, html, text)
        if not result.success:
            self._release_cooldown(email, 'magic_link', now)
            raise DeliveryFailed('Failed to send verification email. Please try again later.')

        return IssuanceResult(
            channel='email',
            expires_at=issued.expires_at,
            expires_in_minutes=MAGIC_LINK_EXPIRY_MINUTES,
            state=advance(JourneyState.UNVERIFIED, JourneyEvent.ISSUED),
        )

    def consume_magic_link(self, token: str) -> CompletedVerification:
        """
        Redeem a magic link and record an email verification.

        Raises:
            TokenNotFound, TokenExpired, TokenAlreadyUsed
        """
        now = utc_now()
        is_valid, message = validate_input_lengths(token=token)
        if not token or not is_valid:
            raise InvalidInput(message or 'Token is required')

        owner = self.tokens.consume_magic_link(token, now=now)
        student = self.directory.find_or_create_student(owner.university_id, email=owner.email)
        return self._complete(
            student['student_id'], EMAIL, now,
            {'university_id': owner.university_id}
        )

    # ==========================================================================
    # Registration tier
    # ==========================================================================

    def verify_registration_number(
        self,
        university_id: str,
        registration_number: str,
        student_name: Optional[str] = None,
        student_email: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> RegistrationVerification:
        """
        Look the registration number up at the university and record the
        verification if the university confirms it.

        Lookup failures come back inside the result, never as exceptions.

        Raises:
            InvalidInput: Malformed registration number, name or email
            UniversityNotFound: Unknown or inactive university
        """
        if not validate_registration_number(registration_number):
            raise InvalidInput('A valid registration number is required')
        is_valid, message = validate_input_lengths(email=student_email, name=student_name)
        if not is_valid:
            raise InvalidInput(message)
        if student_email and not validate_email_address(student_email):
            raise InvalidInput('A valid email address is required')

        self.universities.get_active_university(university_id)
        registration_number = registration_number.strip()
        pending = advance(JourneyState.UNVERIFIED, JourneyEvent.ISSUED)

        result = self.lookup_client.lookup(
            university_id, registration_number, student_name, student_email, timeout=timeout
        )
        if not result.verified:
            log_safe('Registration lookup did not verify', {
                'university_id': university_id,
                'failure': result.failure.value if result.failure else None,
            })
            return RegistrationVerification(lookup=result, state=advance(pending, JourneyEvent.FAILED))

        now = utc_now()
        data = result.student_data
        # The caller-supplied email is unproven and never identifies the student
        student = self.directory.find_or_create_student(
            university_id,
            email=data.email if data and data.email and validate_email_address(data.email) else None,
            registration_number=registration_number,
            name=data.name if data else student_name,
        )
        completed = self._complete(
            student['student_id'], REGISTRATION, now,
            {
                'university_id': university_id,
                'university_data': data.to_dict() if data else None,
            }
        )
        return RegistrationVerification(
            lookup=result,
            state=completed.state,
            student_id=completed.student_id,
        )

    # ==========================================================================
    # OTP tier (WhatsApp or email)
    # ==========================================================================

    def _otp_target(self, target: str):
        """Return (normalized_target, channel) for a phone number or email."""
        if target and '@' in target:
            return self._require_email(target), 'email'
        if not validate_phone_number(target or ''):
            raise InvalidInput('A valid phone number or email address is required')
        return normalize_phone_number(target), WHATSAPP

    def request_otp(self, target: str, university_id: Optional[str] = None) -> IssuanceResult:
        """
        Issue a one-time code to a phone number (WhatsApp) or email address.

        Raises:
            InvalidInput, DomainMismatch, UniversityNotFound, RateLimited, DeliveryFailed
        """
        now = utc_now()
        target, channel = self._otp_target(target)

        university = None
        if university_id:
            university = self.universities.get_active_university(university_id)
            if channel == 'email':
                self._require_domain_match(university, target)

        self._claim_cooldown(target, channel, now)

        minutes = WHATSAPP_OTP_EXPIRY_MINUTES if channel == WHATSAPP else OTP_EXPIRY_MINUTES
        code = generate_otp()
        expires_at = expiry_from(now, minutes)
        self.store.put_challenge(
            target, code, channel, now, expires_at,
            university_id=university.university_id if university else None
        )

        if channel == WHATSAPP:
            delivery = self.whatsapp.send_otp(target, code, minutes)
            delivered, error = delivery.success, delivery.error
        else:
            subject, html, text = build_otp_email(code, minutes)
            sent = self.email_sender.send_email(target, subject, html, text)
            delivered, error = sent.success, sent.error

        if not delivered:
            print(f"OTP delivery over {channel} failed: {error}")
            self._release_cooldown(target, channel, now)
            raise DeliveryFailed(f"Failed to send verification code via {channel}. Please try again later.")

        return IssuanceResult(
            channel=channel,
            expires_at=expires_at,
            expires_in_minutes=minutes,
            state=advance(JourneyState.UNVERIFIED, JourneyEvent.ISSUED),
        )

    def verify_otp(self, target: str, code: str) -> CompletedVerification:
        """
        Check a one-time code and record the verification on success.

        Raises:
            InvalidInput, ChallengeNotFound, OtpExpired, AlreadyUsed,
            InvalidCode, TooManyAttempts
        """
        now = utc_now()
        target, channel = self._otp_target(target)
        code = (code or '').strip()
        if not is_valid_code_format(code):
            raise InvalidInput('Please enter a valid 6-digit verification code')

        max_attempts = self.settings.max_otp_attempts
        consumed = self.store.consume_challenge(target, code, now, max_attempts)

        if consumed is None:
            challenge = self.store.get_challenge(target)
            if not challenge:
                raise ChallengeNotFound('No pending verification code found. Please request a new one.')
            if is_expired(from_epoch(challenge.get('expires_at')), now):
                raise OtpExpired('Verification code has expired. Please request a new one.')
            if challenge.get('consumed_at') is not None:
                raise AlreadyUsed('Verification code has already been used')
            if int(challenge.get('attempts', 0)) >= max_attempts:
                raise TooManyAttempts('Too many failed attempts. Please request a new code.')

            attempts = self.store.increment_attempts(target)
            remaining = max_attempts - attempts
            if remaining <= 0:
                raise TooManyAttempts('Incorrect code. Too many failed attempts. Please request a new code.')
            raise InvalidCode(remaining)

        university_id = consumed.get('university_id')
        if channel == WHATSAPP:
            student = self.directory.find_or_create_student(university_id, phone_number=target)
        else:
            student = self.directory.find_or_create_student(university_id, email=target)

        return self._complete(
            student['student_id'], WHATSAPP if channel == WHATSAPP else EMAIL, now,
            {'university_id': university_id}
        )

    # ==========================================================================
    # Widget tokens and status
    # ==========================================================================

    def issue_widget_token(self, student_id: str, vendor_id: str,
                           product_id: Optional[str] = None) -> IssuedToken:
        return self.tokens.issue_widget_token(student_id, vendor_id, product_id)

    def consume_widget_token(self, token: str, vendor_id: str) -> WidgetOwner:
        is_valid, message = validate_input_lengths(token=token)
        if not token or not is_valid:
            raise InvalidInput(message or 'Token is required')
        return self.tokens.consume_widget_token(token, vendor_id)

    def check_widget_token(self, token: str, vendor_id: str) -> TokenValidity:
        """Non-destructive validity check for a widget token."""
        return self.tokens.peek(token, TokenKind.WIDGET, vendor_id=vendor_id)

    def get_status(self, student_id: str) -> StatusView:
        """
        Current verification status for a student.

        "expired" is projected at read time from the latest record.
        """
        return project_status(self.store.get_latest_record(student_id), utc_now())
