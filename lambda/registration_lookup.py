"""
University registration number lookup.

Calls a university's own student database API. Each call is a single attempt:
remote systems may count lookups, so retrying here is unsafe. Every failure is
returned as a classified `LookupResult`; network exceptions never escape.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import requests

from errors import UniversityNotFound
from logging_utils import log_operator_alert, log_upstream_error, sanitize_string
from ssm_utils import ParameterStore
from university_config import LookupEndpoint, UniversityDirectory


DEFAULT_TIMEOUT_SECONDS = 10.0
MAX_UPSTREAM_MESSAGE_LENGTH = 200


class LookupFailure(str, Enum):
    UNIVERSITY_NOT_FOUND = 'UNIVERSITY_NOT_FOUND'
    NOT_CONFIGURED = 'NOT_CONFIGURED'
    UPSTREAM_TIMEOUT = 'UPSTREAM_TIMEOUT'
    UPSTREAM_UNAVAILABLE = 'UPSTREAM_UNAVAILABLE'
    UPSTREAM_AUTH_FAILED = 'UPSTREAM_AUTH_FAILED'
    STUDENT_NOT_FOUND = 'STUDENT_NOT_FOUND'
    NOT_VERIFIED = 'NOT_VERIFIED'
    INVALID_UPSTREAM_RESPONSE = 'INVALID_UPSTREAM_RESPONSE'
    LOOKUP_FAILED = 'LOOKUP_FAILED'


FAILURE_MESSAGES = {
    LookupFailure.UNIVERSITY_NOT_FOUND: 'University not found or inactive',
    LookupFailure.NOT_CONFIGURED: 'University database API not configured',
    LookupFailure.UPSTREAM_TIMEOUT: 'University database timeout. Please try again.',
    LookupFailure.UPSTREAM_UNAVAILABLE: 'University database is unavailable. Please try again later.',
    LookupFailure.UPSTREAM_AUTH_FAILED: 'University API authentication failed',
    LookupFailure.STUDENT_NOT_FOUND: 'Student not found in university database',
    LookupFailure.NOT_VERIFIED: 'University database did not verify this registration number',
    LookupFailure.INVALID_UPSTREAM_RESPONSE: 'Invalid response from university database',
    LookupFailure.LOOKUP_FAILED: 'Failed to verify registration number',
}

# Misconfigured universities, not student mistakes
OPERATOR_FAILURES = {
    LookupFailure.NOT_CONFIGURED,
    LookupFailure.INVALID_UPSTREAM_RESPONSE,
    LookupFailure.UPSTREAM_AUTH_FAILED,
}


@dataclass
class StudentData:
    name: str
    registration_number: str
    email: Optional[str] = None
    department: Optional[str] = None
    level: Optional[str] = None
    academic_year: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        body = {'name': self.name, 'registrationNumber': self.registration_number}
        optional = {
            'email': self.email,
            'department': self.department,
            'level': self.level,
            'academicYear': self.academic_year,
        }
        body.update({key: value for key, value in optional.items() if value})
        return body


@dataclass
class LookupResult:
    verified: bool
    student_data: Optional[StudentData] = None
    failure: Optional[LookupFailure] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, failure: LookupFailure, message: Optional[str] = None) -> "LookupResult":
        return cls(verified=False, failure=failure, error=message or FAILURE_MESSAGES[failure])

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {'verified': self.verified}
        if self.student_data:
            body['studentData'] = self.student_data.to_dict()
        if self.failure:
            body['failure'] = self.failure.value
            body['error'] = self.error
        return body


# ==============================================================================
# Response decoding
# ==============================================================================

@dataclass
class ExplicitVerdict:
    """Upstream answered with a boolean `verified` field."""
    verified: bool
    student_data: StudentData


@dataclass
class ImplicitVerdict:
    """No `verified` field, but a student payload signals success."""
    student_data: StudentData


@dataclass
class InvalidShape:
    reason: str = 'unrecognised response shape'


DecodedResponse = Union[ExplicitVerdict, ImplicitVerdict, InvalidShape]


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _student_data(payload: Dict[str, Any], registration_number: str,
                  student_name: Optional[str]) -> StudentData:
    nested = payload.get('studentData') if isinstance(payload.get('studentData'), dict) else {}

    def pick(key: str) -> Optional[str]:
        return _text(nested.get(key)) or _text(payload.get(key))

    return StudentData(
        name=pick('name') or student_name or '',
        registration_number=registration_number,
        email=pick('email'),
        department=pick('department'),
        level=pick('level'),
        academic_year=pick('academicYear'),
    )


def decode_lookup_response(payload: Any, registration_number: str,
                           student_name: Optional[str] = None) -> DecodedResponse:
    """
    Classify an upstream response body.

    Args:
        payload: Parsed JSON body
        registration_number: Number that was looked up
        student_name: Name supplied by the student, used when upstream omits it

    The email in the result is only ever the one the university returned.

    Returns:
        ExplicitVerdict, ImplicitVerdict or InvalidShape
    """
    if not isinstance(payload, dict):
        return InvalidShape('response body is not an object')

    if 'verified' in payload:
        if not isinstance(payload['verified'], bool):
            return InvalidShape('verified field is not a boolean')
        return ExplicitVerdict(
            verified=payload['verified'],
            student_data=_student_data(payload, registration_number, student_name),
        )

    has_name = _text(payload.get('name')) is not None
    has_student_data = isinstance(payload.get('studentData'), dict) and bool(payload['studentData'])
    if has_name or has_student_data:
        return ImplicitVerdict(
            student_data=_student_data(payload, registration_number, student_name),
        )

    return InvalidShape()


def _upstream_message(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    message = _text(body.get('message')) or _text(body.get('error'))
    if not message:
        return None
    return sanitize_string(message)[:MAX_UPSTREAM_MESSAGE_LENGTH]


# ==============================================================================
# Client
# ==============================================================================

class RegistrationLookupClient:
    """Single-attempt client for university registration number APIs."""

    def __init__(self, universities: UniversityDirectory, session: requests.Session,
                 parameters: Optional[ParameterStore] = None,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.universities = universities
        self.session = session
        self.parameters = parameters
        self.timeout = timeout

    def _headers(self, endpoint: LookupEndpoint) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        api_key = endpoint.api_config.get('api_key')
        parameter = endpoint.api_config.get('api_key_parameter')
        if not api_key and parameter and self.parameters:
            api_key = self.parameters.get(parameter)
        if api_key:
            headers['Authorization'] = f"Bearer {api_key}"
            headers['X-API-Key'] = api_key
        return headers

    def _fail(self, failure: LookupFailure, university_id: str,
              message: Optional[str] = None, detail: Optional[str] = None) -> LookupResult:
        if failure in OPERATOR_FAILURES:
            log_operator_alert(failure.value, university_id, detail or FAILURE_MESSAGES[failure])
        return LookupResult.failed(failure, message)

    def lookup(self, university_id: str, registration_number: str,
               student_name: Optional[str] = None, student_email: Optional[str] = None,
               timeout: Optional[float] = None) -> LookupResult:
        """
        Verify a registration number against the university's database.

        Args:
            university_id: University to ask
            registration_number: Number supplied by the student
            student_name: Optional name to send along
            student_email: Optional email to send along
            timeout: Caller deadline in seconds; a shorter deadline that fires
                is reported exactly like the client's own timeout

        Returns:
            LookupResult; `verified` is True only on an unambiguous success
        """
        try:
            university = self.universities.get_active_university(university_id)
        except UniversityNotFound:
            return LookupResult.failed(LookupFailure.UNIVERSITY_NOT_FOUND)

        endpoint = self.universities.get_registration_endpoint(university)
        if endpoint is None:
            return self._fail(
                LookupFailure.NOT_CONFIGURED, university_id,
                detail=f"No registration lookup endpoint for {university.name}"
            )

        body = {'registrationNumber': registration_number}
        if student_name:
            body['name'] = student_name
        if student_email:
            body['email'] = student_email

        effective_timeout = self.timeout if timeout is None else min(self.timeout, timeout)

        try:
            response = self.session.post(
                endpoint.url,
                json=body,
                headers=self._headers(endpoint),
                timeout=effective_timeout
            )
        except requests.exceptions.Timeout:
            log_upstream_error('registration_lookup', None, university_id)
            return LookupResult.failed(LookupFailure.UPSTREAM_TIMEOUT)
        except requests.exceptions.ConnectionError:
            log_upstream_error('registration_lookup', None, university_id)
            return LookupResult.failed(LookupFailure.UPSTREAM_UNAVAILABLE)
        except requests.exceptions.RequestException as e:
            print(f"Registration lookup request error: {type(e).__name__}")
            return LookupResult.failed(LookupFailure.LOOKUP_FAILED)

        if response.status_code >= 400:
            log_upstream_error('registration_lookup', response.status_code, university_id)
            if response.status_code == 404:
                return LookupResult.failed(LookupFailure.STUDENT_NOT_FOUND)
            if response.status_code in (401, 403):
                return self._fail(
                    LookupFailure.UPSTREAM_AUTH_FAILED, university_id,
                    detail=f"Lookup endpoint rejected credentials with HTTP {response.status_code}"
                )
            return LookupResult.failed(LookupFailure.LOOKUP_FAILED, _upstream_message(response))

        try:
            payload = response.json()
        except ValueError:
            payload = None

        decoded = decode_lookup_response(payload, registration_number, student_name)

        if isinstance(decoded, ExplicitVerdict):
            if decoded.verified:
                return LookupResult(verified=True, student_data=decoded.student_data)
            return LookupResult.failed(LookupFailure.NOT_VERIFIED)

        if isinstance(decoded, ImplicitVerdict):
            return LookupResult(verified=True, student_data=decoded.student_data)

        return self._fail(
            LookupFailure.INVALID_UPSTREAM_RESPONSE, university_id,
            detail=f"Registration lookup returned {decoded.reason}"
        )
