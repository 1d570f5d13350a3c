"""
Action handlers for the verification API.
Each handler takes the orchestrator and the parsed request body and returns a
Lambda proxy response.
"""
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from errors import InvalidInput, VerificationError
from orchestrator import VerificationOrchestrator


def _default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def json_response(status_code: int, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> dict:
    """Helper to build a Lambda proxy response with a JSON body."""
    response_headers = {'Content-Type': 'application/json'}
    if headers:
        response_headers.update(headers)
    return {
        'statusCode': status_code,
        'headers': response_headers,
        'body': json.dumps(payload, default=_default)
    }


def error_response(error: VerificationError) -> dict:
    """Helper for typed failures."""
    headers = None
    retry_after = error.details.get('retry_after_seconds')
    if retry_after:
        headers = {'Retry-After': str(retry_after)}
    return json_response(error.status_code, {'error': error.to_dict()}, headers)


def internal_error_response() -> dict:
    """Generic 500; never carries exception text."""
    return json_response(500, {'error': {'code': 'INTERNAL_ERROR', 'message': 'An internal error occurred'}})


def _require(body: Dict[str, Any], field: str) -> str:
    value = body.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidInput(f"'{field}' is required", {'field': field})
    if not isinstance(value, str):
        raise InvalidInput(f"'{field}' must be a string", {'field': field})
    return value


def _optional(body: Dict[str, Any], field: str) -> Optional[str]:
    value = body.get(field)
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"'{field}' must be a string", {'field': field})
    return value


def _flag(body: Dict[str, Any], field: str) -> bool:
    value = body.get(field)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidInput(f"'{field}' must be true or false", {'field': field})
    return value


# ==============================================================================
# Method selection
# ==============================================================================

def handle_get_available_methods(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    university_id = _require(body, 'universityId')
    methods = orchestrator.get_available_methods(university_id)
    return json_response(200, {'methods': [method.to_dict() for method in methods]})


def handle_determine_best_method(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    """
    Pick the best method for the supplied signals.

    The response lists every method's eligibility so a client can explain
    why a higher-priority method was skipped.
    """
    university_id = _require(body, 'universityId')
    email = _optional(body, 'email')
    has_registration_number = _flag(body, 'hasRegistrationNumber')
    has_phone_number = _flag(body, 'hasPhoneNumber')

    evaluated = orchestrator.evaluate_methods(
        university_id, email, has_registration_number, has_phone_number
    )
    best = next((result.method for result in evaluated if result.eligible), None)
    return json_response(200, {
        'method': best,
        'methods': [result.to_dict() for result in evaluated]
    })


def handle_precheck_email(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    email = _require(body, 'email')
    return json_response(200, {'isAcademic': orchestrator.precheck_email(email)})


# ==============================================================================
# Email tier
# ==============================================================================

def handle_issue_magic_link(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    result = orchestrator.request_magic_link(_require(body, 'email'), _require(body, 'universityId'))
    payload = result.to_dict()
    payload['message'] = 'Verification email sent. Please check your inbox.'
    return json_response(200, payload)


def handle_consume_magic_link(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    completed = orchestrator.consume_magic_link(_require(body, 'token'))
    return json_response(200, completed.to_dict())


# ==============================================================================
# Registration tier
# ==============================================================================

def handle_verify_registration_number(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    """
    Check a registration number with the university.

    A lookup that does not verify is still a 200 with `verified: false`;
    the failure kind is in the body.
    """
    timeout = body.get('timeoutSeconds')
    if timeout is not None:
        try:
            timeout = float(timeout)
        except (TypeError, ValueError):
            raise InvalidInput("'timeoutSeconds' must be a number", {'field': 'timeoutSeconds'}) from None
        if timeout <= 0:
            raise InvalidInput("'timeoutSeconds' must be positive", {'field': 'timeoutSeconds'})

    result = orchestrator.verify_registration_number(
        _require(body, 'universityId'),
        _require(body, 'registrationNumber'),
        student_name=_optional(body, 'name'),
        student_email=_optional(body, 'email'),
        timeout=timeout
    )
    return json_response(200, result.to_dict())


# ==============================================================================
# OTP tier
# ==============================================================================

def handle_request_otp(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    result = orchestrator.request_otp(_require(body, 'target'), _optional(body, 'universityId'))
    payload = result.to_dict()
    payload['message'] = 'Verification code sent.'
    return json_response(200, payload)


def handle_verify_otp(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    completed = orchestrator.verify_otp(_require(body, 'target'), _require(body, 'code'))
    return json_response(200, completed.to_dict())


# ==============================================================================
# Widget tokens and status
# ==============================================================================

def handle_issue_widget_token(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    issued = orchestrator.issue_widget_token(
        _require(body, 'studentId'),
        _require(body, 'vendorId'),
        _optional(body, 'productId')
    )
    return json_response(200, {'token': issued.token, 'expiresAt': issued.expires_at.isoformat()})


def handle_consume_widget_token(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    owner = orchestrator.consume_widget_token(_require(body, 'token'), _require(body, 'vendorId'))
    return json_response(200, {
        'valid': True,
        'studentId': owner.student_id,
        'vendorId': owner.vendor_id,
        'productId': owner.product_id
    })


def handle_check_widget_token(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    validity = orchestrator.check_widget_token(_require(body, 'token'), _require(body, 'vendorId'))
    if not validity.valid:
        return json_response(200, {'valid': False, 'error': validity.error.to_dict()})
    return json_response(200, {'valid': True, 'studentId': validity.owner.student_id})


def handle_get_verification_status(orchestrator: VerificationOrchestrator, body: dict) -> dict:
    status = orchestrator.get_status(_require(body, 'studentId'))
    return json_response(200, status.to_dict())
