"""
AWS Lambda handler for the student verification API.
Main entry point for all verification requests.
"""
import json
import traceback
from typing import Optional

import boto3
import requests

from config import Settings
from credential_store import CredentialStore
from directory import Directory
from errors import InvalidInput, VerificationError
from handlers import (
    error_response,
    handle_check_widget_token,
    handle_consume_magic_link,
    handle_consume_widget_token,
    handle_determine_best_method,
    handle_get_available_methods,
    handle_get_verification_status,
    handle_issue_magic_link,
    handle_issue_widget_token,
    handle_precheck_email,
    handle_request_otp,
    handle_verify_otp,
    handle_verify_registration_number,
    internal_error_response,
    json_response,
)
from logging_utils import log_safe
from method_registry import MethodRegistry
from orchestrator import VerificationOrchestrator
from registration_lookup import RegistrationLookupClient
from ses_email import SesEmailSender
from ssm_utils import ParameterStore
from token_service import TokenService
from university_config import UniversityDirectory
from whatsapp_api import WhatsAppClient


ACTIONS = {
    'GetAvailableMethods': handle_get_available_methods,
    'DetermineBestMethod': handle_determine_best_method,
    'PrecheckEmail': handle_precheck_email,
    'IssueMagicLink': handle_issue_magic_link,
    'ConsumeMagicLink': handle_consume_magic_link,
    'VerifyRegistrationNumber': handle_verify_registration_number,
    'RequestOTP': handle_request_otp,
    'VerifyOTP': handle_verify_otp,
    'IssueWidgetToken': handle_issue_widget_token,
    'ConsumeWidgetToken': handle_consume_widget_token,
    'CheckWidgetToken': handle_check_widget_token,
    'GetVerificationStatus': handle_get_verification_status,
}

# Built once per warm container
_orchestrator: Optional[VerificationOrchestrator] = None


def build_orchestrator(settings: Settings) -> VerificationOrchestrator:
    """Wire every collaborator from settings."""
    dynamodb = boto3.resource('dynamodb', region_name=settings.aws_region)
    ses_client = boto3.client('ses', region_name=settings.aws_region)
    cloudwatch = boto3.client('cloudwatch', region_name=settings.aws_region)
    parameters = ParameterStore(boto3.client('ssm', region_name=settings.aws_region))
    session = requests.Session()

    universities = UniversityDirectory(
        dynamodb.Table(settings.universities_table),
        dynamodb.Table(settings.methods_table)
    )
    store = CredentialStore(
        dynamodb.Table(settings.tokens_table),
        dynamodb.Table(settings.otp_table),
        dynamodb.Table(settings.records_table)
    )
    directory = Directory(
        dynamodb.Table(settings.students_table),
        dynamodb.Table(settings.vendors_table),
        dynamodb.Table(settings.products_table)
    )

    whatsapp_key = None
    if settings.whatsapp_api_key_parameter:
        whatsapp_key = parameters.get(settings.whatsapp_api_key_parameter) or None

    return VerificationOrchestrator(
        settings=settings,
        universities=universities,
        registry=MethodRegistry(universities),
        store=store,
        directory=directory,
        tokens=TokenService(store, directory),
        lookup_client=RegistrationLookupClient(
            universities, session, parameters, timeout=settings.lookup_timeout_seconds
        ),
        email_sender=SesEmailSender(ses_client, settings.from_email, cloudwatch),
        whatsapp=WhatsAppClient(session, settings.whatsapp_api_url, whatsapp_key)
    )


def get_orchestrator() -> VerificationOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator(Settings.from_env())
    return _orchestrator


def handle_request(event: dict, orchestrator: VerificationOrchestrator) -> dict:
    """
    Parse, route and answer one API Gateway request.

    Args:
        event: API Gateway proxy event
        orchestrator: Fully wired orchestrator

    Returns:
        API Gateway response
    """
    method = event.get('httpMethod') or event.get('requestContext', {}).get('http', {}).get('method')
    if method and method.upper() != 'POST':
        return json_response(405, {'error': {'code': 'METHOD_NOT_ALLOWED', 'message': 'Use POST'}})

    body_str = event.get('body') or '{}'

    try:
        body = json.loads(body_str)
    except json.JSONDecodeError as e:
        print(f"ERROR: Invalid JSON: {e.msg}")
        return error_response(InvalidInput('Invalid JSON'))

    if not isinstance(body, dict):
        return error_response(InvalidInput('Request body must be a JSON object'))

    action = body.get('action')
    if not isinstance(action, str):
        return error_response(InvalidInput("'action' is required and must be a string", {'actions': sorted(ACTIONS)}))

    handler = ACTIONS.get(action)
    if handler is None:
        print(f"WARNING: Unknown action: {action}")
        return error_response(InvalidInput(f"Unknown action: {action}", {'actions': sorted(ACTIONS)}))

    log_safe(f"Action: {action}", {key: value for key, value in body.items() if key != 'action'})

    try:
        return handler(orchestrator, body)
    except VerificationError as e:
        print(f"Action {action} failed with {e.code}")
        return error_response(e)
    except Exception as e:
        print(f"ERROR: Exception handling {action}: {type(e).__name__}")
        traceback.print_exc()
        return internal_error_response()


def lambda_handler(event, context):
    """
    Main Lambda handler for verification requests.

    Requests are POSTs with a JSON body `{"action": <operation>, ...}`.

    Args:
        event: API Gateway event
        context: Lambda context

    Returns:
        API Gateway response
    """
    try:
        orchestrator = get_orchestrator()
    except Exception as e:
        print(f"ERROR: Failed to initialise services: {type(e).__name__}")
        traceback.print_exc()
        return internal_error_response()

    return handle_request(event, orchestrator)
