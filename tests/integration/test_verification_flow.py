"""
Core verification flow integration tests.

These tests drive complete journeys through lambda_handler with the real
composition root:
- Email: methods → magic link → consume → status → widget token
- Registration number lookup against a mocked university API
- WhatsApp OTP with lockout
- Verification lapse and re-verification

All tests use moto for AWS mocking, responses for HTTP APIs and freezegun for
time control.
"""
import json
import re
import pytest
import sys
from pathlib import Path
from datetime import timedelta

import responses
from boto3.dynamodb.conditions import Attr
from freezegun import freeze_time

# Add lambda directory to path
lambda_dir = Path(__file__).parent.parent.parent / 'lambda'
sys.path.insert(0, str(lambda_dir))


LOOKUP_URL = 'https://api.unilag.test/students/verify'
WHATSAPP_SEND_URL = 'https://whatsapp.test/v1/send'


# ==============================================================================
# Integration Test Fixtures
# ==============================================================================

@pytest.fixture
def integration_env(seeded_tables, mock_ses_service, mock_cloudwatch, mock_ssm_parameters, mock_http, monkeypatch):
    """Environment-configured handler with a fresh orchestrator cache."""
    import lambda_function

    monkeypatch.setenv('WHATSAPP_API_URL', 'https://whatsapp.test/v1')
    monkeypatch.setenv('WHATSAPP_API_KEY_PARAMETER', '/student-verification/whatsapp-api-key')
    monkeypatch.setattr(lambda_function, '_orchestrator', None)

    mock_http.add(responses.POST, WHATSAPP_SEND_URL, json={'messageId': 'wamid.1'}, status=200)

    return {
        'tables': seeded_tables,
        'http': mock_http,
        'ses': mock_ses_service
    }


def invoke(body, context=None):
    import lambda_function
    response = lambda_function.lambda_handler(pytest.create_api_gateway_event(body), context)
    return response['statusCode'], json.loads(response['body'])


def latest_magic_link_token(tables, email):
    items = tables['tokens'].scan(
        FilterExpression=Attr('kind').eq('magic_link') & Attr('email').eq(email)
    )['Items']
    return max(items, key=lambda item: item['issued_at'])['token']


def last_whatsapp_code(http):
    message = json.loads(http.calls[-1].request.body)['message']
    return re.search(r'code is: (\d{6})', message).group(1)


# ==============================================================================
# Journeys
# ==============================================================================

@pytest.mark.integration
def test_email_journey_to_widget_token(integration_env, lambda_context):
    """Student verifies by magic link, then a vendor redeems a widget token once."""
    status, body = invoke({'action': 'GetAvailableMethods', 'universityId': 'unilag'}, lambda_context)
    assert status == 200
    assert len(body['methods']) == 4

    status, body = invoke({
        'action': 'DetermineBestMethod', 'universityId': 'unilag', 'email': 'ada@unilag.edu.ng'
    }, lambda_context)
    assert body['method'] == 'portal'

    status, body = invoke({
        'action': 'IssueMagicLink', 'email': 'ada@unilag.edu.ng', 'universityId': 'unilag'
    }, lambda_context)
    assert status == 200
    assert integration_env['ses'].get_send_quota()['SentLast24Hours'] == 1

    token = latest_magic_link_token(integration_env['tables'], 'ada@unilag.edu.ng')
    status, body = invoke({'action': 'ConsumeMagicLink', 'token': token}, lambda_context)
    assert status == 200
    assert body['studentId'] == 'student-1'

    status, body = invoke({'action': 'GetVerificationStatus', 'studentId': 'student-1'}, lambda_context)
    assert body['isVerified'] is True
    assert body['method'] == 'email'

    status, body = invoke({
        'action': 'IssueWidgetToken', 'studentId': 'student-1', 'vendorId': 'vendor-1', 'productId': 'product-1'
    }, lambda_context)
    assert status == 200
    widget_token = body['token']

    status, body = invoke({'action': 'CheckWidgetToken', 'token': widget_token, 'vendorId': 'vendor-1'})
    assert body == {'valid': True, 'studentId': 'student-1'}

    status, body = invoke({'action': 'ConsumeWidgetToken', 'token': widget_token, 'vendorId': 'vendor-1'})
    assert status == 200
    assert body['productId'] == 'product-1'

    status, body = invoke({'action': 'ConsumeWidgetToken', 'token': widget_token, 'vendorId': 'vendor-1'})
    assert status == 409
    assert body['error']['code'] == 'TOKEN_ALREADY_USED'


@pytest.mark.integration
def test_registration_journey(integration_env, lambda_context):
    """Registration-first university verifies a student through its own API."""
    methods = integration_env['tables']['methods']
    methods.put_item(Item={
        'university_id': 'unilag', 'method_type': 'registration', 'is_active': True, 'priority_order': 0
    })
    methods.put_item(Item={
        'university_id': 'unilag', 'method_type': 'email', 'is_active': True, 'priority_order': 1
    })
    integration_env['http'].add(responses.POST, LOOKUP_URL, json={
        'verified': True,
        'studentData': {'name': 'Bola Ade', 'department': 'Computer Science', 'level': '300'}
    }, status=200)

    status, body = invoke({
        'action': 'DetermineBestMethod', 'universityId': 'unilag', 'email': 'bola@unilag.edu.ng'
    })
    assert body['method'] == 'email'

    status, body = invoke({
        'action': 'DetermineBestMethod', 'universityId': 'unilag', 'hasRegistrationNumber': True
    })
    assert body['method'] == 'registration'

    status, body = invoke({
        'action': 'VerifyRegistrationNumber',
        'universityId': 'unilag',
        'registrationNumber': 'CSC/2021/117',
        'name': 'Bola Ade'
    }, lambda_context)
    assert status == 200
    assert body['verified'] is True
    assert body['state'] == 'verified'
    assert body['studentData']['level'] == '300'

    lookup_request = integration_env['http'].calls[-1].request
    assert lookup_request.headers['Authorization'] == 'Bearer test_unilag_key_67890'

    status, body = invoke({'action': 'GetVerificationStatus', 'studentId': body['studentId']})
    assert body['isVerified'] is True
    assert body['method'] == 'registration'


@pytest.mark.integration
def test_whatsapp_otp_lockout_then_fresh_code(integration_env, lambda_context):
    """Three wrong codes lock the challenge; a new code after the cooldown works."""
    with freeze_time('2025-09-01 08:00:00') as frozen:
        status, body = invoke({'action': 'RequestOTP', 'target': '+234 803 555 0101'}, lambda_context)
        assert status == 200
        code = last_whatsapp_code(integration_env['http'])
        wrong = '000000' if code != '000000' else '111111'

        statuses = [
            invoke({'action': 'VerifyOTP', 'target': '+2348035550101', 'code': wrong})[0] for _ in range(3)
        ]
        assert statuses == [401, 401, 403]

        status, body = invoke({'action': 'VerifyOTP', 'target': '+2348035550101', 'code': code})
        assert status == 403
        assert body['error']['code'] == 'TOO_MANY_ATTEMPTS'

        status, body = invoke({'action': 'RequestOTP', 'target': '+2348035550101'})
        assert status == 429

        frozen.tick(timedelta(seconds=61))

        status, body = invoke({'action': 'RequestOTP', 'target': '+2348035550101'})
        assert status == 200
        status, body = invoke({
            'action': 'VerifyOTP', 'target': '+2348035550101', 'code': last_whatsapp_code(integration_env['http'])
        })
        assert status == 200
        assert body['method'] == 'whatsapp'


@pytest.mark.integration
def test_verification_lapses_and_renews(integration_env, lambda_context):
    """Status turns expired at read time and a new verification restores it."""
    with freeze_time('2025-01-15 10:00:00') as frozen:
        invoke({'action': 'IssueMagicLink', 'email': 'ada@unilag.edu.ng', 'universityId': 'unilag'})
        token = latest_magic_link_token(integration_env['tables'], 'ada@unilag.edu.ng')
        status, _ = invoke({'action': 'ConsumeMagicLink', 'token': token})
        assert status == 200

        frozen.tick(timedelta(days=366))

        status, body = invoke({'action': 'GetVerificationStatus', 'studentId': 'student-1'})
        assert body['status'] == 'expired'
        assert body['isVerified'] is False

        status, body = invoke({'action': 'IssueWidgetToken', 'studentId': 'student-1', 'vendorId': 'vendor-1'})
        assert status == 403
        assert body['error']['code'] == 'STUDENT_NOT_VERIFIED'

        invoke({'action': 'IssueMagicLink', 'email': 'ada@unilag.edu.ng', 'universityId': 'unilag'})
        token = latest_magic_link_token(integration_env['tables'], 'ada@unilag.edu.ng')
        invoke({'action': 'ConsumeMagicLink', 'token': token})

        status, body = invoke({'action': 'GetVerificationStatus', 'studentId': 'student-1'})
        assert body['status'] == 'verified'


@pytest.mark.integration
def test_expired_magic_link_rejected(integration_env):
    with freeze_time('2025-03-10 09:00:00') as frozen:
        invoke({'action': 'IssueMagicLink', 'email': 'ada@unilag.edu.ng', 'universityId': 'unilag'})
        token = latest_magic_link_token(integration_env['tables'], 'ada@unilag.edu.ng')

        frozen.tick(timedelta(minutes=16))

        status, body = invoke({'action': 'ConsumeMagicLink', 'token': token})
        assert status == 410
        assert body['error']['code'] == 'TOKEN_EXPIRED'

        status, body = invoke({'action': 'GetVerificationStatus', 'studentId': 'student-1'})
        assert body['status'] == 'unverified'
