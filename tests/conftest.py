"""
Central pytest configuration and fixtures for student verification tests.

This module provides reusable fixtures for:
- AWS service mocking (DynamoDB, SES, SSM, CloudWatch)
- University API and WhatsApp API mocking
- Environment variable setup
- Test data factories
"""
import pytest
import sys
import os
import json
from pathlib import Path
from decimal import Decimal

# Add lambda directory to path for imports
lambda_dir = Path(__file__).parent.parent / 'lambda'
sys.path.insert(0, str(lambda_dir))

# AWS mocking
from moto import mock_aws
import boto3
import requests
import responses


UNILAG_LOOKUP_URL = 'https://api.unilag.test/students/verify'
WHATSAPP_API_URL = 'https://whatsapp.test/v1'
FROM_EMAIL = 'noreply@verify.test'


# ==============================================================================
# Environment Setup
# ==============================================================================

@pytest.fixture(scope='session', autouse=True)
def set_test_environment():
    """Set up test environment variables for all tests."""
    os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'

    os.environ['FRONTEND_URL'] = 'https://verify.test'
    os.environ['FROM_EMAIL'] = FROM_EMAIL

    yield


# ==============================================================================
# AWS Lambda Fixtures
# ==============================================================================

@pytest.fixture
def lambda_context():
    """Mock AWS Lambda context object."""
    class LambdaContext:
        def __init__(self):
            self.function_name = "student-verification"
            self.function_version = "$LATEST"
            self.invoked_function_arn = (
                "arn:aws:lambda:us-east-1:123456789012:function:student-verification"
            )
            self.memory_limit_in_mb = 256
            self.aws_request_id = "test-request-id-12345"
            self._remaining_time_ms = 30000

        def get_remaining_time_in_millis(self):
            return self._remaining_time_ms

    return LambdaContext()


# ==============================================================================
# AWS Fixtures
# ==============================================================================

@pytest.fixture
def aws_mock():
    """Single moto context shared by every AWS fixture in a test."""
    with mock_aws():
        yield


def _create_table(dynamodb, name, keys, attributes, indexes=None):
    kwargs = {
        'TableName': name,
        'KeySchema': [
            {'AttributeName': attribute, 'KeyType': key_type} for attribute, key_type in keys
        ],
        'AttributeDefinitions': [
            {'AttributeName': attribute, 'AttributeType': attr_type} for attribute, attr_type in attributes
        ],
        'BillingMode': 'PAY_PER_REQUEST'
    }
    if indexes:
        kwargs['GlobalSecondaryIndexes'] = [
            {
                'IndexName': index_name,
                'KeySchema': [{'AttributeName': attribute, 'KeyType': 'HASH'}],
                'Projection': {'ProjectionType': 'ALL'}
            }
            for index_name, attribute in indexes
        ]
    return dynamodb.create_table(**kwargs)


@pytest.fixture
def mock_dynamodb_tables(aws_mock):
    """Create mock DynamoDB tables with the production schema."""
    from config import Settings

    settings = Settings()
    dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

    tables = {
        'universities': _create_table(
            dynamodb, settings.universities_table,
            [('university_id', 'HASH')], [('university_id', 'S')]
        ),
        'methods': _create_table(
            dynamodb, settings.methods_table,
            [('university_id', 'HASH'), ('method_type', 'RANGE')],
            [('university_id', 'S'), ('method_type', 'S')]
        ),
        'tokens': _create_table(
            dynamodb, settings.tokens_table,
            [('token', 'HASH')], [('token', 'S')]
        ),
        'otp': _create_table(
            dynamodb, settings.otp_table,
            [('target', 'HASH'), ('record_type', 'RANGE')],
            [('target', 'S'), ('record_type', 'S')]
        ),
        'records': _create_table(
            dynamodb, settings.records_table,
            [('student_id', 'HASH'), ('verified_at', 'RANGE')],
            [('student_id', 'S'), ('verified_at', 'N')]
        ),
        'students': _create_table(
            dynamodb, settings.students_table,
            [('student_id', 'HASH')],
            [
                ('student_id', 'S'),
                ('email', 'S'),
                ('phone_number', 'S'),
                ('university_registration', 'S')
            ],
            indexes=[
                ('email-index', 'email'),
                ('phone_number-index', 'phone_number'),
                ('university_registration-index', 'university_registration')
            ]
        ),
        'vendors': _create_table(
            dynamodb, settings.vendors_table,
            [('vendor_id', 'HASH')], [('vendor_id', 'S')]
        ),
        'products': _create_table(
            dynamodb, settings.products_table,
            [('product_id', 'HASH')], [('product_id', 'S')]
        ),
    }
    tables['dynamodb'] = dynamodb
    yield tables


@pytest.fixture
def mock_ses_service(aws_mock):
    """Mock AWS SES with a verified sender."""
    ses = boto3.client('ses', region_name='us-east-1')
    ses.verify_email_identity(EmailAddress=FROM_EMAIL)
    yield ses


@pytest.fixture
def mock_cloudwatch(aws_mock):
    yield boto3.client('cloudwatch', region_name='us-east-1')


@pytest.fixture
def mock_ssm_parameters(aws_mock):
    """Mock AWS SSM Parameter Store with the API keys."""
    ssm = boto3.client('ssm', region_name='us-east-1')
    ssm.put_parameter(
        Name='/student-verification/whatsapp-api-key',
        Value='test_whatsapp_key_12345',
        Type='SecureString'
    )
    ssm.put_parameter(
        Name='/student-verification/unilag-api-key',
        Value='test_unilag_key_67890',
        Type='SecureString'
    )
    yield ssm


# ==============================================================================
# HTTP API Fixtures
# ==============================================================================

@pytest.fixture
def mock_http():
    """Mock university and WhatsApp HTTP APIs with responses library."""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def mock_whatsapp_success(mock_http):
    mock_http.add(
        responses.POST,
        f'{WHATSAPP_API_URL}/send',
        json={'messageId': 'wamid.test-001'},
        status=200
    )
    return mock_http


# ==============================================================================
# Test Data Factories
# ==============================================================================

@pytest.fixture
def sample_university_item():
    """University with one primary domain and no extra domains."""
    return {
        'university_id': 'unilag',
        'name': 'University of Lagos',
        'domain': 'unilag.edu.ng',
        'email_domains': [],
        'is_active': True,
        'database_api_url': UNILAG_LOOKUP_URL,
        'api_config': {'api_key_parameter': '/student-verification/unilag-api-key'}
    }


@pytest.fixture
def seeded_tables(mock_dynamodb_tables, sample_university_item):
    """Tables with a university, a vendor, a product and an active student."""
    mock_dynamodb_tables['universities'].put_item(Item=sample_university_item)
    mock_dynamodb_tables['vendors'].put_item(Item={
        'vendor_id': 'vendor-1',
        'name': 'Campus Books'
    })
    mock_dynamodb_tables['vendors'].put_item(Item={
        'vendor_id': 'vendor-2',
        'name': 'Student Laptops'
    })
    mock_dynamodb_tables['products'].put_item(Item={
        'product_id': 'product-1',
        'vendor_id': 'vendor-1',
        'name': 'Textbook discount'
    })
    mock_dynamodb_tables['students'].put_item(Item={
        'student_id': 'student-1',
        'university_id': 'unilag',
        'email': 'ada@unilag.edu.ng',
        'name': 'Ada Obi',
        'status': 'active'
    })
    return mock_dynamodb_tables


@pytest.fixture
def test_settings():
    from config import Settings

    return Settings(
        frontend_url='https://verify.test',
        from_email=FROM_EMAIL,
        whatsapp_api_url=WHATSAPP_API_URL,
        whatsapp_api_key_parameter='/student-verification/whatsapp-api-key'
    )


@pytest.fixture
def services(seeded_tables, mock_ses_service, mock_cloudwatch, mock_ssm_parameters, mock_http, test_settings):
    """Fully wired services on top of moto tables and mocked HTTP."""
    from credential_store import CredentialStore
    from directory import Directory
    from method_registry import MethodRegistry
    from orchestrator import VerificationOrchestrator
    from registration_lookup import RegistrationLookupClient
    from ses_email import SesEmailSender
    from ssm_utils import ParameterStore
    from token_service import TokenService
    from university_config import UniversityDirectory
    from whatsapp_api import WhatsAppClient

    session = requests.Session()
    parameters = ParameterStore(mock_ssm_parameters)
    universities = UniversityDirectory(seeded_tables['universities'], seeded_tables['methods'])
    store = CredentialStore(seeded_tables['tokens'], seeded_tables['otp'], seeded_tables['records'])
    directory = Directory(seeded_tables['students'], seeded_tables['vendors'], seeded_tables['products'])
    tokens = TokenService(store, directory)
    email_sender = SesEmailSender(mock_ses_service, FROM_EMAIL, mock_cloudwatch)
    whatsapp = WhatsAppClient(
        session, WHATSAPP_API_URL, parameters.get(test_settings.whatsapp_api_key_parameter)
    )

    orchestrator = VerificationOrchestrator(
        settings=test_settings,
        universities=universities,
        registry=MethodRegistry(universities),
        store=store,
        directory=directory,
        tokens=tokens,
        lookup_client=RegistrationLookupClient(universities, session, parameters),
        email_sender=email_sender,
        whatsapp=whatsapp
    )

    return {
        'tables': seeded_tables,
        'universities': universities,
        'store': store,
        'directory': directory,
        'tokens': tokens,
        'email_sender': email_sender,
        'whatsapp': whatsapp,
        'orchestrator': orchestrator,
        'http': mock_http,
        'ses': mock_ses_service,
    }


# ==============================================================================
# Helper Functions
# ==============================================================================

def create_api_gateway_event(body_dict, http_method='POST'):
    """Helper to create API Gateway Lambda event."""
    return {
        'httpMethod': http_method,
        'headers': {'content-type': 'application/json'},
        'body': json.dumps(body_dict)
    }


def assert_response_status(response, expected_status):
    """Assert response has expected HTTP status code."""
    assert response.get('statusCode') == expected_status, \
        f"Expected status {expected_status}, got {response.get('statusCode')}: {response.get('body')}"


def response_body(response):
    return json.loads(response['body'])


def put_verification_record(records_table, student_id, verified_at, expires_at, method='email'):
    """Write a record the way CredentialStore does."""
    records_table.put_item(Item={
        'student_id': student_id,
        'verified_at': Decimal(str(verified_at.timestamp())),
        'method': method,
        'status': 'verified',
        'expires_at': Decimal(str(expires_at.timestamp()))
    })


# Make helper functions available to tests
pytest.create_api_gateway_event = create_api_gateway_event
pytest.assert_response_status = assert_response_status
pytest.response_body = response_body
pytest.put_verification_record = put_verification_record
