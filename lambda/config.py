"""
Service configuration loaded from environment variables.
Secrets are referenced by SSM parameter name, never stored here.
"""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings for the verification service.

    Attributes:
        aws_region: Region for DynamoDB, SES, SSM and CloudWatch clients
        universities_table: University rows (domains, lookup endpoint)
        methods_table: Per-university verification method configuration
        tokens_table: Magic-link and widget tokens
        otp_table: OTP challenges keyed by target
        records_table: Verification records keyed by student
        students_table: Student directory
        vendors_table: Vendor directory
        products_table: Product directory
        frontend_url: Base URL used to compose magic links
        from_email: Sender address for SES
        whatsapp_api_url: WhatsApp delivery API base URL
        whatsapp_api_key_parameter: SSM parameter holding the WhatsApp API key
        lookup_timeout_seconds: Registration lookup timeout
        verification_validity_days: How long a completed verification stays valid
        resend_cooldown_seconds: Minimum gap between issuances for one target
        max_otp_attempts: Wrong codes allowed before a challenge goes inert
    """

    aws_region: str = 'us-east-1'

    universities_table: str = 'student-verification-universities'
    methods_table: str = 'student-verification-methods'
    tokens_table: str = 'student-verification-tokens'
    otp_table: str = 'student-verification-otp-challenges'
    records_table: str = 'student-verification-records'
    students_table: str = 'student-verification-students'
    vendors_table: str = 'student-verification-vendors'
    products_table: str = 'student-verification-products'

    frontend_url: str = 'http://localhost:3000'
    from_email: str = 'noreply@example.com'

    whatsapp_api_url: Optional[str] = None
    whatsapp_api_key_parameter: Optional[str] = None

    lookup_timeout_seconds: float = 10.0
    verification_validity_days: int = 365
    resend_cooldown_seconds: int = 60
    max_otp_attempts: int = 3

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables, falling back to defaults."""
        return cls(
            aws_region=os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-east-1')),
            universities_table=os.environ.get('DYNAMODB_UNIVERSITIES_TABLE', cls.universities_table),
            methods_table=os.environ.get('DYNAMODB_METHODS_TABLE', cls.methods_table),
            tokens_table=os.environ.get('DYNAMODB_TOKENS_TABLE', cls.tokens_table),
            otp_table=os.environ.get('DYNAMODB_OTP_TABLE', cls.otp_table),
            records_table=os.environ.get('DYNAMODB_RECORDS_TABLE', cls.records_table),
            students_table=os.environ.get('DYNAMODB_STUDENTS_TABLE', cls.students_table),
            vendors_table=os.environ.get('DYNAMODB_VENDORS_TABLE', cls.vendors_table),
            products_table=os.environ.get('DYNAMODB_PRODUCTS_TABLE', cls.products_table),
            frontend_url=os.environ.get('FRONTEND_URL', cls.frontend_url).rstrip('/'),
            from_email=os.environ.get('FROM_EMAIL', cls.from_email),
            whatsapp_api_url=os.environ.get('WHATSAPP_API_URL') or None,
            whatsapp_api_key_parameter=os.environ.get('WHATSAPP_API_KEY_PARAMETER') or None,
            lookup_timeout_seconds=float(os.environ.get('REGISTRATION_LOOKUP_TIMEOUT_SECONDS', '10')),
            verification_validity_days=int(os.environ.get('VERIFICATION_VALIDITY_DAYS', '365')),
            resend_cooldown_seconds=int(os.environ.get('RESEND_COOLDOWN_SECONDS', '60')),
            max_otp_attempts=int(os.environ.get('MAX_OTP_ATTEMPTS', '3')),
        )
