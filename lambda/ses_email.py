"""
Amazon SES email delivery for magic links and email OTPs.
"""
from dataclasses import dataclass
from html import escape
from typing import Optional, Tuple

from botocore.exceptions import ClientError

from logging_utils import log_email_event


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def build_magic_link_email(link: str, university_name: Optional[str] = None,
                           expiry_minutes: int = 15) -> Tuple[str, str, str]:
    """
    Compose the magic link message.

    Args:
        link: Full verification URL including the token
        university_name: Shown in the greeting when known
        expiry_minutes: Validity window shown to the student

    Returns:
        Tuple of (subject, html_body, text_body)
    """
    subject = 'Verify your student email'
    greeting = f"Welcome, {university_name} student!" if university_name else "Welcome!"

    text_body = f"""{greeting}

Open this link to verify your student email address:
{link}

This link will expire in {expiry_minutes} minutes.

If you did not request this verification, please ignore this email.
"""

    safe_link = escape(link, quote=True)
    html_body = f"""<html>
<head></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #1D4ED8; color: white; padding: 20px; text-align: center; border-radius: 10px 10px 0 0;">
        <h1 style="margin: 0;">Verify Your Student Email</h1>
    </div>

    <div style="background-color: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px;">
        <p style="font-size: 16px; color: #333;">{escape(greeting)}</p>
        <p style="font-size: 16px; color: #333;">Click the button below to verify your student email address:</p>

        <div style="text-align: center; margin: 30px 0;">
            <a href="{safe_link}" style="background-color: #1D4ED8; color: #FFFFFF; padding: 15px 30px; text-decoration: none; border-radius: 5px; font-weight: bold; display: inline-block;">
                Verify Email
            </a>
        </div>

        <p style="font-size: 12px; color: #666;">Or copy and paste this link in your browser:</p>
        <p style="font-size: 12px; color: #666; word-break: break-all;">{safe_link}</p>

        <p style="color: #666; font-size: 14px; margin-top: 20px;">
            <strong>This link will expire in {expiry_minutes} minutes.</strong>
        </p>

        <p style="color: #999; font-size: 12px; margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd;">
            If you did not request this verification, please ignore this email.
        </p>
    </div>
</body>
</html>"""

    return subject, html_body, text_body


def build_otp_email(code: str, expiry_minutes: int = 10) -> Tuple[str, str, str]:
    """
    Compose the one-time code message.

    Returns:
        Tuple of (subject, html_body, text_body)
    """
    subject = 'Your student verification code'

    text_body = f"""Student Verification

Your verification code is: {code}

This code will expire in {expiry_minutes} minutes.

If you did not request this verification, please ignore this email.
"""

    html_body = f"""<html>
<head></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #1D4ED8; color: white; padding: 20px; text-align: center; border-radius: 10px 10px 0 0;">
        <h1 style="margin: 0;">Student Verification</h1>
    </div>

    <div style="background-color: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px;">
        <p style="font-size: 16px; color: #333;">Your verification code is:</p>

        <div style="background-color: #ffffff; border: 2px solid #1D4ED8; padding: 20px; text-align: center; font-size: 36px; font-weight: bold; letter-spacing: 8px; margin: 20px 0; border-radius: 8px; color: #1D4ED8;">
            {escape(code)}
        </div>

        <p style="color: #666; font-size: 14px; margin-top: 20px;">
            <strong>This code will expire in {expiry_minutes} minutes.</strong>
        </p>

        <p style="color: #999; font-size: 12px; margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd;">
            If you did not request this verification, please ignore this email.
        </p>
    </div>
</body>
</html>"""

    return subject, html_body, text_body


class SesEmailSender:
    """Sends transactional email through SES and records CloudWatch metrics."""

    def __init__(self, ses_client, from_email: str, cloudwatch=None):
        self.ses_client = ses_client
        self.from_email = from_email
        self.cloudwatch = cloudwatch

    def publish_email_metric(self, metric_name: str, value: float = 1.0):
        """Publish custom CloudWatch metric."""
        if self.cloudwatch is None:
            return
        try:
            self.cloudwatch.put_metric_data(
                Namespace='StudentVerification/SES',
                MetricData=[{
                    'MetricName': metric_name,
                    'Value': value,
                    'Unit': 'Count'
                }]
            )
        except Exception as e:
            print(f"ERROR publishing metric {metric_name}: {type(e).__name__}")

    def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> EmailResult:
        """
        Send one email via Amazon SES.

        Args:
            to: Recipient address
            subject: Subject line
            html: HTML body
            text: Optional plain-text alternative

        Returns:
            EmailResult; never raises for delivery problems
        """
        body = {'Html': {'Data': html, 'Charset': 'UTF-8'}}
        if text:
            body['Text'] = {'Data': text, 'Charset': 'UTF-8'}

        try:
            response = self.ses_client.send_email(
                Source=self.from_email,
                Destination={'ToAddresses': [to]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': body
                }
            )
        except ClientError as e:
            error_message = e.response['Error']['Message']
            log_email_event("sent", to, False, f"SES Error: {error_message}")
            self.publish_email_metric('EmailsFailed')
            return EmailResult(success=False, error=error_message)

        message_id = response['MessageId']
        log_email_event("sent", to, True, f"MessageId: {message_id}")
        self.publish_email_metric('EmailsSent')
        return EmailResult(success=True, message_id=message_id)
