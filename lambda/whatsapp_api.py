"""
WhatsApp Business API delivery for one-time codes.
"""
from dataclasses import dataclass
from typing import Optional

import requests

from logging_utils import log_operator_alert, log_upstream_error


SEND_TIMEOUT_SECONDS = 10


@dataclass
class DeliveryResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class WhatsAppClient:
    """Posts OTP messages to the WhatsApp delivery service."""

    def __init__(self, session: requests.Session, api_url: Optional[str], api_key: Optional[str]):
        self.session = session
        self.api_url = api_url.rstrip('/') if api_url else None
        self.api_key = api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def send_otp(self, phone_number: str, code: str, expiry_minutes: int) -> DeliveryResult:
        """
        Send a verification code over WhatsApp.

        Args:
            phone_number: Normalized number such as '+2348012345678'
            code: Code to deliver
            expiry_minutes: Validity window quoted in the message

        Returns:
            DeliveryResult
        """
        if not self.is_configured:
            log_operator_alert('NOT_CONFIGURED', None, 'WhatsApp API URL or key is not configured')
            return DeliveryResult(success=False, error='WhatsApp service not configured')

        try:
            response = self.session.post(
                f"{self.api_url}/send",
                json={
                    'to': phone_number,
                    'message': (
                        f"Your student verification code is: {code}\n\n"
                        f"This code expires in {expiry_minutes} minutes."
                    ),
                },
                headers={
                    'Authorization': f"Bearer {self.api_key}",
                    'Content-Type': 'application/json'
                },
                timeout=SEND_TIMEOUT_SECONDS
            )
        except requests.exceptions.RequestException as e:
            log_upstream_error('whatsapp_send', None)
            return DeliveryResult(success=False, error=f"WhatsApp request failed: {type(e).__name__}")

        if response.status_code >= 400:
            log_upstream_error('whatsapp_send', response.status_code)
            return DeliveryResult(success=False, error=f"WhatsApp API returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            data = {}
        message_id = data.get('messageId') or data.get('id') if isinstance(data, dict) else None

        print("WhatsApp OTP sent successfully")
        return DeliveryResult(success=True, message_id=message_id)
