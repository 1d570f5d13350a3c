"""
AWS Systems Manager Parameter Store utilities.
Resolves API keys for the WhatsApp service and university lookup endpoints.
"""
from typing import Dict


class ParameterStore:
    """Caching reader for SecureString parameters."""

    def __init__(self, ssm_client):
        self.ssm_client = ssm_client
        self._cache: Dict[str, str] = {}

    def get(self, name: str) -> str:
        """
        Get SSM parameter with caching.

        Args:
            name: Parameter name (e.g., '/student-verification/whatsapp-api-key')

        Returns:
            Parameter value, or "" if it cannot be read
        """
        if name in self._cache:
            return self._cache[name]

        try:
            response = self.ssm_client.get_parameter(Name=name, WithDecryption=True)
        except Exception as e:
            print(f"Error getting parameter {name}: {type(e).__name__}")
            return ""

        value = response['Parameter']['Value']
        self._cache[name] = value
        return value
