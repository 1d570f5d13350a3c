"""
University configuration management.
Reads per-university domains, lookup endpoints and verification method
settings from DynamoDB. Administrators write these rows; this service only reads.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key

from errors import UniversityNotFound


@dataclass
class University:
    university_id: str
    name: str
    domain: Optional[str] = None
    email_domains: List[str] = field(default_factory=list)
    is_active: bool = True
    database_api_url: Optional[str] = None
    api_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "University":
        return cls(
            university_id=item['university_id'],
            name=item.get('name', ''),
            domain=item.get('domain') or None,
            email_domains=sorted(item.get('email_domains') or []),
            is_active=bool(item.get('is_active', True)),
            database_api_url=item.get('database_api_url') or None,
            api_config=dict(item.get('api_config') or {}),
        )


@dataclass
class MethodConfig:
    university_id: str
    method_type: str
    is_active: bool
    priority_order: int
    api_endpoint: Optional[str] = None
    api_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "MethodConfig":
        return cls(
            university_id=item['university_id'],
            method_type=item['method_type'],
            is_active=bool(item.get('is_active', True)),
            priority_order=int(item.get('priority_order', 0)),
            api_endpoint=item.get('api_endpoint') or None,
            api_config=dict(item.get('api_config') or {}),
        )


@dataclass
class LookupEndpoint:
    url: str
    api_config: Dict[str, Any] = field(default_factory=dict)


class UniversityDirectory:
    """Read-only access to university and verification method rows."""

    def __init__(self, universities_table, methods_table):
        self.universities_table = universities_table
        self.methods_table = methods_table

    def get_university(self, university_id: str) -> Optional[University]:
        """
        Get a university by ID.

        Args:
            university_id: University ID

        Returns:
            University or None if no row exists
        """
        response = self.universities_table.get_item(Key={'university_id': university_id})
        item = response.get('Item')
        if not item:
            print(f"No university found for {university_id}")
            return None
        return University.from_item(item)

    def get_active_university(self, university_id: str) -> University:
        """
        Get a university that exists and is active.

        Raises:
            UniversityNotFound: Missing or deactivated university
        """
        university = self.get_university(university_id)
        if university is None or not university.is_active:
            raise UniversityNotFound(
                'University not found or inactive',
                {'university_id': university_id}
            )
        return university

    def get_method_configs(self, university_id: str) -> List[MethodConfig]:
        """
        Get every configured verification method for a university, active or not.

        Args:
            university_id: University ID

        Returns:
            Method rows (possibly empty), unsorted
        """
        items = []
        kwargs = {'KeyConditionExpression': Key('university_id').eq(university_id)}
        while True:
            response = self.methods_table.query(**kwargs)
            items.extend(response.get('Items', []))
            if 'LastEvaluatedKey' not in response:
                break
            kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

        return [MethodConfig.from_item(item) for item in items]

    def get_registration_endpoint(self, university: University) -> Optional[LookupEndpoint]:
        """
        Resolve where to send registration number lookups.

        An active method-specific endpoint wins over the university's general
        database URL.

        Args:
            university: Active university

        Returns:
            LookupEndpoint or None if neither is configured
        """
        response = self.methods_table.get_item(
            Key={'university_id': university.university_id, 'method_type': 'registration'}
        )
        item = response.get('Item')
        if item:
            method = MethodConfig.from_item(item)
            if method.is_active and method.api_endpoint:
                return LookupEndpoint(url=method.api_endpoint, api_config=method.api_config)

        if university.database_api_url:
            return LookupEndpoint(url=university.database_api_url, api_config=university.api_config)

        return None
