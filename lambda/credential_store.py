"""
DynamoDB operations for verification credentials.

Holds magic-link and widget tokens, OTP challenges, resend cooldown markers
and verification records. Every single-use check is a conditional write so
two concurrent consumers can never both succeed.
"""
import hashlib
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError


CHALLENGE = 'challenge'
COOLDOWN_PREFIX = 'cooldown#'

# Items stay around this long after expiry for audit before DynamoDB TTL removes them
RETENTION_DAYS = 30


def to_epoch(value: datetime) -> Decimal:
    """Convert a timezone-aware datetime to the Decimal epoch DynamoDB stores."""
    return Decimal(str(value.timestamp()))


def from_epoch(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def ttl_after(expires_at: datetime) -> int:
    return int((expires_at + timedelta(days=RETENTION_DAYS)).timestamp())


def hash_code(target: str, code: str) -> str:
    """Digest stored instead of the raw OTP."""
    return hashlib.sha256(f"{target}:{code}".encode('utf-8')).hexdigest()


def is_condition_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


class CredentialStore:
    """Tokens, OTP challenges and verification records."""

    def __init__(self, tokens_table, otp_table, records_table):
        self.tokens_table = tokens_table
        self.otp_table = otp_table
        self.records_table = records_table

    # ==========================================================================
    # Tokens
    # ==========================================================================

    def create_token(self, token: str, kind: str, issued_at: datetime, expires_at: datetime,
                     payload: Dict[str, Any]) -> None:
        """
        Store a new token. Fails if the token value already exists.

        Args:
            token: Opaque token string (primary key)
            kind: 'magic_link' or 'widget'
            issued_at: Issue time
            expires_at: Expiry time
            payload: Kind-specific owner identifiers
        """
        item = {
            'token': token,
            'kind': kind,
            'issued_at': to_epoch(issued_at),
            'expires_at': to_epoch(expires_at),
            'ttl': ttl_after(expires_at),
        }
        item.update({key: value for key, value in payload.items() if value is not None})

        self.tokens_table.put_item(
            Item=item,
            ConditionExpression=Attr('token').not_exists()
        )
        print(f"Created {kind} token expiring at {expires_at.isoformat()}")

    def get_token(self, token: str) -> Optional[Dict[str, Any]]:
        response = self.tokens_table.get_item(Key={'token': token}, ConsistentRead=True)
        return response.get('Item')

    def consume_token(self, token: str, kind: str, now: datetime,
                      vendor_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Atomically mark a token used if it is still consumable.

        The token must exist, be of `kind`, be unexpired, be unused and (when
        `vendor_id` is given) belong to that vendor.

        Returns:
            The updated item, or None if any condition failed
        """
        condition = (
            Attr('token').exists()
            & Attr('kind').eq(kind)
            & Attr('used_at').not_exists()
            & Attr('expires_at').gt(to_epoch(now))
        )
        if vendor_id is not None:
            condition = condition & Attr('vendor_id').eq(vendor_id)

        try:
            response = self.tokens_table.update_item(
                Key={'token': token},
                UpdateExpression='SET used_at = :used_at',
                ConditionExpression=condition,
                ExpressionAttributeValues={':used_at': to_epoch(now)},
                ReturnValues='ALL_NEW'
            )
        except ClientError as e:
            if is_condition_failure(e):
                return None
            raise

        return response['Attributes']

    # ==========================================================================
    # OTP challenges
    # ==========================================================================

    def put_challenge(self, target: str, code: str, channel: str, issued_at: datetime,
                      expires_at: datetime, university_id: Optional[str] = None) -> None:
        """
        Store an OTP challenge for a target, replacing any previous one.

        Args:
            target: Normalized phone number or lower-cased email
            code: Plain code (only its digest is stored)
            channel: 'whatsapp' or 'email'
            issued_at: Issue time
            expires_at: Expiry time
            university_id: University context, if known
        """
        item = {
            'target': target,
            'record_type': CHALLENGE,
            'code_digest': hash_code(target, code),
            'channel': channel,
            'attempts': 0,
            'issued_at': to_epoch(issued_at),
            'expires_at': to_epoch(expires_at),
            'ttl': ttl_after(expires_at),
        }
        if university_id:
            item['university_id'] = university_id

        self.otp_table.put_item(Item=item)
        print(f"Stored {channel} OTP challenge expiring at {expires_at.isoformat()}")

    def get_challenge(self, target: str) -> Optional[Dict[str, Any]]:
        response = self.otp_table.get_item(
            Key={'target': target, 'record_type': CHALLENGE},
            ConsistentRead=True
        )
        return response.get('Item')

    def consume_challenge(self, target: str, code: str, now: datetime,
                          max_attempts: int) -> Optional[Dict[str, Any]]:
        """
        Atomically mark a challenge consumed if the code matches.

        Returns:
            The updated item, or None if any condition failed
        """
        condition = (
            Attr('target').exists()
            & Attr('code_digest').eq(hash_code(target, code))
            & Attr('consumed_at').not_exists()
            & Attr('expires_at').gte(to_epoch(now))
            & Attr('attempts').lt(max_attempts)
        )
        try:
            response = self.otp_table.update_item(
                Key={'target': target, 'record_type': CHALLENGE},
                UpdateExpression='SET consumed_at = :now',
                ConditionExpression=condition,
                ExpressionAttributeValues={':now': to_epoch(now)},
                ReturnValues='ALL_NEW'
            )
        except ClientError as e:
            if is_condition_failure(e):
                return None
            raise

        return response['Attributes']

    def increment_attempts(self, target: str) -> int:
        """
        Record a wrong code against an open challenge.

        Returns:
            New attempt count, or 0 if the challenge is gone or already consumed
        """
        try:
            response = self.otp_table.update_item(
                Key={'target': target, 'record_type': CHALLENGE},
                UpdateExpression='SET attempts = attempts + :inc',
                ConditionExpression=Attr('target').exists() & Attr('consumed_at').not_exists(),
                ExpressionAttributeValues={':inc': 1},
                ReturnValues='UPDATED_NEW'
            )
        except ClientError as e:
            if is_condition_failure(e):
                return 0
            raise

        return int(response['Attributes']['attempts'])

    # ==========================================================================
    # Resend cooldowns
    # ==========================================================================

    def claim_cooldown(self, target: str, channel: str, now: datetime,
                       cooldown_seconds: int) -> int:
        """
        Claim the right to issue a credential for a target on a channel.

        The marker is written only if no marker exists or the previous one is
        older than the cooldown, in a single conditional write.

        Returns:
            0 if claimed, otherwise the seconds remaining in the cooldown
        """
        threshold = now - timedelta(seconds=cooldown_seconds)
        try:
            self.otp_table.put_item(
                Item={
                    'target': target,
                    'record_type': f"{COOLDOWN_PREFIX}{channel}",
                    'issued_at': to_epoch(now),
                    'ttl': int((now + timedelta(seconds=cooldown_seconds)).timestamp()),
                },
                ConditionExpression=(
                    Attr('target').not_exists() | Attr('issued_at').lte(to_epoch(threshold))
                )
            )
            return 0
        except ClientError as e:
            if not is_condition_failure(e):
                raise

        response = self.otp_table.get_item(
            Key={'target': target, 'record_type': f"{COOLDOWN_PREFIX}{channel}"},
            ConsistentRead=True
        )
        item = response.get('Item')
        if not item:
            return 1
        elapsed = (now - from_epoch(item['issued_at'])).total_seconds()
        return max(1, int(cooldown_seconds - elapsed))

    def release_cooldown(self, target: str, channel: str, claimed_at: datetime) -> None:
        """
        Drop a cooldown marker claimed at `claimed_at` so the target can retry.

        A marker claimed later by another request is left alone.
        """
        try:
            self.otp_table.delete_item(
                Key={'target': target, 'record_type': f"{COOLDOWN_PREFIX}{channel}"},
                ConditionExpression=Attr('issued_at').eq(to_epoch(claimed_at))
            )
        except ClientError as e:
            if not is_condition_failure(e):
                raise

    # ==========================================================================
    # Verification records
    # ==========================================================================

    def put_record(self, student_id: str, method: str, verified_at: datetime,
                   expires_at: datetime, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Write a completed verification. Older records are kept as history.

        Args:
            student_id: Verified student
            method: Tier that completed ('email', 'registration', 'whatsapp', 'portal')
            verified_at: Completion time
            expires_at: When this verification stops counting
            details: Extra attributes (university_id, university_data, ...)

        Returns:
            The stored item
        """
        item = {
            'student_id': student_id,
            'verified_at': to_epoch(verified_at),
            'method': method,
            'status': 'verified',
            'expires_at': to_epoch(expires_at),
        }
        if details:
            item.update({key: value for key, value in details.items() if value is not None})

        self.records_table.put_item(Item=item)
        print(f"Recorded {method} verification for student {student_id}")
        return item

    def get_latest_record(self, student_id: str) -> Optional[Dict[str, Any]]:
        """Most recent verification record for a student (by verified_at)."""
        response = self.records_table.query(
            KeyConditionExpression=Key('student_id').eq(student_id),
            ScanIndexForward=False,
            Limit=1
        )
        items = response.get('Items', [])
        return items[0] if items else None
