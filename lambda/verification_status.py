"""
Verification status projection and the per-student journey state machine.

"Expired" is never written: it is computed at read time from the latest
record's expiry.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from credential_store import from_epoch
from errors import InvalidTransition


class VerificationStatus(str, Enum):
    UNVERIFIED = 'unverified'
    VERIFIED = 'verified'
    EXPIRED = 'expired'


class JourneyState(str, Enum):
    UNVERIFIED = 'unverified'
    PENDING = 'pending'
    VERIFIED = 'verified'
    EXPIRED = 'expired'


class JourneyEvent(str, Enum):
    ISSUED = 'issued'          # magic link sent, OTP sent, lookup initiated
    COMPLETED = 'completed'    # credential consumed or lookup verified
    FAILED = 'failed'          # wrong credential or failed lookup
    LAPSED = 'lapsed'          # credential or verification expiry passed


TRANSITIONS = {
    (JourneyState.UNVERIFIED, JourneyEvent.ISSUED): JourneyState.PENDING,
    (JourneyState.EXPIRED, JourneyEvent.ISSUED): JourneyState.PENDING,
    # Re-verification before the current verification lapses
    (JourneyState.VERIFIED, JourneyEvent.ISSUED): JourneyState.PENDING,
    (JourneyState.PENDING, JourneyEvent.ISSUED): JourneyState.PENDING,
    (JourneyState.PENDING, JourneyEvent.COMPLETED): JourneyState.VERIFIED,
    (JourneyState.PENDING, JourneyEvent.FAILED): JourneyState.UNVERIFIED,
    (JourneyState.PENDING, JourneyEvent.LAPSED): JourneyState.UNVERIFIED,
    (JourneyState.VERIFIED, JourneyEvent.LAPSED): JourneyState.EXPIRED,
}


def advance(state: JourneyState, event: JourneyEvent) -> JourneyState:
    """
    Apply an event to a journey state.

    Raises:
        InvalidTransition: The event is not allowed in this state
    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(
            f"Cannot apply '{event.value}' to a {state.value} verification",
            {'state': state.value, 'event': event.value}
        ) from None


@dataclass
class StatusView:
    is_verified: bool
    status: VerificationStatus
    last_verification_date: Optional[datetime] = None
    method: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def journey_state(self) -> JourneyState:
        return JourneyState(self.status.value)

    def to_dict(self) -> Dict[str, Any]:
        body = {'isVerified': self.is_verified, 'status': self.status.value}
        if self.last_verification_date:
            body['lastVerificationDate'] = self.last_verification_date.isoformat()
        if self.method:
            body['method'] = self.method
        if self.expires_at:
            body['expiresAt'] = self.expires_at.isoformat()
        return body


def project_status(record: Optional[Dict[str, Any]], now: datetime) -> StatusView:
    """
    Combine the latest verification record with the current time.

    Args:
        record: Most recent record for the student, or None
        now: Current time

    Returns:
        StatusView; status is 'expired' whenever now is past expires_at,
        whatever the persisted status says
    """
    if not record:
        return StatusView(is_verified=False, status=VerificationStatus.UNVERIFIED)

    expires_at = from_epoch(record.get('expires_at'))
    is_expired = expires_at is not None and now > expires_at

    persisted = record.get('status') or VerificationStatus.UNVERIFIED.value
    try:
        persisted_status = VerificationStatus(persisted)
    except ValueError:
        persisted_status = VerificationStatus.UNVERIFIED

    persisted_verified = persisted_status == VerificationStatus.VERIFIED

    return StatusView(
        is_verified=persisted_verified and not is_expired,
        status=VerificationStatus.EXPIRED if is_expired else persisted_status,
        last_verification_date=from_epoch(record.get('verified_at')),
        method=record.get('method'),
        expires_at=expires_at,
    )
