"""
Magic-link and widget token lifecycle.

Both kinds live in one table but every row carries an explicit `kind`, and
every consume is conditioned on it, so a magic link can never be redeemed as a
widget token or the reverse.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from credential_store import CredentialStore, from_epoch
from directory import Directory
from errors import (
    ProductNotFound,
    StudentNotFound,
    StudentNotVerified,
    TokenAlreadyUsed,
    TokenExpired,
    TokenNotFound,
    TokenOwnerMismatch,
    VendorNotFound,
    VerificationError,
)
from otp_manager import utc_now
from verification_status import project_status


MAGIC_LINK_EXPIRY_MINUTES = 15
WIDGET_TOKEN_EXPIRY_MINUTES = 30

# 32 random bytes = 256 bits of entropy
TOKEN_BYTES = 32


class TokenKind(str, Enum):
    MAGIC_LINK = 'magic_link'
    WIDGET = 'widget'


# Prefixes only make tokens recognisable in support tickets; they add no security
TOKEN_PREFIXES = {
    TokenKind.MAGIC_LINK: 'mlk_',
    TokenKind.WIDGET: 'wgt_',
}


@dataclass
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass
class MagicLinkOwner:
    email: str
    university_id: Optional[str] = None


@dataclass
class WidgetOwner:
    student_id: str
    vendor_id: str
    product_id: Optional[str] = None


@dataclass
class TokenValidity:
    valid: bool
    owner: Any = None
    error: Optional[VerificationError] = None


def generate_token(kind: TokenKind) -> str:
    """Generate an unguessable token string for the given kind."""
    return f"{TOKEN_PREFIXES[kind]}{secrets.token_hex(TOKEN_BYTES)}"


def _owner_from_item(kind: TokenKind, item: Dict[str, Any]):
    if kind == TokenKind.MAGIC_LINK:
        return MagicLinkOwner(email=item['email'], university_id=item.get('university_id'))
    return WidgetOwner(
        student_id=item['student_id'],
        vendor_id=item['vendor_id'],
        product_id=item.get('product_id'),
    )


def check_token(item: Optional[Dict[str, Any]], kind: TokenKind, now: datetime,
                vendor_id: Optional[str] = None) -> Optional[VerificationError]:
    """
    Classify why a stored token cannot be consumed.

    Checks run in order: existence (and kind), expiry, prior use, vendor
    ownership. Expiry is checked before use so an expired token always
    reports expired.

    Returns:
        The error to raise, or None if the token is consumable
    """
    if not item or item.get('kind') != kind.value:
        return TokenNotFound('Invalid verification token')

    expires_at = from_epoch(item.get('expires_at'))
    if expires_at is None or now >= expires_at:
        return TokenExpired('Verification token has expired')

    if item.get('used_at') is not None:
        return TokenAlreadyUsed('Verification token has already been used')

    if kind == TokenKind.WIDGET and item.get('vendor_id') != vendor_id:
        return TokenOwnerMismatch('Verification token does not belong to this vendor')

    return None


class TokenService:
    """Issues and consumes single-use tokens."""

    def __init__(self, store: CredentialStore, directory: Directory):
        self.store = store
        self.directory = directory

    def issue_magic_link(self, email: str, university_id: Optional[str] = None,
                         now: Optional[datetime] = None) -> IssuedToken:
        """
        Issue a 15-minute email verification token.

        Args:
            email: Address the link will be sent to
            university_id: University the student is verifying against

        Returns:
            IssuedToken
        """
        now = now or utc_now()
        expires_at = now + timedelta(minutes=MAGIC_LINK_EXPIRY_MINUTES)
        token = generate_token(TokenKind.MAGIC_LINK)

        self.store.create_token(
            token, TokenKind.MAGIC_LINK.value, now, expires_at,
            {'email': email.lower(), 'university_id': university_id}
        )
        return IssuedToken(token=token, expires_at=expires_at)

    def issue_widget_token(self, student_id: str, vendor_id: str, product_id: Optional[str] = None,
                           now: Optional[datetime] = None) -> IssuedToken:
        """
        Issue a 30-minute token a vendor can redeem for a verified student.

        Raises:
            StudentNotFound: Student missing or not active
            StudentNotVerified: Student's verification is missing or expired
            VendorNotFound: Vendor missing or deleted
            ProductNotFound: Product missing or owned by another vendor
        """
        now = now or utc_now()

        if not self.directory.get_active_student(student_id):
            raise StudentNotFound('Student not found', {'student_id': student_id})

        status = project_status(self.store.get_latest_record(student_id), now)
        if not status.is_verified:
            raise StudentNotVerified(
                'Student must be verified to generate verification token',
                {'status': status.status.value}
            )

        if not self.directory.get_vendor(vendor_id):
            raise VendorNotFound('Vendor not found', {'vendor_id': vendor_id})

        if product_id and not self.directory.get_vendor_product(vendor_id, product_id):
            raise ProductNotFound(
                'Product not found or does not belong to vendor',
                {'product_id': product_id}
            )

        expires_at = now + timedelta(minutes=WIDGET_TOKEN_EXPIRY_MINUTES)
        token = generate_token(TokenKind.WIDGET)
        self.store.create_token(
            token, TokenKind.WIDGET.value, now, expires_at,
            {'student_id': student_id, 'vendor_id': vendor_id, 'product_id': product_id}
        )
        return IssuedToken(token=token, expires_at=expires_at)

    def consume(self, token: str, kind: TokenKind, vendor_id: Optional[str] = None,
                now: Optional[datetime] = None):
        """
        Validate and mark a token used in one conditional write.

        Returns:
            MagicLinkOwner or WidgetOwner

        Raises:
            TokenNotFound, TokenExpired, TokenAlreadyUsed, TokenOwnerMismatch
        """
        now = now or utc_now()
        if kind == TokenKind.WIDGET and not vendor_id:
            raise TokenOwnerMismatch('Vendor is required to redeem a widget token')

        updated = self.store.consume_token(
            token, kind.value, now,
            vendor_id=vendor_id if kind == TokenKind.WIDGET else None
        )
        if updated is not None:
            return _owner_from_item(kind, updated)

        error = check_token(self.store.get_token(token), kind, now, vendor_id)
        # Lost a race to another consumer between the write and the re-read
        raise error or TokenAlreadyUsed('Verification token has already been used')

    def peek(self, token: str, kind: TokenKind, vendor_id: Optional[str] = None,
             now: Optional[datetime] = None) -> TokenValidity:
        """
        Run the same checks as `consume` without marking the token used.

        For status checks only; never a substitute for `consume`.
        """
        now = now or utc_now()
        item = self.store.get_token(token)
        error = check_token(item, kind, now, vendor_id)
        if error:
            return TokenValidity(valid=False, error=error)
        return TokenValidity(valid=True, owner=_owner_from_item(kind, item))

    def consume_magic_link(self, token: str, now: Optional[datetime] = None) -> MagicLinkOwner:
        return self.consume(token, TokenKind.MAGIC_LINK, now=now)

    def consume_widget_token(self, token: str, vendor_id: str,
                             now: Optional[datetime] = None) -> WidgetOwner:
        return self.consume(token, TokenKind.WIDGET, vendor_id=vendor_id, now=now)
