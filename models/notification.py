"""
Notification data models.

Represents incoming provider notification items and their stored,
processed counterparts.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class EventCode(str, Enum):
    """Provider event codes this service knows about."""
    AUTHORISATION = "AUTHORISATION"
    AUTHORISATION_ADJUSTMENT = "AUTHORISATION_ADJUSTMENT"
    PENDING = "PENDING"
    CAPTURE = "CAPTURE"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    CANCELLATION = "CANCELLATION"
    CANCEL_OR_REFUND = "CANCEL_OR_REFUND"
    OFFER_CLOSED = "OFFER_CLOSED"
    REFUND = "REFUND"
    REFUND_FAILED = "REFUND_FAILED"
    REFUNDED_REVERSED = "REFUNDED_REVERSED"
    CHARGEBACK = "CHARGEBACK"
    SECOND_CHARGEBACK = "SECOND_CHARGEBACK"
    CHARGEBACK_REVERSED = "CHARGEBACK_REVERSED"
    NOTIFICATION_OF_CHARGEBACK = "NOTIFICATION_OF_CHARGEBACK"
    REPORT_AVAILABLE = "REPORT_AVAILABLE"
    ORDER_OPENED = "ORDER_OPENED"
    ORDER_CLOSED = "ORDER_CLOSED"

    @classmethod
    def lookup(cls, code: str) -> Optional['EventCode']:
        """Return the matching event code, or None for codes we do not model."""
        try:
            return cls(code)
        except ValueError:
            return None


class NotificationStatus(str, Enum):
    """Processing status of a stored notification."""
    RECEIVED = "received"
    PROCESSED = "processed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not NotificationStatus.RECEIVED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    # asyncpg hands back datetimes, SQLite hands back ISO strings
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_success(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == 'true'


@dataclass(frozen=True)
class Amount:
    """Monetary amount in minor units (e.g. cents)."""

    value: int
    currency: str

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['Amount']:
        """
        Build an Amount from the provider's ``{"value": .., "currency": ..}``.

        Returns:
            Amount instance, or None when no amount is present
        """
        if not data:
            return None
        return cls(value=int(data['value']), currency=str(data['currency']).upper())

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value, 'currency': self.currency}

    def __str__(self) -> str:
        return f"{self.value} {self.currency}"


@dataclass(frozen=True)
class RawNotificationItem:
    """
    A single ``NotificationRequestItem`` as decoded from the request body.

    Only light accessors are provided; structured conversion happens in
    ``NotificationItem.from_raw``.
    """

    payload: Dict[str, Any]

    @property
    def event_code(self) -> str:
        return str(self.payload.get('eventCode', ''))

    @property
    def psp_reference(self) -> str:
        return str(self.payload.get('pspReference', ''))

    @property
    def original_reference(self) -> str:
        return str(self.payload.get('originalReference') or '')

    @property
    def merchant_reference(self) -> str:
        return str(self.payload.get('merchantReference') or '')

    @property
    def merchant_account_code(self) -> str:
        return str(self.payload.get('merchantAccountCode') or '')

    @property
    def success(self) -> bool:
        return _parse_success(self.payload.get('success', False))

    @property
    def amount(self) -> Optional[Amount]:
        return Amount.from_dict(self.payload.get('amount'))

    @property
    def additional_data(self) -> Dict[str, Any]:
        return self.payload.get('additionalData') or {}

    @property
    def hmac_signature(self) -> Optional[str]:
        return self.additional_data.get('hmacSignature')

    def to_json(self) -> str:
        """Serialize the raw item exactly as received (keys sorted)."""
        return json.dumps(self.payload, separators=(',', ':'), sort_keys=True)


@dataclass(frozen=True)
class NotificationItem:
    """
    Structured, immutable view of one provider event.

    ``event_code`` keeps the provider's string verbatim so that unknown
    codes can still be stored; ``event_type`` is the modelled enum member,
    or None.
    """

    event_code: str
    psp_reference: str
    merchant_reference: str
    success: bool
    amount: Optional[Amount] = None
    original_reference: str = ''
    merchant_account_code: str = ''
    payload: Dict[str, Any] = field(default_factory=dict)
    received_at: datetime = field(default_factory=_utcnow)

    @property
    def event_type(self) -> Optional[EventCode]:
        return EventCode.lookup(self.event_code)

    @property
    def event_key(self) -> str:
        """Token identifying this logical event to the order subsystem."""
        return f"{self.event_code}:{self.psp_reference}"

    @classmethod
    def from_raw(
        cls,
        raw: RawNotificationItem,
        received_at: Optional[datetime] = None
    ) -> 'NotificationItem':
        """
        Create a NotificationItem from a raw decoded item.

        Args:
            raw: Item as returned by the parser
            received_at: Receive time (defaults to now, UTC)

        Returns:
            NotificationItem instance
        """
        return cls(
            event_code=raw.event_code,
            psp_reference=raw.psp_reference,
            merchant_reference=raw.merchant_reference,
            success=raw.success,
            amount=raw.amount,
            original_reference=raw.original_reference,
            merchant_account_code=raw.merchant_account_code,
            payload=dict(raw.payload),
            received_at=received_at or _utcnow()
        )

    def short_psp_reference(self) -> str:
        """Get shortened PSP reference for display."""
        if len(self.psp_reference) > 16:
            return f"{self.psp_reference[:8]}...{self.psp_reference[-4:]}"
        return self.psp_reference

    def describe(self) -> str:
        return f"{self.event_code} {self.short_psp_reference()} ({self.merchant_reference or '-'})"


@dataclass
class StoredNotification:
    """
    Persisted notification record.

    Attributes:
        id: Database row ID
        item: The notification item this record wraps
        status: Processing status
        detail: Error detail for FAILED records, or a note for PROCESSED ones
        claimed_at: When the current delivery claimed the record
        processed_at: When the record reached a terminal status
    """

    id: int
    item: NotificationItem
    status: NotificationStatus = NotificationStatus.RECEIVED
    detail: Optional[str] = None
    claimed_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'StoredNotification':
        """
        Create StoredNotification from a database row.

        Args:
            row: Dictionary with notification columns

        Returns:
            StoredNotification instance
        """
        amount = None
        if row.get('amount_value') is not None and row.get('amount_currency'):
            amount = Amount(value=int(row['amount_value']), currency=row['amount_currency'])

        item = NotificationItem(
            event_code=row['event_code'],
            psp_reference=row['psp_reference'],
            merchant_reference=row['merchant_reference'] or '',
            success=bool(row['success']),
            amount=amount,
            original_reference=row.get('original_reference') or '',
            merchant_account_code=row.get('merchant_account_code') or '',
            payload=json.loads(row['payload']) if row.get('payload') else {},
            received_at=_parse_timestamp(row['received_at'])
        )

        return cls(
            id=row['id'],
            item=item,
            status=NotificationStatus(row['status']),
            detail=row.get('detail'),
            claimed_at=_parse_timestamp(row.get('claimed_at')),
            processed_at=_parse_timestamp(row.get('processed_at'))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'event_code': self.item.event_code,
            'psp_reference': self.item.psp_reference,
            'merchant_reference': self.item.merchant_reference,
            'success': self.item.success,
            'amount': self.item.amount.to_dict() if self.item.amount else None,
            'status': self.status.value,
            'detail': self.detail,
            'received_at': self.item.received_at.isoformat(),
            'processed_at': self.processed_at.isoformat() if self.processed_at else None
        }

    def __repr__(self) -> str:
        return f"StoredNotification(id={self.id}, {self.item.describe()}, status={self.status.value})"


@dataclass
class ProcessingResult:
    """Outcome of dispatching one stored notification."""

    notification_id: int
    status: NotificationStatus
    processors: List[str] = field(default_factory=list)
    detail: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == NotificationStatus.FAILED


@dataclass
class BatchResult:
    """Aggregated outcome of one notification batch."""

    results: List[ProcessingResult] = field(default_factory=list)
    duplicates: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for r in self.results if r.status == NotificationStatus.PROCESSED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    def summary(self) -> str:
        return (
            f"processed={self.processed} failed={self.failed} "
            f"duplicates={self.duplicates} errors={len(self.errors)}"
        )
