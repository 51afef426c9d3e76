"""
Order payment models.

The order subsystem owns payment state; this service only reads it and
requests transitions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from .notification import Amount


class PaymentStatus(str, Enum):
    """Payment status as tracked by the order subsystem."""
    OPEN = "open"
    PENDING = "pending"
    AUTHORIZED = "authorized"
    AUTHORIZATION_FAILED = "authorization_failed"
    CAPTURED = "captured"
    CAPTURE_FAILED = "capture_failed"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"
    CANCELLED = "cancelled"
    REVIEW_NECESSARY = "review_necessary"
    CHARGEBACK = "chargeback"
    CHARGEBACK_REVERSED = "chargeback_reversed"


# Payment has not been authorized yet
UNAUTHORIZED_STATUSES = frozenset({PaymentStatus.OPEN, PaymentStatus.PENDING})

# Funds were captured at some point
CAPTURED_STATUSES = frozenset({
    PaymentStatus.CAPTURED,
    PaymentStatus.PARTIALLY_REFUNDED,
    PaymentStatus.REFUNDED,
    PaymentStatus.REFUND_FAILED,
    PaymentStatus.REVIEW_NECESSARY,
    PaymentStatus.CHARGEBACK,
    PaymentStatus.CHARGEBACK_REVERSED,
})

# Payment will never be captured
CLOSED_STATUSES = frozenset({
    PaymentStatus.AUTHORIZATION_FAILED,
    PaymentStatus.CANCELLED,
})


@dataclass(frozen=True)
class OrderPaymentState:
    """
    Snapshot of an order's payment as reported by the order subsystem.

    Attributes:
        merchant_reference: Merchant's order identifier
        status: Current payment status
        amount: Order total, when known
        refunded_value: Minor units refunded so far
        applied_events: Event keys (``EVENT_CODE:pspReference``) already applied
    """

    merchant_reference: str
    status: PaymentStatus
    amount: Optional[Amount] = None
    refunded_value: int = 0
    applied_events: FrozenSet[str] = field(default_factory=frozenset)

    def has_applied(self, event_key: str) -> bool:
        return event_key in self.applied_events

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrderPaymentState':
        """
        Create state from the order service's JSON representation.

        Args:
            data: Dictionary with payment state

        Returns:
            OrderPaymentState instance
        """
        return cls(
            merchant_reference=data['merchant_reference'],
            status=PaymentStatus(data['status']),
            amount=Amount.from_dict(data.get('amount')),
            refunded_value=int(data.get('refunded_value') or 0),
            applied_events=frozenset(data.get('applied_events') or ())
        )


@dataclass(frozen=True)
class PaymentTransition:
    """A state-transition request sent to the order subsystem."""

    merchant_reference: str
    psp_reference: str
    event_code: str
    status: PaymentStatus
    success: bool = True
    amount: Optional[Amount] = None

    @property
    def event_key(self) -> str:
        return f"{self.event_code}:{self.psp_reference}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'merchant_reference': self.merchant_reference,
            'psp_reference': self.psp_reference,
            'event_code': self.event_code,
            'event_key': self.event_key,
            'status': self.status.value,
            'success': self.success,
            'amount': self.amount.to_dict() if self.amount else None
        }
