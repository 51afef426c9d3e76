"""
Notification processors.

One processor per family of provider events. Each translates a
notification into at most one payment transition on the order subsystem
and must be safe to re-apply: an event whose key the order already
records, or whose target status is already reached, is a no-op.
"""

import logging
from typing import FrozenSet, Optional

from models.notification import EventCode, NotificationItem
from models.order import (
    CAPTURED_STATUSES,
    CLOSED_STATUSES,
    UNAUTHORIZED_STATUSES,
    OrderPaymentState,
    PaymentStatus,
    PaymentTransition,
)
from .exceptions import ProcessingError
from .order_client import OrderPaymentGateway

logger = logging.getLogger(__name__)


class NotificationProcessor:
    """
    Base class for notification processors.

    Subclasses declare ``handled_events`` and implement ``resolve``, which
    returns the target status for an item or None when the item does not
    change the payment.
    """

    handled_events: FrozenSet[EventCode] = frozenset()

    def __init__(self, orders: OrderPaymentGateway):
        self.orders = orders

    @property
    def name(self) -> str:
        return type(self).__name__

    def handles(self, event_type: Optional[EventCode]) -> bool:
        return event_type in self.handled_events

    async def process(self, item: NotificationItem) -> None:
        """
        Apply a notification to the order's payment.

        Args:
            item: Notification to apply

        Raises:
            ProcessingError: If the order is missing or rejects the event
        """
        try:
            await self._apply(item)
        except ProcessingError:
            raise
        except Exception as e:
            raise ProcessingError(f"{self.name} failed for {item.describe()}: {e}", cause=e) from e

    async def _apply(self, item: NotificationItem) -> None:
        if not item.merchant_reference:
            raise ProcessingError(f"{item.event_code} {item.psp_reference} has no merchant reference")

        state = await self.orders.get_payment_state(item.merchant_reference)
        if state is None:
            raise ProcessingError(f"Order {item.merchant_reference} not found")

        if state.has_applied(item.event_key):
            logger.info(f"{item.event_key} already applied to order {item.merchant_reference}")
            return

        target = self.resolve(item, state)
        if target is None:
            logger.info(
                f"{item.describe()} leaves order in {state.status.value}, nothing to apply"
            )
            return

        await self.orders.apply_transition(PaymentTransition(
            merchant_reference=item.merchant_reference,
            psp_reference=item.psp_reference,
            event_code=item.event_code,
            status=target,
            success=item.success,
            amount=item.amount
        ))

    def resolve(self, item: NotificationItem, state: OrderPaymentState) -> Optional[PaymentStatus]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.name}({', '.join(sorted(e.value for e in self.handled_events))})"


def _check_currency(item: NotificationItem, state: OrderPaymentState) -> None:
    if item.amount and state.amount and item.amount.currency != state.amount.currency:
        raise ProcessingError(
            f"Currency mismatch for order {state.merchant_reference}: "
            f"{item.amount.currency} != {state.amount.currency}"
        )


class AuthorisationProcessor(NotificationProcessor):
    """Authorisation results and pending payments."""

    handled_events = frozenset({
        EventCode.AUTHORISATION,
        EventCode.AUTHORISATION_ADJUSTMENT,
        EventCode.PENDING,
    })

    def resolve(self, item, state):
        if item.event_type == EventCode.PENDING:
            return PaymentStatus.PENDING if state.status == PaymentStatus.OPEN else None

        if not item.success:
            if state.status in UNAUTHORIZED_STATUSES:
                return PaymentStatus.AUTHORIZATION_FAILED
            return None

        _check_currency(item, state)

        if item.event_type == EventCode.AUTHORISATION_ADJUSTMENT:
            # Adjusted amount is recorded, status stays authorized
            return PaymentStatus.AUTHORIZED if state.status == PaymentStatus.AUTHORIZED else None

        if item.amount and state.amount and item.amount.value != state.amount.value:
            raise ProcessingError(
                f"Amount mismatch for order {state.merchant_reference}: "
                f"authorised {item.amount}, expected {state.amount}"
            )

        if state.status in UNAUTHORIZED_STATUSES or state.status == PaymentStatus.AUTHORIZATION_FAILED:
            return PaymentStatus.AUTHORIZED
        # Already authorized, captured or beyond: late or repeated delivery
        return None


class CaptureProcessor(NotificationProcessor):
    """Capture results."""

    handled_events = frozenset({EventCode.CAPTURE, EventCode.CAPTURE_FAILED})

    def resolve(self, item, state):
        if item.event_type == EventCode.CAPTURE_FAILED or not item.success:
            if state.status in (PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED):
                return PaymentStatus.CAPTURE_FAILED
            return None

        if state.status in CAPTURED_STATUSES:
            return None
        if state.status in CLOSED_STATUSES:
            raise ProcessingError(
                f"Capture received for order {state.merchant_reference} in status {state.status.value}"
            )
        _check_currency(item, state)
        # Capture may overtake its authorisation
        return PaymentStatus.CAPTURED


class RefundProcessor(NotificationProcessor):
    """Refunds, failed refunds and reversed refunds."""

    handled_events = frozenset({
        EventCode.REFUND,
        EventCode.REFUND_FAILED,
        EventCode.REFUNDED_REVERSED,
    })

    def resolve(self, item, state):
        if item.event_type == EventCode.REFUNDED_REVERSED:
            if state.status in (PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED):
                return PaymentStatus.CAPTURED
            return None

        if item.event_type == EventCode.REFUND_FAILED or not item.success:
            if state.status == PaymentStatus.REFUND_FAILED:
                return None
            return PaymentStatus.REFUND_FAILED

        if state.status == PaymentStatus.REFUNDED:
            return None
        _check_currency(item, state)
        return self._refund_status(item, state)

    @staticmethod
    def _refund_status(item: NotificationItem, state: OrderPaymentState) -> PaymentStatus:
        if item.amount is None or state.amount is None:
            return PaymentStatus.REFUNDED

        refunded = state.refunded_value + item.amount.value
        if refunded >= state.amount.value:
            return PaymentStatus.REFUNDED
        return PaymentStatus.PARTIALLY_REFUNDED


class CancellationProcessor(NotificationProcessor):
    """Cancellations, cancel-or-refund and expired offers."""

    handled_events = frozenset({
        EventCode.CANCELLATION,
        EventCode.CANCEL_OR_REFUND,
        EventCode.OFFER_CLOSED,
    })

    def resolve(self, item, state):
        if not item.success:
            return None

        if item.event_type == EventCode.OFFER_CLOSED:
            return PaymentStatus.CANCELLED if state.status in UNAUTHORIZED_STATUSES else None

        if state.status in (PaymentStatus.CANCELLED, PaymentStatus.REFUNDED):
            return None

        if item.event_type == EventCode.CANCEL_OR_REFUND and state.status in CAPTURED_STATUSES:
            return PaymentStatus.REFUNDED

        if state.status in CAPTURED_STATUSES:
            raise ProcessingError(
                f"Cancellation received for captured order {state.merchant_reference}"
            )
        return PaymentStatus.CANCELLED


class ChargebackProcessor(NotificationProcessor):
    """Chargeback lifecycle."""

    handled_events = frozenset({
        EventCode.NOTIFICATION_OF_CHARGEBACK,
        EventCode.CHARGEBACK,
        EventCode.SECOND_CHARGEBACK,
        EventCode.CHARGEBACK_REVERSED,
    })

    def resolve(self, item, state):
        if not item.success:
            return None

        if item.event_type == EventCode.NOTIFICATION_OF_CHARGEBACK:
            target = PaymentStatus.REVIEW_NECESSARY
        elif item.event_type == EventCode.CHARGEBACK_REVERSED:
            target = PaymentStatus.CHARGEBACK_REVERSED
        else:
            target = PaymentStatus.CHARGEBACK

        if state.status == target:
            return None
        # A dispute notice never downgrades a settled chargeback
        if target == PaymentStatus.REVIEW_NECESSARY and state.status == PaymentStatus.CHARGEBACK:
            return None
        return target


def default_processors(orders: OrderPaymentGateway):
    """
    Build the standard processor set, in registration order.

    Args:
        orders: Order subsystem gateway shared by all processors

    Returns:
        List of processor instances
    """
    return [
        AuthorisationProcessor(orders),
        CaptureProcessor(orders),
        RefundProcessor(orders),
        CancellationProcessor(orders),
        ChargebackProcessor(orders),
    ]
