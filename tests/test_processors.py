"""
Tests for notification processors against an in-memory order gateway.
"""

import pytest

from models.notification import Amount, NotificationItem
from models.order import PaymentStatus
from services.exceptions import ProcessingError
from services.processors import (
    AuthorisationProcessor,
    CancellationProcessor,
    CaptureProcessor,
    ChargebackProcessor,
    RefundProcessor,
)

from conftest import make_item


def notification(**overrides) -> NotificationItem:
    return NotificationItem.from_raw(make_item(**overrides))


EUR_1000 = Amount(1000, 'EUR')


class TestAuthorisationProcessor:
    """Tests for AuthorisationProcessor."""

    @pytest.mark.asyncio
    async def test_successful_authorisation(self, orders):
        orders.add_order('order-1', amount=EUR_1000)

        await AuthorisationProcessor(orders).process(notification())

        assert orders.status_of('order-1') == PaymentStatus.AUTHORIZED
        assert orders.transitions[0].event_key == 'AUTHORISATION:8515131751004933'

    @pytest.mark.asyncio
    async def test_failed_authorisation(self, orders):
        orders.add_order('order-1', amount=EUR_1000)

        await AuthorisationProcessor(orders).process(notification(success='false'))

        assert orders.status_of('order-1') == PaymentStatus.AUTHORIZATION_FAILED

    @pytest.mark.asyncio
    async def test_reapplying_is_a_noop(self, orders):
        orders.add_order('order-1', amount=EUR_1000)
        processor = AuthorisationProcessor(orders)

        await processor.process(notification())
        await processor.process(notification())

        assert len(orders.transitions) == 1

    @pytest.mark.asyncio
    async def test_already_applied_event_key(self, orders):
        """The order subsystem already recorded this event."""
        orders.add_order(
            'order-1',
            amount=EUR_1000,
            applied_events=frozenset({'AUTHORISATION:8515131751004933'})
        )

        await AuthorisationProcessor(orders).process(notification())

        assert orders.transitions == []

    @pytest.mark.asyncio
    async def test_late_authorisation_after_capture(self, orders):
        orders.add_order('order-1', status=PaymentStatus.CAPTURED, amount=EUR_1000)

        await AuthorisationProcessor(orders).process(notification())

        assert orders.status_of('order-1') == PaymentStatus.CAPTURED
        assert orders.transitions == []

    @pytest.mark.asyncio
    async def test_amount_mismatch(self, orders):
        orders.add_order('order-1', amount=Amount(2500, 'EUR'))

        with pytest.raises(ProcessingError, match="Amount mismatch"):
            await AuthorisationProcessor(orders).process(notification())

        assert orders.status_of('order-1') == PaymentStatus.OPEN

    @pytest.mark.asyncio
    async def test_currency_mismatch(self, orders):
        orders.add_order('order-1', amount=Amount(1000, 'USD'))

        with pytest.raises(ProcessingError, match="Currency mismatch"):
            await AuthorisationProcessor(orders).process(notification())

    @pytest.mark.asyncio
    async def test_missing_order(self, orders):
        with pytest.raises(ProcessingError, match="not found"):
            await AuthorisationProcessor(orders).process(notification())

    @pytest.mark.asyncio
    async def test_missing_merchant_reference(self, orders):
        with pytest.raises(ProcessingError, match="no merchant reference"):
            await AuthorisationProcessor(orders).process(notification(merchantReference=None))

    @pytest.mark.asyncio
    async def test_pending(self, orders):
        orders.add_order('order-1')

        await AuthorisationProcessor(orders).process(notification(eventCode='PENDING'))

        assert orders.status_of('order-1') == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_gateway_error_is_wrapped(self, orders):
        orders.add_order('order-1', amount=EUR_1000)
        orders.fail_on.add('order-1')

        with pytest.raises(ProcessingError) as exc_info:
            await AuthorisationProcessor(orders).process(notification())

        assert exc_info.value.cause is not None


class TestCaptureProcessor:
    """Tests for CaptureProcessor."""

    @pytest.mark.asyncio
    async def test_capture_after_authorisation(self, orders):
        orders.add_order('order-1', status=PaymentStatus.AUTHORIZED, amount=EUR_1000)

        await CaptureProcessor(orders).process(notification(eventCode='CAPTURE', pspReference='C1'))

        assert orders.status_of('order-1') == PaymentStatus.CAPTURED

    @pytest.mark.asyncio
    async def test_capture_before_authorisation(self, orders):
        """Capture overtaking its authorisation still captures."""
        orders.add_order('order-1', amount=EUR_1000)

        await CaptureProcessor(orders).process(notification(eventCode='CAPTURE', pspReference='C1'))
        await AuthorisationProcessor(orders).process(notification())

        assert orders.status_of('order-1') == PaymentStatus.CAPTURED
        assert len(orders.transitions) == 1

    @pytest.mark.asyncio
    async def test_capture_of_cancelled_order(self, orders):
        orders.add_order('order-1', status=PaymentStatus.CANCELLED, amount=EUR_1000)

        with pytest.raises(ProcessingError, match="cancelled"):
            await CaptureProcessor(orders).process(notification(eventCode='CAPTURE'))

    @pytest.mark.asyncio
    async def test_capture_failed(self, orders):
        orders.add_order('order-1', status=PaymentStatus.AUTHORIZED, amount=EUR_1000)

        await CaptureProcessor(orders).process(notification(eventCode='CAPTURE_FAILED'))

        assert orders.status_of('order-1') == PaymentStatus.CAPTURE_FAILED


class TestRefundProcessor:
    """Tests for RefundProcessor."""

    @pytest.mark.asyncio
    async def test_partial_then_full_refund(self, orders):
        orders.add_order('order-1', status=PaymentStatus.CAPTURED, amount=EUR_1000)
        processor = RefundProcessor(orders)

        await processor.process(notification(
            eventCode='REFUND', pspReference='R1', amount={'value': 400, 'currency': 'EUR'}
        ))
        assert orders.status_of('order-1') == PaymentStatus.PARTIALLY_REFUNDED

        await processor.process(notification(
            eventCode='REFUND', pspReference='R2', amount={'value': 600, 'currency': 'EUR'}
        ))
        assert orders.status_of('order-1') == PaymentStatus.REFUNDED

    @pytest.mark.asyncio
    async def test_refund_failed(self, orders):
        orders.add_order('order-1', status=PaymentStatus.CAPTURED, amount=EUR_1000)

        await RefundProcessor(orders).process(notification(eventCode='REFUND_FAILED', pspReference='R1'))

        assert orders.status_of('order-1') == PaymentStatus.REFUND_FAILED

    @pytest.mark.asyncio
    async def test_refund_reversed(self, orders):
        orders.add_order('order-1', status=PaymentStatus.REFUNDED, amount=EUR_1000, refunded_value=1000)

        await RefundProcessor(orders).process(notification(eventCode='REFUNDED_REVERSED', pspReference='R1'))

        assert orders.status_of('order-1') == PaymentStatus.CAPTURED


class TestCancellationProcessor:
    """Tests for CancellationProcessor."""

    @pytest.mark.asyncio
    async def test_cancel_authorised_order(self, orders):
        orders.add_order('order-1', status=PaymentStatus.AUTHORIZED, amount=EUR_1000)

        await CancellationProcessor(orders).process(notification(eventCode='CANCELLATION'))

        assert orders.status_of('order-1') == PaymentStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_or_refund_captured_order(self, orders):
        orders.add_order('order-1', status=PaymentStatus.CAPTURED, amount=EUR_1000)

        await CancellationProcessor(orders).process(notification(eventCode='CANCEL_OR_REFUND'))

        assert orders.status_of('order-1') == PaymentStatus.REFUNDED

    @pytest.mark.asyncio
    async def test_cancel_captured_order_fails(self, orders):
        orders.add_order('order-1', status=PaymentStatus.CAPTURED, amount=EUR_1000)

        with pytest.raises(ProcessingError):
            await CancellationProcessor(orders).process(notification(eventCode='CANCELLATION'))

    @pytest.mark.asyncio
    async def test_offer_closed(self, orders):
        orders.add_order('order-1', status=PaymentStatus.PENDING)

        await CancellationProcessor(orders).process(notification(eventCode='OFFER_CLOSED'))

        assert orders.status_of('order-1') == PaymentStatus.CANCELLED


class TestChargebackProcessor:
    """Tests for ChargebackProcessor."""

    @pytest.mark.asyncio
    async def test_chargeback_lifecycle(self, orders):
        orders.add_order('order-1', status=PaymentStatus.CAPTURED, amount=EUR_1000)
        processor = ChargebackProcessor(orders)

        await processor.process(notification(eventCode='NOTIFICATION_OF_CHARGEBACK', pspReference='D1'))
        assert orders.status_of('order-1') == PaymentStatus.REVIEW_NECESSARY

        await processor.process(notification(eventCode='CHARGEBACK', pspReference='D2'))
        assert orders.status_of('order-1') == PaymentStatus.CHARGEBACK

        await processor.process(notification(eventCode='CHARGEBACK_REVERSED', pspReference='D3'))
        assert orders.status_of('order-1') == PaymentStatus.CHARGEBACK_REVERSED

    @pytest.mark.asyncio
    async def test_late_dispute_notice_does_not_downgrade(self, orders):
        orders.add_order('order-1', status=PaymentStatus.CHARGEBACK, amount=EUR_1000)

        await ChargebackProcessor(orders).process(
            notification(eventCode='NOTIFICATION_OF_CHARGEBACK', pspReference='D1')
        )

        assert orders.status_of('order-1') == PaymentStatus.CHARGEBACK
