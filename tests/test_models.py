"""
Unit tests for notification, order and credential models.

Run with: pytest tests/test_models.py -v
"""

import pytest

from models.credentials import AuthorizationCredentials
from models.notification import (
    Amount,
    BatchResult,
    EventCode,
    NotificationItem,
    NotificationStatus,
    ProcessingResult,
    StoredNotification,
)
from models.order import OrderPaymentState, PaymentStatus, PaymentTransition

from conftest import make_item


class TestNotificationItem:
    """Tests for NotificationItem."""

    def test_from_raw(self):
        """Test structured conversion of a raw item."""
        item = NotificationItem.from_raw(make_item(originalReference='881'))

        assert item.event_code == 'AUTHORISATION'
        assert item.event_type == EventCode.AUTHORISATION
        assert item.psp_reference == '8515131751004933'
        assert item.merchant_reference == 'order-1'
        assert item.original_reference == '881'
        assert item.success is True
        assert item.amount == Amount(value=1000, currency='EUR')
        assert item.received_at.tzinfo is not None

    def test_success_flag_parsing(self):
        """Test the provider's string booleans."""
        assert NotificationItem.from_raw(make_item(success='false')).success is False
        assert NotificationItem.from_raw(make_item(success='TRUE')).success is True
        assert NotificationItem.from_raw(make_item(success=True)).success is True

    def test_unknown_event_code(self):
        """Unknown codes are kept verbatim without an event type."""
        item = NotificationItem.from_raw(make_item(eventCode='DISPUTE_DEFENSE_PERIOD_ENDED'))

        assert item.event_code == 'DISPUTE_DEFENSE_PERIOD_ENDED'
        assert item.event_type is None

    def test_event_key(self):
        item = NotificationItem.from_raw(make_item(eventCode='CAPTURE', pspReference='X1'))
        assert item.event_key == 'CAPTURE:X1'

    def test_missing_amount(self):
        assert NotificationItem.from_raw(make_item(amount=None)).amount is None

    def test_currency_is_uppercased(self):
        amount = Amount.from_dict({'value': '250', 'currency': 'usd'})
        assert amount == Amount(value=250, currency='USD')


class TestStoredNotification:
    """Tests for StoredNotification row mapping."""

    def test_from_sqlite_row(self):
        row = {
            'id': 7,
            'psp_reference': 'X1',
            'event_code': 'REFUND',
            'merchant_reference': 'order-9',
            'original_reference': 'X0',
            'merchant_account_code': 'ShopECOM',
            'success': 1,
            'amount_value': 500,
            'amount_currency': 'EUR',
            'payload': '{"eventCode":"REFUND"}',
            'status': 'failed',
            'detail': 'Order order-9 not found',
            'received_at': '2026-10-17T08:00:00+00:00',
            'claimed_at': '2026-10-17T08:00:00+00:00',
            'processed_at': None,
        }

        stored = StoredNotification.from_row(row)

        assert stored.id == 7
        assert stored.status == NotificationStatus.FAILED
        assert stored.item.event_type == EventCode.REFUND
        assert stored.item.success is True
        assert stored.item.amount == Amount(500, 'EUR')
        assert stored.item.payload == {'eventCode': 'REFUND'}
        assert stored.item.received_at.year == 2026
        assert stored.to_dict()['status'] == 'failed'

    def test_terminal_statuses(self):
        assert not NotificationStatus.RECEIVED.is_terminal
        assert NotificationStatus.PROCESSED.is_terminal
        assert NotificationStatus.FAILED.is_terminal


class TestBatchResult:
    """Tests for batch aggregation."""

    def test_counts(self):
        batch = BatchResult(
            results=[
                ProcessingResult(1, NotificationStatus.PROCESSED),
                ProcessingResult(2, NotificationStatus.FAILED, detail='boom'),
                ProcessingResult(3, NotificationStatus.PROCESSED),
            ],
            duplicates=2
        )

        assert batch.processed == 2
        assert batch.failed == 1
        assert 'duplicates=2' in batch.summary()


class TestOrderModels:
    """Tests for order payment models."""

    def test_state_from_dict(self):
        state = OrderPaymentState.from_dict({
            'merchant_reference': 'order-1',
            'status': 'captured',
            'amount': {'value': 1000, 'currency': 'EUR'},
            'refunded_value': 200,
            'applied_events': ['CAPTURE:X2'],
        })

        assert state.status == PaymentStatus.CAPTURED
        assert state.amount == Amount(1000, 'EUR')
        assert state.has_applied('CAPTURE:X2')
        assert not state.has_applied('REFUND:X3')

    def test_transition_to_dict(self):
        transition = PaymentTransition(
            merchant_reference='order-1',
            psp_reference='X1',
            event_code='AUTHORISATION',
            status=PaymentStatus.AUTHORIZED,
            amount=Amount(1000, 'EUR')
        )

        data = transition.to_dict()
        assert data['status'] == 'authorized'
        assert data['event_key'] == 'AUTHORISATION:X1'
        assert data['amount'] == {'value': 1000, 'currency': 'EUR'}


class TestAuthorizationCredentials:
    """Tests for credential model."""

    def test_public_dict_masks_secrets(self):
        credentials = AuthorizationCredentials(
            merchant_account='ShopECOM',
            username='user',
            password='secret',
            hmac_key='abcd'
        )

        public = credentials.to_public_dict()
        assert public['password'] == '***'
        assert public['hmac_key'] == '***'
        assert public['username'] == 'user'

    def test_invalid_hmac_key(self):
        with pytest.raises(ValueError, match="hex"):
            AuthorizationCredentials(hmac_key='not-hex')

    def test_account_matching(self):
        assert AuthorizationCredentials(username='u', password='p').matches_account('Any')
        scoped = AuthorizationCredentials(merchant_account='ShopECOM', username='u', password='p')
        assert scoped.matches_account('ShopECOM')
        assert not scoped.matches_account('Other')

    def test_is_configured(self):
        assert not AuthorizationCredentials().is_configured
        assert not AuthorizationCredentials(username='u').is_configured
        assert AuthorizationCredentials(hmac_key='ab').is_configured
