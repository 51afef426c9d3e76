"""
Shared fixtures for notification service tests.
"""

import base64
import hashlib
import hmac
import json
from dataclasses import replace
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from database.db import Database
from models.credentials import AuthorizationCredentials
from models.notification import Amount, RawNotificationItem
from models.order import OrderPaymentState, PaymentStatus, PaymentTransition
from services.credential_store import CredentialStore
from services.dispatcher import NotificationDispatcher, ProcessorRegistry
from services.exceptions import OrderServiceError
from services.notification_repository import NotificationRepository
from services.processors import default_processors

HMAC_KEY = '44782DEF547AAA06C910C43932B1EB0C71FC68D9D0C057550C48EC2ACF6BA056'
USERNAME = 'notify-user'
PASSWORD = 'notify-secret'
MERCHANT_ACCOUNT = 'ShopECOM'


class FakeOrderGateway:
    """In-memory order subsystem recording every transition it applies."""

    def __init__(self):
        self.states: Dict[str, OrderPaymentState] = {}
        self.transitions: List[PaymentTransition] = []
        self.fail_on = set()

    def add_order(
        self,
        merchant_reference: str,
        status: PaymentStatus = PaymentStatus.OPEN,
        amount: Optional[Amount] = None,
        **kwargs
    ) -> OrderPaymentState:
        state = OrderPaymentState(
            merchant_reference=merchant_reference,
            status=status,
            amount=amount,
            **kwargs
        )
        self.states[merchant_reference] = state
        return state

    async def get_payment_state(self, merchant_reference: str) -> Optional[OrderPaymentState]:
        return self.states.get(merchant_reference)

    async def apply_transition(self, transition: PaymentTransition) -> None:
        if transition.merchant_reference in self.fail_on:
            raise OrderServiceError(f"Order service rejected {transition.merchant_reference}", status=500)

        state = self.states[transition.merchant_reference]
        refunded = state.refunded_value
        if transition.event_code == 'REFUND' and transition.success and transition.amount:
            refunded += transition.amount.value

        self.states[transition.merchant_reference] = replace(
            state,
            status=transition.status,
            refunded_value=refunded,
            applied_events=state.applied_events | {transition.event_key}
        )
        self.transitions.append(transition)

    def status_of(self, merchant_reference: str) -> PaymentStatus:
        return self.states[merchant_reference].status


def make_payload(**overrides: Any) -> Dict[str, Any]:
    """Build a NotificationRequestItem payload."""
    payload = {
        'eventCode': 'AUTHORISATION',
        'pspReference': '8515131751004933',
        'merchantReference': 'order-1',
        'merchantAccountCode': MERCHANT_ACCOUNT,
        'success': 'true',
        'amount': {'value': 1000, 'currency': 'EUR'},
        'eventDate': '2026-10-17T10:00:00+02:00',
    }
    payload.update(overrides)
    return {k: v for k, v in payload.items() if v is not None}


def make_item(**overrides: Any) -> RawNotificationItem:
    return RawNotificationItem(payload=make_payload(**overrides))


def sign_payload(payload: Dict[str, Any], hmac_key: str = HMAC_KEY) -> Dict[str, Any]:
    """Add the provider HMAC signature to a payload."""
    amount = payload.get('amount') or {}
    signing = ':'.join(str(p) for p in [
        payload.get('pspReference', ''),
        payload.get('originalReference', ''),
        payload.get('merchantAccountCode', ''),
        payload.get('merchantReference', ''),
        amount.get('value', ''),
        amount.get('currency', ''),
        payload.get('eventCode', ''),
        payload.get('success', ''),
    ])
    signature = base64.b64encode(
        hmac.new(bytes.fromhex(hmac_key), signing.encode('utf-8'), hashlib.sha256).digest()
    ).decode('ascii')
    signed = dict(payload)
    signed['additionalData'] = dict(payload.get('additionalData') or {}, hmacSignature=signature)
    return signed


def make_body(*payloads: Dict[str, Any]) -> bytes:
    return json.dumps({
        'live': 'false',
        'notificationItems': [{'NotificationRequestItem': p} for p in payloads]
    }).encode('utf-8')


@pytest_asyncio.fixture
async def db():
    """In-memory SQLite database with the service schema."""
    database = Database('sqlite:///:memory:')
    await database.connect()
    await database.init_schema()
    yield database
    await database.disconnect()


@pytest.fixture
def repository(db):
    return NotificationRepository(db, claim_timeout=300)


@pytest.fixture
def orders():
    return FakeOrderGateway()


@pytest.fixture
def registry(orders):
    return ProcessorRegistry(default_processors(orders))


@pytest.fixture
def dispatcher(repository, registry):
    return NotificationDispatcher(repository, registry)


@pytest.fixture
def basic_credentials():
    return AuthorizationCredentials(
        merchant_account=MERCHANT_ACCOUNT,
        username=USERNAME,
        password=PASSWORD
    )


@pytest.fixture
def hmac_credentials():
    return AuthorizationCredentials(
        merchant_account=MERCHANT_ACCOUNT,
        username=USERNAME,
        password=PASSWORD,
        hmac_key=HMAC_KEY
    )


@pytest.fixture
def credential_store(basic_credentials):
    return CredentialStore(default=basic_credentials)
