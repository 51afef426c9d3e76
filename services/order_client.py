"""
Order Service Client.

Talks to the order subsystem that owns payment state. Processors only
depend on the OrderPaymentGateway protocol; OrderServiceClient is the
HTTP implementation.
"""

import asyncio
import logging
from urllib.parse import quote
from typing import Any, Dict, Optional, Protocol, Tuple

import aiohttp

from config import config
from models.order import OrderPaymentState, PaymentTransition
from .exceptions import OrderServiceError

logger = logging.getLogger(__name__)


class OrderPaymentGateway(Protocol):
    """Operations the notification processors need from the order subsystem."""

    async def get_payment_state(self, merchant_reference: str) -> Optional[OrderPaymentState]:
        ...

    async def apply_transition(self, transition: PaymentTransition) -> None:
        ...


class OrderServiceClient:
    """
    HTTP client for the order subsystem.

    Endpoints:
    - GET  /orders/{merchant_reference}/payment - Current payment state
    - POST /orders/{merchant_reference}/payment/transitions - Request a transition

    Every call is bounded by the configured timeout; failures surface as
    OrderServiceError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        api_key: Optional[str] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Order service base URL
            timeout: Request timeout in seconds
            api_key: Optional bearer token
        """
        self.base_url = (base_url or config.order_service.url).rstrip('/')
        self.timeout = timeout or config.order_service.timeout
        self.api_key = api_key if api_key is not None else config.order_service.api_key
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Open the HTTP session."""
        logger.info(f"Starting order service client for {self.base_url}")
        headers = {'Accept': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'

        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers=headers
        )

    async def stop(self) -> None:
        """Close the HTTP session."""
        logger.info("Stopping order service client...")
        if self._session:
            await self._session.close()
            self._session = None

    async def get_payment_state(self, merchant_reference: str) -> Optional[OrderPaymentState]:
        """
        Fetch the payment state of an order.

        Args:
            merchant_reference: Merchant's order identifier

        Returns:
            Payment state, or None if the order does not exist
        """
        status, data = await self._request('GET', self._payment_url(merchant_reference))
        if status == 404:
            return None
        if not 200 <= status < 300:
            raise OrderServiceError(
                f"Order service returned {status} for order {merchant_reference}",
                status=status
            )
        try:
            return OrderPaymentState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise OrderServiceError(f"Malformed payment state for order {merchant_reference}: {e}")

    async def apply_transition(self, transition: PaymentTransition) -> None:
        """
        Request a payment state transition.

        Args:
            transition: Transition to apply
        """
        url = f"{self._payment_url(transition.merchant_reference)}/transitions"
        status, data = await self._request('POST', url, json=transition.to_dict())

        if status == 404:
            raise OrderServiceError(
                f"Order {transition.merchant_reference} not found", status=status
            )
        if not 200 <= status < 300:
            message = data.get('message') if isinstance(data, dict) else None
            raise OrderServiceError(
                f"Transition to {transition.status.value} rejected for order "
                f"{transition.merchant_reference}: {message or status}",
                status=status
            )

        logger.info(
            f"Order {transition.merchant_reference} moved to {transition.status.value} "
            f"({transition.event_key})"
        )

    def _payment_url(self, merchant_reference: str) -> str:
        return f"{self.base_url}/orders/{quote(merchant_reference, safe='')}/payment"

    async def _request(
        self,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None
    ) -> Tuple[int, Any]:
        """
        Perform a request against the order service.

        Returns:
            Tuple of (status, decoded JSON body or None)
        """
        if not self._session:
            raise OrderServiceError("Order service client not started")

        try:
            async with self._session.request(method, url, json=json) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None
                return response.status, data

        except aiohttp.ClientError as e:
            logger.error(f"Network error calling order service: {e}")
            raise OrderServiceError(f"Order service unreachable: {e}")
        except asyncio.TimeoutError:
            logger.error(f"Timeout calling order service at {url}")
            raise OrderServiceError("Order service request timeout")
