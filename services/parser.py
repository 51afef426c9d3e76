"""
Notification body parser.

Decodes the provider's JSON batch into raw notification items.
"""

import json
import logging
from typing import Any, List

from models.notification import RawNotificationItem
from .exceptions import InvalidPayloadError

logger = logging.getLogger(__name__)

ITEMS_KEY = 'notificationItems'
ITEM_KEY = 'NotificationRequestItem'
REQUIRED_FIELDS = ('eventCode', 'pspReference')


def _is_minor_units(value: Any) -> bool:
    # bool is an int subclass
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.isascii() and value.isdigit()


class NotificationParser:
    """
    Parser for provider notification batches.

    Expected body:
    {
        "live": "false",
        "notificationItems": [
            {"NotificationRequestItem": {"eventCode": "AUTHORISATION", ...}}
        ]
    }

    A body without ``notificationItems`` is a provider ping and parses to
    an empty list; a body that is not a JSON object is rejected.
    """

    def parse(self, raw_body: bytes) -> List[RawNotificationItem]:
        """
        Parse a raw request body.

        Args:
            raw_body: Request body bytes

        Returns:
            List of raw notification items (possibly empty)

        Raises:
            InvalidPayloadError: If the body is empty or malformed
        """
        if not raw_body or not raw_body.strip():
            raise InvalidPayloadError.missing_body()

        try:
            body = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            raise InvalidPayloadError.invalid_body()

        if not isinstance(body, dict):
            raise InvalidPayloadError.invalid_body()

        entries = body.get(ITEMS_KEY)
        if not entries:
            logger.debug("Notification body without items, treating as ping")
            return []

        if not isinstance(entries, list):
            raise InvalidPayloadError(f"'{ITEMS_KEY}' must be a list")

        return [self._parse_item(index, entry) for index, entry in enumerate(entries)]

    def _parse_item(self, index: int, entry: Any) -> RawNotificationItem:
        item = entry.get(ITEM_KEY) if isinstance(entry, dict) else None
        if not isinstance(item, dict):
            raise InvalidPayloadError(f"Item {index} has no '{ITEM_KEY}' object")

        for name in REQUIRED_FIELDS:
            if not item.get(name):
                raise InvalidPayloadError(f"Item {index} is missing '{name}'")

        amount = item.get('amount')
        if amount is not None:
            if not isinstance(amount, dict) or 'value' not in amount or 'currency' not in amount:
                raise InvalidPayloadError(f"Item {index} has a malformed amount")
            if not _is_minor_units(amount['value']):
                raise InvalidPayloadError(f"Item {index} has a non-integer amount value")

        additional_data = item.get('additionalData')
        if additional_data is not None and not isinstance(additional_data, dict):
            raise InvalidPayloadError(f"Item {index} has a malformed additionalData")

        return RawNotificationItem(payload=item)
