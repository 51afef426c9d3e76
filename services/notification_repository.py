"""
Notification repository.

Owns persistence of raw and structured notifications. The unique key
(psp_reference, event_code, merchant_reference) is the idempotency
boundary: coordination between concurrent deliveries goes through the
database only.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from config import config
from database.db import Database
from models.notification import (
    NotificationItem,
    NotificationStatus,
    RawNotificationItem,
    StoredNotification,
)

logger = logging.getLogger(__name__)


class NotificationRepository:
    """
    Stores notifications exactly once.

    ``store_if_new`` either claims a notification for processing or
    returns None. A claim on a RECEIVED record expires after
    ``claim_timeout`` seconds so that a delivery interrupted mid-processing
    can be picked up by the provider's redelivery.
    """

    def __init__(self, db: Database, claim_timeout: Optional[int] = None):
        """
        Initialize the repository.

        Args:
            db: Database instance
            claim_timeout: Seconds before a RECEIVED claim may be taken over
        """
        self.db = db
        self.claim_timeout = claim_timeout if claim_timeout is not None else config.notification.claim_timeout

    async def save_text_notifications(self, items: Sequence[RawNotificationItem]) -> int:
        """
        Store raw items as received.

        Args:
            items: Authenticated raw notification items

        Returns:
            Number of items stored
        """
        rows = [(item.psp_reference, item.event_code, item.to_json()) for item in items]
        await self.db.save_text_notifications(rows)
        return len(rows)

    async def store_if_new(self, item: RawNotificationItem) -> Optional[StoredNotification]:
        """
        Insert a notification in RECEIVED state unless it is already known.

        Args:
            item: Raw notification item

        Returns:
            The stored notification to process, or None if another delivery
            already processed or is processing it
        """
        notification = NotificationItem.from_raw(item)
        amount = notification.amount

        row = await self.db.insert_notification_if_absent(
            psp_reference=notification.psp_reference,
            event_code=notification.event_code,
            merchant_reference=notification.merchant_reference,
            original_reference=notification.original_reference,
            merchant_account_code=notification.merchant_account_code,
            success=notification.success,
            amount_value=amount.value if amount else None,
            amount_currency=amount.currency if amount else None,
            payload=item.to_json(),
            received_at=notification.received_at
        )
        if row is not None:
            stored = StoredNotification.from_row(row)
            logger.info(f"Stored notification {stored.id}: {notification.describe()}")
            return stored

        stale_before = datetime.now(timezone.utc) - timedelta(seconds=self.claim_timeout)
        row = await self.db.claim_stale_notification(
            psp_reference=notification.psp_reference,
            event_code=notification.event_code,
            merchant_reference=notification.merchant_reference,
            stale_before=stale_before
        )
        if row is not None:
            stored = StoredNotification.from_row(row)
            logger.warning(f"Reclaimed stale notification {stored.id}: {notification.describe()}")
            return stored

        logger.info(f"Duplicate notification ignored: {notification.describe()}")
        return None

    async def mark_processed(self, stored: StoredNotification, note: Optional[str] = None) -> bool:
        """Mark a notification PROCESSED, with an optional note."""
        return await self._finish(stored, NotificationStatus.PROCESSED, note)

    async def mark_failed(self, stored: StoredNotification, detail: str) -> bool:
        """Mark a notification FAILED with the captured error detail."""
        return await self._finish(stored, NotificationStatus.FAILED, detail)

    async def _finish(
        self,
        stored: StoredNotification,
        status: NotificationStatus,
        detail: Optional[str]
    ) -> bool:
        updated = await self.db.finish_notification(stored.id, status.value, detail)
        if not updated:
            logger.warning(
                f"Notification {stored.id} already terminal, not marking {status.value}"
            )
            return False

        stored.status = status
        stored.detail = detail
        stored.processed_at = datetime.now(timezone.utc)
        return True

    async def get(self, notification_id: int) -> Optional[StoredNotification]:
        """Get a stored notification by ID."""
        row = await self.db.get_notification(notification_id)
        return StoredNotification.from_row(row) if row else None

    async def find(
        self,
        psp_reference: str,
        event_code: str,
        merchant_reference: str = ''
    ) -> Optional[StoredNotification]:
        """Get a stored notification by its event key."""
        row = await self.db.get_notification_by_key(psp_reference, event_code, merchant_reference)
        return StoredNotification.from_row(row) if row else None

    async def list_by_status(self, status: NotificationStatus) -> List[StoredNotification]:
        """Get all stored notifications with the given status."""
        rows = await self.db.get_notifications_by_status(status.value)
        return [StoredNotification.from_row(row) for row in rows]
