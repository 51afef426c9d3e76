"""
Notification Handler.

Request-scoped pipeline for one webhook batch: parse, authenticate, run
receive hooks, store, dispatch and run processed hooks.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from models.notification import BatchResult, ProcessingResult, RawNotificationItem
from .authorization import AuthorizationValidator
from .dispatcher import NotificationDispatcher
from .hooks import NotificationHooks
from .notification_repository import NotificationRepository
from .parser import NotificationParser

logger = logging.getLogger(__name__)


class NotificationHandler:
    """
    Handles a single notification batch.

    ``receive`` raises InvalidPayloadError / AuthorizationError and never
    stores anything for rejected batches. ``process`` never raises for
    per-item problems; they are collected in the BatchResult.
    """

    def __init__(
        self,
        parser: NotificationParser,
        validator: AuthorizationValidator,
        repository: NotificationRepository,
        dispatcher: NotificationDispatcher,
        hooks: Optional[NotificationHooks] = None,
        concurrency: int = 1
    ):
        """
        Initialize the handler.

        Args:
            parser: Body parser
            validator: Authorization validator
            repository: Notification repository
            dispatcher: Notification dispatcher
            hooks: Receive/processed hooks
            concurrency: Number of orders processed at the same time
        """
        self.parser = parser
        self.validator = validator
        self.repository = repository
        self.dispatcher = dispatcher
        self.hooks = hooks or NotificationHooks()
        self.concurrency = max(1, concurrency)

    async def receive(
        self,
        raw_body: bytes,
        authorization_header: Optional[str] = None
    ) -> List[RawNotificationItem]:
        """
        Accept a raw batch.

        Args:
            raw_body: Request body
            authorization_header: Raw ``Authorization`` header

        Returns:
            Authenticated items to process
        """
        items = self.parser.parse(raw_body)
        await self.validator.validate(items, authorization_header)

        items = self.hooks.run_receive(items)
        if items:
            await self.repository.save_text_notifications(items)

        logger.info(f"Received notification batch with {len(items)} item(s)")
        return items

    async def process(self, items: Sequence[RawNotificationItem]) -> BatchResult:
        """
        Store and dispatch every item of a batch.

        Items of one order run sequentially in delivery order; different
        orders run concurrently, at most ``concurrency`` at a time.

        Args:
            items: Items returned by ``receive``

        Returns:
            BatchResult for the batch
        """
        batch = BatchResult()
        if not items:
            return batch

        groups: Dict[str, List[RawNotificationItem]] = OrderedDict()
        for item in items:
            groups.setdefault(item.merchant_reference, []).append(item)

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run_group(group: List[RawNotificationItem]) -> None:
            async with semaphore:
                for item in group:
                    await self._process_item(item, batch)

        await asyncio.gather(*(run_group(group) for group in groups.values()))

        logger.info(f"Notification batch done: {batch.summary()}")
        return batch

    async def _process_item(self, item: RawNotificationItem, batch: BatchResult) -> None:
        try:
            stored = await self.repository.store_if_new(item)
            if stored is None:
                batch.duplicates += 1
                return

            result: ProcessingResult = await self.dispatcher.dispatch(stored)
            batch.results.append(result)
            await self.hooks.run_processed(stored, result)
        except Exception as e:
            logger.error(
                f"Error handling notification {item.event_code} {item.psp_reference}: {e}",
                exc_info=True
            )
            batch.errors.append(f"{item.event_code}:{item.psp_reference}: {e}")
