"""
Notification Dispatcher.

Routes stored notifications to the processors registered for their event
type and records the outcome.
"""

import logging
from typing import Dict, Iterable, List, Optional

from models.notification import (
    EventCode,
    NotificationStatus,
    ProcessingResult,
    StoredNotification,
)
from .exceptions import ProcessingError
from .notification_repository import NotificationRepository
from .processors import NotificationProcessor

logger = logging.getLogger(__name__)

NO_HANDLER_NOTE = "no handler"


class ProcessorRegistry:
    """
    Explicit mapping of event types to processors.

    Processors are resolved against every known event type when registered,
    so lookups at dispatch time are plain dictionary reads.
    """

    def __init__(self, processors: Optional[Iterable[NotificationProcessor]] = None):
        self._processors: List[NotificationProcessor] = []
        self._by_event: Dict[EventCode, List[NotificationProcessor]] = {}
        for processor in processors or ():
            self.register(processor)

    def register(self, processor: NotificationProcessor) -> None:
        """Register a processor after those already registered."""
        self._processors.append(processor)
        for event_type in EventCode:
            if processor.handles(event_type):
                self._by_event.setdefault(event_type, []).append(processor)
        logger.debug(f"Registered processor {processor!r}")

    def processors_for(self, event_type: Optional[EventCode]) -> List[NotificationProcessor]:
        """Processors handling an event type, in registration order."""
        if event_type is None:
            return []
        return list(self._by_event.get(event_type, ()))

    @property
    def processors(self) -> List[NotificationProcessor]:
        return list(self._processors)

    def __len__(self) -> int:
        return len(self._processors)


class NotificationDispatcher:
    """
    Dispatches one stored notification at a time.

    State machine per notification: RECEIVED -> PROCESSED | FAILED. A failing
    processor fails only its own notification; FAILED records are left for
    the provider's redelivery and never retried here.
    """

    def __init__(self, repository: NotificationRepository, registry: ProcessorRegistry):
        """
        Initialize the dispatcher.

        Args:
            repository: Repository used to record outcomes
            registry: Processor registry
        """
        self.repository = repository
        self.registry = registry

    async def dispatch(self, stored: StoredNotification) -> ProcessingResult:
        """
        Run the processors for a stored notification.

        Args:
            stored: Notification in RECEIVED state

        Returns:
            ProcessingResult describing the recorded outcome
        """
        item = stored.item
        processors = self.registry.processors_for(item.event_type)

        if not processors:
            logger.info(f"No processor for {item.event_code}, notification {stored.id} marked processed")
            return await self._record(stored, NotificationStatus.PROCESSED, [], NO_HANDLER_NOTE)

        invoked = []
        for processor in processors:
            invoked.append(processor.name)
            try:
                await processor.process(item)
            except ProcessingError as e:
                logger.warning(f"Notification {stored.id} ({item.describe()}) failed: {e}")
                return await self._record(stored, NotificationStatus.FAILED, invoked, str(e))
            except Exception as e:
                logger.error(
                    f"Unexpected error in {processor.name} for notification {stored.id}: {e}",
                    exc_info=True
                )
                return await self._record(
                    stored, NotificationStatus.FAILED, invoked, f"{type(e).__name__}: {e}"
                )

        logger.info(f"Notification {stored.id} ({item.describe()}) processed by {', '.join(invoked)}")
        return await self._record(stored, NotificationStatus.PROCESSED, invoked, None)

    async def _record(
        self,
        stored: StoredNotification,
        status: NotificationStatus,
        invoked: List[str],
        detail: Optional[str]
    ) -> ProcessingResult:
        """
        Persist the outcome and build the result from what was stored.

        If another delivery already finished the notification, the stored
        status wins and is reported instead.
        """
        if status == NotificationStatus.FAILED:
            recorded = await self.repository.mark_failed(stored, detail)
        else:
            recorded = await self.repository.mark_processed(stored, note=detail)

        if not recorded:
            current = await self.repository.get(stored.id)
            if current is not None:
                logger.warning(
                    f"Notification {stored.id} already {current.status.value}, "
                    f"{status.value} outcome superseded"
                )
                stored.status = current.status
                stored.detail = current.detail
                stored.processed_at = current.processed_at
                status, detail = current.status, current.detail

        return ProcessingResult(
            notification_id=stored.id,
            status=status,
            processors=invoked,
            detail=detail
        )
