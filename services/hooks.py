"""
Notification hooks.

Extension points around the pipeline, invoked in registration order:
receive hooks may filter or rewrite a batch before it is stored;
processed hooks observe each dispatch result.
"""

import logging
from typing import Iterable, List, Optional, Protocol, Sequence

from models.notification import ProcessingResult, RawNotificationItem, StoredNotification

logger = logging.getLogger(__name__)


class ReceiveHook(Protocol):
    """Runs on an authenticated batch before persistence."""

    def on_receive(self, items: List[RawNotificationItem]) -> List[RawNotificationItem]:
        ...


class ProcessedHook(Protocol):
    """Runs after each notification has been dispatched."""

    async def after_dispatch(self, stored: StoredNotification, result: ProcessingResult) -> None:
        ...


class NotificationHooks:
    """Ordered receive and processed hook lists."""

    def __init__(
        self,
        receive_hooks: Optional[Iterable[ReceiveHook]] = None,
        processed_hooks: Optional[Iterable[ProcessedHook]] = None
    ):
        self.receive_hooks: List[ReceiveHook] = list(receive_hooks or ())
        self.processed_hooks: List[ProcessedHook] = list(processed_hooks or ())

    def add_receive_hook(self, hook: ReceiveHook) -> None:
        self.receive_hooks.append(hook)

    def add_processed_hook(self, hook: ProcessedHook) -> None:
        self.processed_hooks.append(hook)

    def run_receive(self, items: Sequence[RawNotificationItem]) -> List[RawNotificationItem]:
        """
        Pass a batch through every receive hook.

        Errors propagate: a receive hook that fails rejects the batch.
        """
        result = list(items)
        for hook in self.receive_hooks:
            result = list(hook.on_receive(result))
        return result

    async def run_processed(self, stored: StoredNotification, result: ProcessingResult) -> None:
        """Notify every processed hook; failures are logged, never raised."""
        for hook in self.processed_hooks:
            try:
                await hook.after_dispatch(stored, result)
            except Exception as e:
                logger.error(
                    f"Processed hook {type(hook).__name__} failed for notification {stored.id}: {e}",
                    exc_info=True
                )


class IgnoreEventCodesHook:
    """Drops items whose event code is in a configured set."""

    def __init__(self, event_codes: Iterable[str]):
        self.event_codes = frozenset(code.strip().upper() for code in event_codes if code.strip())

    def on_receive(self, items: List[RawNotificationItem]) -> List[RawNotificationItem]:
        kept = [item for item in items if item.event_code.upper() not in self.event_codes]
        dropped = len(items) - len(kept)
        if dropped:
            logger.info(f"Ignored {dropped} notification(s) with codes {sorted(self.event_codes)}")
        return kept
