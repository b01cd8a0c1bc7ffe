"""Dataset-changed notification bus.

Hey future me - this is how the rest of the app hears "the stored tag data changed
underneath you, reload it". The migration runner publishes after it persisted a new
migration state; UI stores / caches subscribe.

Delivery is fire-and-forget: a broken subscriber gets LOGGED, never raised. A
migration that finished successfully must not look failed because some observer
threw while re-rendering.

Usage:
    bus = DatasetEventBus()
    unsubscribe = bus.subscribe(lambda event: print(event.reason))
    await bus.publish(DatasetChangedEvent(reason="migrations"))
    unsubscribe()
"""

import asyncio
import inspect
import logging
from collections.abc import Callable

from tagkeeper.domain.ports import DatasetChangedEvent, DatasetChangedHandler

logger = logging.getLogger(__name__)


class DatasetEventBus:
    """In-process observer list for DatasetChangedEvent."""

    def __init__(self) -> None:
        self._handlers: list[DatasetChangedHandler] = []

    def subscribe(self, handler: DatasetChangedHandler) -> Callable[[], None]:
        """Register a handler (sync or async).

        Returns:
            Callable that removes the handler again (safe to call twice)
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, event: DatasetChangedEvent) -> None:
        """Deliver event to all handlers; async handlers run in parallel."""
        # Snapshot - handlers may unsubscribe themselves while we iterate
        handlers = list(self._handlers)
        pending = []

        for handler in handlers:
            try:
                result = handler(event)
            except Exception as e:
                logger.warning(f"[EVENTS] Handler {handler!r} failed for '{event.reason}': {e}")
                continue
            if inspect.isawaitable(result):
                pending.append(result)

        if not pending:
            return

        results = await asyncio.gather(*pending, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"[EVENTS] Async handler failed for '{event.reason}': {result}")
