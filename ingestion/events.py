"""
ingestion/events.py - Publish/subscribe registry for reader events.

Handlers are plain callables invoked synchronously, in subscription order,
from the reader task. A handler that raises is logged and skipped; it does
not stop the other handlers or the reader.
"""

import itertools
from dataclasses import dataclass
from typing import Any, Callable

from core.constants import EventKind
from core.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], None]

_subscription_ids = itertools.count(1)


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe(); pass it to unsubscribe()."""
    kind: EventKind
    handler: Handler
    id: int


class EventBus:
    """Typed callback registry, one list of handlers per EventKind."""

    def __init__(self):
        self._handlers: dict[EventKind, list[Subscription]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind | str, handler: Handler) -> Subscription:
        kind = EventKind(kind)
        subscription = Subscription(kind=kind, handler=handler, id=next(_subscription_ids))
        self._handlers[kind].append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove one subscription. Returns False if it was not registered."""
        handlers = self._handlers[subscription.kind]
        if subscription in handlers:
            handlers.remove(subscription)
            return True
        return False

    def clear(self) -> None:
        """Detach every handler."""
        for handlers in self._handlers.values():
            handlers.clear()

    def listener_count(self, kind: EventKind | str) -> int:
        return len(self._handlers[EventKind(kind)])

    def emit(self, kind: EventKind, payload: Any) -> int:
        """
        Deliver payload to every handler of kind.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        # Copy: handlers may unsubscribe while being called
        for subscription in list(self._handlers[kind]):
            try:
                subscription.handler(payload)
                delivered += 1
            except Exception:
                logger.exception(
                    f"Event handler failed for {kind.value}",
                    extra={"context": {"event": kind.value, "subscription": subscription.id}},
                )
        return delivered
