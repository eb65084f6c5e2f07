"""
In-process event bus

After a desk action commits and its read views are current, its events
are published here. Consumers subscribe by event type (or to everything
with "*"). Publishing is fire-and-forget: a failing
subscriber is logged and never undoes or fails the committed action.

Fun fact: Offices used to pin a carbon copy of every work order to the
notice board so the accounts section would notice. This is that notice board.
"""

from collections import defaultdict
from typing import Callable

from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Event], None]

ALL_EVENTS = "*"


class InProcessBus:
    """Synchronous in-process publish/subscribe for committed events"""

    def __init__(self) -> None:
        self._event_handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Register a handler for an event type (several handlers per type allowed)

        Args:
            event_type: Event type such as "ContractAwarded", or "*" for all events
            handler: Callable receiving the committed event
        """
        self._event_handlers[event_type].append(handler)
        logger.debug(
            "Event handler registered",
            event_type=event_type,
            total_handlers=len(self._event_handlers[event_type]),
        )

    def publish_event(self, event: Event) -> None:
        """
        Deliver an event to its subscribers in registration order

        Type-specific handlers run before wildcard handlers. A handler
        failure is logged with its stack trace and the remaining handlers
        still run.
        """
        handlers = self._event_handlers.get(event.event_type, []) + self._event_handlers.get(
            ALL_EVENTS, []
        )
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    stream_id=event.stream_id,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                    exc_info=True,
                )

    def publish_events(self, events: list[Event]) -> None:
        for event in events:
            self.publish_event(event)

    def get_event_types(self) -> list[str]:
        """Event types with at least one subscriber"""
        return list(self._event_handlers.keys())

    def clear(self) -> None:
        """Remove all subscribers (useful for testing)"""
        self._event_handlers.clear()
