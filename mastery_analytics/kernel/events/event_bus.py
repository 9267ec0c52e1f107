"""
In-process typed event channel.

Publishers (the recalculator) emit pydantic events; dashboard-facing
consumers subscribe by event class. A handler registered for a base class
receives every subclass event. Handler failures are logged and isolated from
the publisher and from the other handlers.
"""

import inspect
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Type, Union

from mastery_analytics.kernel.events.event_types import BaseEvent
from mastery_analytics.logging_config import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[BaseEvent], Union[None, Awaitable[None]]]


class EventBus:
    """
    Typed publish/subscribe channel.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(SnapshotRecorded, on_snapshot)
        await bus.publish(SnapshotRecorded(...))
        unsubscribe()
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[BaseEvent], List[EventHandler]] = defaultdict(list)

    def subscribe(
        self,
        event_type: Type[BaseEvent],
        handler: EventHandler,
    ) -> Callable[[], None]:
        """Register ``handler`` for ``event_type``; returns an unsubscribe callable."""
        self._handlers[event_type].append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: Type[BaseEvent], handler: EventHandler) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event_type: Type[BaseEvent]) -> List[EventHandler]:
        """Handlers that receive ``event_type``, most specific class first."""
        matched: List[EventHandler] = []
        for cls in event_type.__mro__:
            matched.extend(self._handlers.get(cls, ()))
        return matched

    async def publish(self, event: BaseEvent) -> int:
        """
        Deliver ``event`` to its subscribers in registration order.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        for handler in self.handlers_for(type(event)):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception(
                    "Event handler failed",
                    extra={"event": type(event).__name__, "handler": getattr(handler, "__name__", repr(handler))},
                )
        return delivered
