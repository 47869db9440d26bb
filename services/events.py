"""
In-process domain event dispatch.
Handlers run after the aggregate has been committed; a failing handler is logged and
does not stop the others or undo the save.
"""
from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Optional, Union

from schemas.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], Union[None, Awaitable[None]]]


class EventDispatcher:
    def __init__(self):
        self._handlers: dict[Optional[type], list[Handler]] = defaultdict(list)

    def subscribe(self, handler: Handler, event_type: Optional[type[DomainEvent]] = None) -> Handler:
        """Register a handler for one event class (and its subclasses), or for all events when None."""
        self._handlers[event_type].append(handler)
        return handler

    def handlers_for(self, event: DomainEvent) -> list[Handler]:
        handlers = list(self._handlers.get(None, []))
        for event_type, registered in self._handlers.items():
            if event_type is not None and isinstance(event, event_type):
                handlers.extend(registered)
        return handlers

    async def dispatch(self, events: list[DomainEvent]) -> int:
        """Deliver events in order; returns the number of handler failures."""
        failures = 0
        for event in events:
            for handler in self.handlers_for(event):
                try:
                    outcome = handler(event)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception:
                    failures += 1
                    logger.exception(
                        "Handler %s failed for %s %s",
                        getattr(handler, "__qualname__", repr(handler)),
                        event.event_type,
                        event.event_id,
                    )
        return failures


# Process-wide dispatcher used by UnitOfWork when none is passed in; run.py subscribes handlers
dispatcher = EventDispatcher()
