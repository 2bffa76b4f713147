"""Synchronous in-process bus for the storage layer's domain events."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Iterable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Handler = Callable[[BaseModel], None]


class EventBus:
    """Publish/subscribe bus keyed on the exact event class.

    Handlers run synchronously in subscription order; a handler may publish
    further events, which are delivered before ``publish`` returns.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[BaseModel], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[BaseModel], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: BaseModel) -> int:
        """Deliver *event*; returns how many handlers received it."""
        handlers = list(self._handlers.get(type(event), ()))
        logger.debug("%s -> %d handler(s)", type(event).__name__, len(handlers))
        for handler in handlers:
            handler(event)
        return len(handlers)

    def publish_all(self, events: Iterable[BaseModel]) -> None:
        for event in events:
            self.publish(event)
