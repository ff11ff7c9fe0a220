"""Lifecycle notifications of vectorization runs."""

import asyncio
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Union

from common.core.telemetry import get_logger

logger = get_logger(__name__)


class VectorizeEvent(str, Enum):
    STARTED = "vectorize:started"
    PROGRESS = "vectorize:progress"
    COMPLETED = "vectorize:completed"
    ERROR = "vectorize:error"


EventPayload = Dict[str, Any]
Subscriber = Callable[[EventPayload], Union[None, Awaitable[None]]]


class VectorizeEventBus:
    """
    Fan-out of vectorize events to sync or async subscribers.

    A subscriber that raises is logged and skipped; it never fails the run.
    """

    def __init__(self):
        self._subscribers: Dict[VectorizeEvent, List[Subscriber]] = defaultdict(list)

    def subscribe(self, event: VectorizeEvent, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber. Returns a function that unsubscribes it."""
        self._subscribers[event].append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers[event]:
                self._subscribers[event].remove(subscriber)

        return unsubscribe

    async def emit(self, event: VectorizeEvent, payload: EventPayload) -> None:
        for subscriber in list(self._subscribers.get(event, [])):
            try:
                result = subscriber(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Subscriber for {event.value} failed: {e}")
