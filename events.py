"""
Publish/subscribe channel for Agent Planner.

Handlers are called synchronously, in registration order. subscribe()
returns a Subscription handle; unsubscribing removes that registration by
its token, so registering the same callable twice gives two independent
subscriptions.

Usage:
    bus = EventBus()
    sub = bus.subscribe(lambda event: print(event.type))
    bus.emit(event)
    sub.unsubscribe()
"""

import itertools
import logging
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")


class Subscription:
    """Handle returned by EventBus.subscribe(). Call it (or .unsubscribe()) to detach."""

    def __init__(self, bus: "EventBus", token: int):
        self._bus = bus
        self.token = token

    @property
    def active(self) -> bool:
        return self._bus.is_subscribed(self.token)

    def unsubscribe(self) -> None:
        self._bus._remove(self.token)

    def __call__(self) -> None:
        self.unsubscribe()


class EventBus(Generic[E]):
    """In-process event channel."""

    def __init__(self, name: str = "events"):
        self.name = name
        self._handlers: list[tuple[int, Callable[[E], None]]] = []
        self._tokens = itertools.count()

    def subscribe(self, handler: Callable[[E], None]) -> Subscription:
        token = next(self._tokens)
        self._handlers.append((token, handler))
        return Subscription(self, token)

    def is_subscribed(self, token: int) -> bool:
        return any(t == token for t, _ in self._handlers)

    def _remove(self, token: int) -> None:
        # Unknown tokens are ignored: unsubscribing twice is harmless
        self._handlers = [(t, h) for t, h in self._handlers if t != token]

    def emit(self, event: E) -> None:
        """
        Deliver an event to every current handler.

        A failing handler is logged and does not stop delivery to the
        handlers registered after it.
        """
        for token, handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception(f"[{self.name}] handler {token} raised")

    def clear(self) -> None:
        self._handlers = []

    def __len__(self) -> int:
        return len(self._handlers)
