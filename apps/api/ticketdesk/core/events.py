from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out. ``"ticket.*"`` subscribes to every ``ticket.`` event."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, pattern: str, handler: EventHandler) -> Callable[[], None]:
        self._subscribers[pattern].append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(pattern, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def _handlers_for(self, event_name: str) -> list[EventHandler]:
        handlers = list(self._subscribers.get(event_name, []))
        namespace, _, _ = event_name.rpartition(".")
        while namespace:
            handlers.extend(self._subscribers.get(f"{namespace}.*", []))
            namespace, _, _ = namespace.rpartition(".")
        return handlers

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        event = InternalEvent(name=event_name, payload=payload)
        for handler in self._handlers_for(event_name):
            handler(event)

    def clear(self) -> None:
        self._subscribers.clear()


event_bus = InProcessEventBus()
