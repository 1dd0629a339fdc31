"""Publish/subscribe event bus.

Events are declared once with a Pydantic model for their properties and
published on a ``Bus`` instance. Every subscriber registered at publish time
receives the payload; nothing is replayed to late subscribers and publishing
never waits on a slow listener beyond its own callback.

Example:
    class DiagnosticsProps(BaseModel):
        uri: str
        count: int

    Diagnostics = BusEvent.define("lsp.diagnostics", DiagnosticsProps)

    bus = Bus()
    unsubscribe = bus.subscribe(Diagnostics, lambda payload: print(payload.properties))
    await bus.publish(Diagnostics, DiagnosticsProps(uri="file:///a.py", count=2))
    unsubscribe()
"""

import traceback
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel

T = TypeVar('T', bound=BaseModel)

# Created lazily: util.log imports core.global_paths, which loads this package.
_log: Optional[Any] = None


def _get_log():
    global _log
    if _log is None:
        from ..util.log import Log
        _log = Log.create({"service": "bus"})
    return _log


class BusEvent(Generic[T]):
    """Event definition: a type string plus the model of its properties."""

    def __init__(self, event_type: str, properties_type: type[T]):
        self.type = event_type
        self.properties_type = properties_type

    @staticmethod
    def define(event_type: str, properties_type: type[T]) -> 'BusEvent[T]':
        """Define a new event type."""
        return BusEvent(event_type, properties_type)


class EventPayload(BaseModel):
    """Payload delivered to subscribers."""
    type: str
    properties: Dict[str, Any]


SubscriptionCallback = Callable[[EventPayload], Union[None, Awaitable[None]]]


def _noop() -> None:
    pass


class Bus:
    """Event bus with per-event and wildcard subscriptions.

    A closed bus drops publishes and ignores new subscriptions.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[SubscriptionCallback]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, event: BusEvent[T], properties: Union[T, Dict[str, Any]]) -> None:
        """Deliver an event to its subscribers and to wildcard subscribers.

        A failing callback is logged and does not stop delivery to the rest.
        """
        if self._closed:
            return

        if not isinstance(properties, event.properties_type):
            if isinstance(properties, dict):
                properties = event.properties_type(**properties)
            else:
                raise TypeError(
                    f"Properties must be instance of {event.properties_type.__name__}"
                )

        payload = EventPayload(type=event.type, properties=properties.model_dump())

        callbacks: List[SubscriptionCallback] = []
        for key in (event.type, "*"):
            callbacks.extend(self._subscriptions.get(key, []))

        for callback in callbacks:
            try:
                result = callback(payload)
                if hasattr(result, '__await__'):
                    await result
            except Exception as e:
                _get_log().error("subscription callback failed", {
                    "error": str(e),
                    "type": event.type,
                    "traceback": traceback.format_exc(),
                })

    def subscribe(self, event: BusEvent[T], callback: SubscriptionCallback) -> Callable[[], None]:
        """Subscribe to one event type. Returns an unsubscribe function."""
        return self._raw_subscribe(event.type, callback)

    def subscribe_all(self, callback: SubscriptionCallback) -> Callable[[], None]:
        """Subscribe to every event published on this bus."""
        return self._raw_subscribe("*", callback)

    def once(self, event: BusEvent[T], callback: SubscriptionCallback) -> Callable[[], None]:
        """Subscribe for a single delivery."""
        def wrapper(payload: EventPayload):
            unsubscribe()
            return callback(payload)

        unsubscribe = self.subscribe(event, wrapper)
        return unsubscribe

    def _raw_subscribe(self, event_type: str, callback: SubscriptionCallback) -> Callable[[], None]:
        if self._closed:
            return _noop

        self._subscriptions.setdefault(event_type, []).append(callback)

        def unsubscribe() -> None:
            subs = self._subscriptions.get(event_type, [])
            if callback in subs:
                subs.remove(callback)

        return unsubscribe

    def subscriber_count(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())

    def close(self) -> None:
        """Drop every subscription and refuse further traffic."""
        self._closed = True
        self._subscriptions.clear()
