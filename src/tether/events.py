"""Events — a per-instance named-event dispatcher.

Each event name maps to its listeners, keyed by a unique listener id.
Any number of listeners can share an event, and registering the same
callback twice gives two independent listeners.

trigger() snapshots the listener list before iterating: a listener added
during a trigger runs from the next trigger on, a listener removed during
a trigger still runs in the current pass.
"""

from __future__ import annotations

from typing import Any, Callable, NamedTuple

from tether._ids import unique_id


class Listener(NamedTuple):
    id: str
    fn: Callable[..., Any]
    context: Any


class Events:
    """Named events with many listeners per event."""

    __slots__ = ("_owner", "_callbacks")

    def __init__(self, owner: Any = None) -> None:
        self._owner = self if owner is None else owner
        self._callbacks: dict[str, dict[str, Listener]] = {}

    @property
    def owner(self) -> Any:
        return self._owner

    def on(self, event: str, fn: Callable[..., Any], context: Any = None) -> str:
        """Register fn for event. Returns the listener id.

        With an explicit context, fn is called as fn(context, *args).
        Without one it is called as fn(*args).
        """
        listener_id = unique_id("callback_")
        bucket = self._callbacks.setdefault(event, {})
        bucket[listener_id] = Listener(listener_id, fn, context)
        return listener_id

    def off(
        self,
        event: str,
        fn: Callable[..., Any] | None = None,
        *,
        listener_id: str | None = None,
    ) -> None:
        """Remove listeners from event.

        fn removes every listener whose callback equals fn, listener_id removes
        one registration, neither removes the whole event.
        """
        bucket = self._callbacks.get(event)
        if bucket is None:
            return
        if fn is None and listener_id is None:
            del self._callbacks[event]
            return
        for lid, listener in list(bucket.items()):
            if listener_id is not None and lid != listener_id:
                continue
            if fn is not None and listener.fn != fn:
                continue
            del bucket[lid]
        # No empty buckets.
        if not bucket:
            del self._callbacks[event]

    def trigger(self, event: str, *args: Any) -> None:
        """Call every listener of event, in registration order."""
        bucket = self._callbacks.get(event)
        if not bucket:
            return
        for listener in list(bucket.values()):
            if listener.context is None:
                listener.fn(*args)
            else:
                listener.fn(listener.context, *args)

    def clear(self) -> None:
        """Remove all events and listeners."""
        self._callbacks = {}

    def listeners(self, event: str) -> list[Listener]:
        return list(self._callbacks.get(event, {}).values())

    def __contains__(self, event: str) -> bool:
        return event in self._callbacks

    def __repr__(self) -> str:
        counts = {name: len(bucket) for name, bucket in self._callbacks.items()}
        return f"Events({counts!r})"
