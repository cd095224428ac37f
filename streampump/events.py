"""Explicit publish/subscribe primitive.

Objects that announce named notifications (sinks announcing ``drain``, pumps
announcing ``complete``) own an :class:`EventEmitter`. Listeners run
synchronously, in the order they were registered.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

Listener = Callable[..., Any]


class _OnceWrapper:
    __slots__ = ("listener",)

    def __init__(self, listener: Listener) -> None:
        self.listener = listener

    def __call__(self, *args: Any) -> Any:
        return self.listener(*args)


class EventEmitter:
    """Ordered list of listeners per event name."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> "EventEmitter":
        self._listeners[event].append(listener)
        return self

    def once(self, event: str, listener: Listener) -> "EventEmitter":
        self._listeners[event].append(_OnceWrapper(listener))
        return self

    def off(self, event: str, listener: Listener) -> "EventEmitter":
        """Remove the earliest registration of *listener* for *event*."""

        registered = self._listeners.get(event)
        if not registered:
            return self
        for idx, candidate in enumerate(registered):
            if candidate == listener or (
                isinstance(candidate, _OnceWrapper) and candidate.listener is listener
            ):
                del registered[idx]
                break
        if not registered:
            del self._listeners[event]
        return self

    def emit(self, event: str, *args: Any) -> bool:
        """Invoke every listener of *event*; return whether any existed.

        The listener list is snapshotted first, so listeners added while the
        event is being emitted only see later emissions. A listener that
        raises stops the emission and the exception reaches the caller.
        """

        registered = self._listeners.get(event)
        if not registered:
            return False
        snapshot = list(registered)
        for listener in snapshot:
            if isinstance(listener, _OnceWrapper):
                self.off(event, listener)
            listener(*args)
        return True

    def listeners(self, event: str) -> List[Listener]:
        return [
            item.listener if isinstance(item, _OnceWrapper) else item
            for item in self._listeners.get(event, ())
        ]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def remove_all_listeners(self, event: str | None = None) -> "EventEmitter":
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)
        return self


__all__ = ["EventEmitter", "Listener"]
