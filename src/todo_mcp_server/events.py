"""Minimal event emitter with disposable subscriptions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Disposable:
    """Handle returned by ``subscribe``; ``dispose()`` is idempotent."""

    def __init__(self, callback: Callable[[], None]):
        self._callback: Callable[[], None] | None = callback

    def dispose(self) -> None:
        callback, self._callback = self._callback, None
        if callback is not None:
            callback()

    @property
    def disposed(self) -> bool:
        return self._callback is None


class EventEmitter(Generic[T]):
    """Synchronous fan-out of a value to registered listeners.

    Listener exceptions are logged and do not reach the code that fired
    the event, nor prevent later listeners from running.
    """

    def __init__(self, name: str = "event"):
        self._name = name
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Disposable:
        self._listeners.append(listener)

        def _remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return Disposable(_remove)

    def fire(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Listener for %s failed", self._name)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def clear(self) -> None:
        self._listeners.clear()
