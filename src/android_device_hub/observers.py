"""Synchronous observer lists with disposable subscriptions."""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class Subscription:
    """Handle returned by `subscribe()`; `dispose()` unregisters the callback."""

    def __init__(self, dispose: Callable[[], None]) -> None:
        self._dispose = dispose
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._dispose()


class ObserverList(Generic[T]):
    """Ordered callbacks notified synchronously, in registration order.

    A raising observer is logged and does not prevent the others from
    being called.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._callbacks: list[Callable[[T], None]] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return Subscription(_remove)

    def notify(self, payload: T) -> None:
        for callback in list(self._callbacks):
            try:
                callback(payload)
            except Exception:
                logger.exception("observer_failed", observers=self._name)
