"""Deferred ("next turn") call scheduling.

The core never runs callbacks re-entrantly: the save-guard reset and
cross-session reloads are posted to a :class:`Scheduler` and run after the
current operation returns. Any :mod:`asyncio` event loop satisfies the
protocol; :class:`DeferredQueue` is a manual implementation for headless
hosts and tests, and :class:`~quickselect.services.qt_host.QtScheduler`
posts onto the Qt event loop.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Protocol

__all__ = ["Scheduler", "DeferredQueue"]

LOGGER = logging.getLogger(__name__)


class Scheduler(Protocol):
    """Minimal deferred-call interface (a subset of ``asyncio.AbstractEventLoop``)."""

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> Any:
        """Run ``callback(*args)`` on a later turn of the owning loop."""
        ...

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> Any:
        """Like :meth:`call_soon` but callable from any thread."""
        ...


class DeferredQueue:
    """Thread-safe FIFO of deferred callbacks, drained explicitly by the owner.

    A *turn* runs only the callbacks queued before it started; callbacks
    scheduled while a turn runs wait for the next one.
    """

    def __init__(self, *, max_turns: int = 100) -> None:
        self._queue: deque[tuple[Callable[..., Any], tuple[Any, ...]]] = deque()
        self._lock = threading.Lock()
        self._max_turns = max_turns

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        with self._lock:
            self._queue.append((callback, args))

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
        self.call_soon(callback, *args)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def pending(self) -> int:
        return len(self)

    def run_pending(self) -> int:
        """Run one turn; return the number of callbacks executed."""

        with self._lock:
            batch = list(self._queue)
            self._queue.clear()
        for callback, args in batch:
            try:
                callback(*args)
            except Exception:
                LOGGER.exception("Deferred callback %r failed", callback)
        return len(batch)

    def drain(self) -> int:
        """Run turns until the queue is empty; return the total executed."""

        total = 0
        for _ in range(self._max_turns):
            executed = self.run_pending()
            if not executed:
                return total
            total += executed
        LOGGER.warning("DeferredQueue.drain stopped after %d turns", self._max_turns)
        return total

    def clear(self) -> None:
        with self._lock:
            self._queue.clear()
