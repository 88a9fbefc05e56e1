"""Typed events exchanged between sessions, the change notifier and views.

Nothing here knows about Qt; a host view subscribes to
:class:`RedrawRequested` for its session id and repaints.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar
from weakref import WeakMethod

__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "get_event_bus",
    "reset_event_bus",
    "RedrawRequested",
    "SelectionChanged",
    "ScopeSwitched",
    "CategoriesSaved",
    "SaveFailed",
    "LayoutMigrated",
    "ItemsPruned",
    "SharedStoreChanged",
    "ExternalChangeIgnored",
    "SessionsReloaded",
]

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Marker base; subclasses are slotted dataclasses."""


# Published on every repaint; not logged.
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Session Events
# =============================================================================


@dataclass(slots=True)
class RedrawRequested(Event):
    """Emitted when a session's view must be rebuilt from its tree.

    Attributes:
        session_id: The session whose view is stale.
    """

    session_id: str


_QUIET_EVENT_TYPES.add(RedrawRequested)


@dataclass(slots=True)
class SelectionChanged(Event):
    """Emitted when the active category or subcategory changes.

    Attributes:
        session_id: The session whose selection changed.
        category_id: The active category, or None.
        subcategory_id: The active subcategory, or None.
    """

    session_id: str
    category_id: str | None
    subcategory_id: str | None = None


@dataclass(slots=True)
class ScopeSwitched(Event):
    """Emitted after a session toggles between private and shared scope."""

    session_id: str
    scope: str


@dataclass(slots=True)
class CategoriesSaved(Event):
    """Emitted after a session wrote its tree.

    Attributes:
        session_id: The session that saved.
        scope: ``private`` or ``shared``.
        root_count: Number of root categories written.
    """

    session_id: str
    scope: str
    root_count: int


@dataclass(slots=True)
class SaveFailed(Event):
    """Emitted when writing a layout raised; the in-memory tree is kept."""

    session_id: str
    scope: str
    error: str


@dataclass(slots=True)
class LayoutMigrated(Event):
    """Emitted when legacy ids were regenerated and the layout re-saved.

    Attributes:
        session_id: The session that migrated.
        scope: The scope whose layout was migrated.
        node_count: Number of nodes that received fresh ids.
    """

    session_id: str
    scope: str
    node_count: int


@dataclass(slots=True)
class ItemsPruned(Event):
    """Emitted when item refs that no longer resolve were dropped."""

    session_id: str
    category_id: str
    item_refs: tuple[str, ...]


# =============================================================================
# Shared Store Events
# =============================================================================


@dataclass(slots=True)
class SharedStoreChanged(Event):
    """Emitted when an external modification of the shared layout was accepted.

    Attributes:
        path: The shared layout file.
    """

    path: str


@dataclass(slots=True)
class ExternalChangeIgnored(Event):
    """Emitted when a shared layout notification was dropped.

    Attributes:
        path: The shared layout file.
        reason: ``self_save`` (our own write) or ``coalesced`` (a reload is
            already pending).
    """

    path: str
    reason: str


@dataclass(slots=True)
class SessionsReloaded(Event):
    """Emitted after sessions re-read their layouts.

    Attributes:
        session_ids: Sessions that reloaded.
        origin_id: The session whose save caused the reload, or None for
            external changes.
    """

    session_ids: tuple[str, ...]
    origin_id: str | None = None


# =============================================================================
# Event Bus
# =============================================================================


class EventBus(Generic[E]):
    """Synchronous publish/subscribe keyed by exact event class.

    Bound methods are held weakly so a closed view that forgot to
    unsubscribe is dropped on the next publish; plain functions and
    lambdas are held strongly. Delivery follows subscription order and a
    failing handler is logged without stopping delivery to the rest.

    Not thread-safe: publish from the main loop only. Watcher threads go
    through the scheduler before anything reaches the bus.
    """

    __slots__ = ("_subscriptions",)

    def __init__(self) -> None:
        self._subscriptions: dict[type[Event], list[_Subscription]] = {}

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Add ``handler`` for ``event_type``; subscribing twice delivers twice."""

        self._subscriptions.setdefault(event_type, []).append(_Subscription.wrap(handler))
        LOGGER.debug("%s subscribed to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first subscription of ``handler``; unknown handlers are ignored."""

        subscriptions = self._subscriptions.get(event_type, [])
        for index, subscription in enumerate(subscriptions):
            if subscription.is_for(handler):
                del subscriptions[index]
                LOGGER.debug("%s unsubscribed from %s", _handler_name(handler), event_type.__name__)
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        subscriptions = self._subscriptions.get(event_type)
        if event_type not in _QUIET_EVENT_TYPES:
            LOGGER.debug("Publishing %s to %d handler(s)", event_type.__name__, len(subscriptions or ()))
        if not subscriptions:
            return

        stale = False
        for subscription in tuple(subscriptions):
            handler = subscription.target()
            if handler is None:
                stale = True
                continue
            try:
                handler(event)
            except Exception:
                LOGGER.exception("%s failed while handling %s", _handler_name(handler), event_type.__name__)

        if stale:
            subscriptions[:] = [s for s in subscriptions if s.target() is not None]

    def clear(self) -> None:
        self._subscriptions.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Live subscriptions for ``event_type``, or across all types when omitted."""

        if event_type is not None:
            return len(self._subscriptions.get(event_type, ()))
        return sum(len(subscriptions) for subscriptions in self._subscriptions.values())


@dataclass(slots=True, frozen=True)
class _Subscription:
    handler: Any
    weak: bool = False

    @classmethod
    def wrap(cls, handler: Handler) -> _Subscription:
        if inspect.ismethod(handler):
            return cls(WeakMethod(handler), weak=True)
        return cls(handler)

    def target(self) -> Handler | None:
        return self.handler() if self.weak else self.handler

    def is_for(self, handler: Handler) -> bool:
        target = self.target()
        return target is not None and target == handler


def _handler_name(handler: Handler) -> str:
    if inspect.ismethod(handler):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__qualname__", None) or repr(handler)


_default_bus: EventBus[Any] | None = None


def get_event_bus() -> EventBus[Any]:
    """Return the process-wide bus, creating it on first use."""

    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> None:
    global _default_bus
    _default_bus = None
