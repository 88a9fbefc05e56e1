"""Shared test helpers and stub classes.

Import from here instead of duplicating these helpers in individual test files.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Sequence

from quickselect.core.category import Category
from quickselect.ui.collaborators import ResolvedItem


def node(name: str, *, id: str | None = None, items: Sequence[str] = (), subs: Sequence[Category] = (),
         children: Sequence[Category] = ()) -> Category:
    """Build a category with a readable default id (``id-<name>``)."""

    return Category(
        id=id if id is not None else f"id-{name}",
        name=name,
        item_refs=list(items),
        sub_categories=list(subs),
        children=list(children),
    )


def names(categories: Sequence[Category]) -> list[str]:
    return [category.name for category in categories]


def is_sorted(categories: Sequence[Category]) -> bool:
    return names(categories) == sorted(names(categories))


class RecordingWatcher:
    """Fake :class:`SharedStoreWatcher` that tests trigger by hand."""

    def __init__(self, path: Path | str = "SharedLayout.json") -> None:
        self.path = Path(path)
        self.callbacks: list[Callable[[Path], None]] = []
        self.started = 0
        self.stopped = 0

    def on_shared_store_changed(self, callback: Callable[[Path], None]) -> None:
        self.callbacks.append(callback)

    def start(self) -> None:
        self.started += 1

    def stop(self) -> None:
        self.stopped += 1

    def fire(self) -> None:
        for callback in list(self.callbacks):
            callback(self.path)


class DictResolver:
    """Item resolver backed by a mapping of ref -> ResolvedItem; unknown refs are missing."""

    def __init__(self, items: dict[str, ResolvedItem] | None = None) -> None:
        self.items = dict(items or {})
        self.calls: list[str] = []

    def resolve(self, item_id: str) -> ResolvedItem:
        self.calls.append(item_id)
        return self.items.get(item_id, ResolvedItem(display_name=item_id, exists=False))


class Recorder:
    """Collects published events for assertions."""

    def __init__(self) -> None:
        self.events: list[Any] = []

    def __call__(self, event: Any) -> None:
        self.events.append(event)

    def of(self, event_type: type) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]
