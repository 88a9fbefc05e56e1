"""Valid "Move To" targets for categories and items, as plain data."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence

from ..core.category import Category
from ..core.tree import is_descendant_of

__all__ = [
    "Destination",
    "ROOT_LABEL",
    "NOTE_ALREADY_HERE",
    "NOTE_CURRENT",
    "NOTE_NO_SUBCATEGORIES",
    "category_destinations",
    "item_destinations",
]

ROOT_LABEL = "Root"
NOTE_ALREADY_HERE = "already here"
NOTE_CURRENT = "current"
NOTE_NO_SUBCATEGORIES = "no subcategories"


@dataclass(slots=True, frozen=True)
class Destination:
    """One menu entry.

    ``category_id`` is the move target (None for the root sequence). A
    disabled entry carries a ``note`` explaining why.
    """

    path: tuple[str, ...]
    category_id: str | None
    enabled: bool = True
    note: str = ""

    @property
    def label(self) -> str:
        text = "/".join(self.path)
        return f"{text} ({self.note})" if self.note else text


def category_destinations(
    roots: Sequence[Category], node: Category, current_parent: Category | None
) -> list[Destination]:
    """Root first, then every category depth-first except ``node`` and its subtree."""

    entries = [
        Destination((ROOT_LABEL,), None, enabled=False, note=NOTE_ALREADY_HERE)
        if current_parent is None
        else Destination((ROOT_LABEL,), None)
    ]
    entries.extend(_category_targets(roots, node, current_parent, ()))
    return entries


def _category_targets(
    categories: Sequence[Category],
    node: Category,
    current_parent: Category | None,
    prefix: tuple[str, ...],
) -> Iterator[Destination]:
    for category in categories:
        if category is node or category.id == node.id or is_descendant_of(category, node):
            continue
        path = prefix + (category.name,)
        if category is current_parent:
            yield Destination(path, category.id, enabled=False, note=NOTE_CURRENT)
        else:
            yield Destination(path, category.id)
        yield from _category_targets(category.children, node, current_parent, path)


def item_destinations(roots: Sequence[Category], source: Category | None) -> list[Destination]:
    """Every subcategory in the tree; the one holding the item is disabled."""

    return list(_item_targets(roots, source, ()))


def _item_targets(
    categories: Sequence[Category], source: Category | None, prefix: tuple[str, ...]
) -> Iterator[Destination]:
    for category in categories:
        path = prefix + (category.name,)
        if not _has_subcategory_below(category):
            yield Destination(path, category.id, enabled=False, note=NOTE_NO_SUBCATEGORIES)
            continue
        for sub in category.sub_categories:
            if source is not None and (sub is source or sub.id == source.id):
                yield Destination(path + (sub.name,), sub.id, enabled=False, note=NOTE_CURRENT)
            else:
                yield Destination(path + (sub.name,), sub.id)
        yield from _item_targets(category.children, source, path)


def _has_subcategory_below(category: Category) -> bool:
    if category.sub_categories:
        return True
    return any(_has_subcategory_below(child) for child in category.children)
