"""Grouping of a category's items for display."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING

from ..core.category import Category
from .collaborators import ItemResolver, ResolvedItem

if TYPE_CHECKING:  # pragma: no cover
    from ..services.settings import Settings

__all__ = [
    "GroupMode",
    "GroupedItem",
    "ItemGroup",
    "GroupingResult",
    "group_items",
    "group_key",
    "prune_missing",
    "mode_from_settings",
    "split_pascal_case",
]

LOGGER = logging.getLogger(__name__)

UNGROUPED_KEY = "Files"
NO_FOLDER_KEY = "No Folder"
FOLDER_KIND_KEY = "Folder"
NON_LETTER_KEY = "0-9"


class GroupMode(Enum):
    NONE = auto()
    FOLDER = auto()
    TYPE = auto()
    ALPHABETICAL = auto()


@dataclass(slots=True)
class GroupedItem:
    ref: str
    item: ResolvedItem


@dataclass(slots=True)
class ItemGroup:
    key: str
    items: list[GroupedItem] = field(default_factory=list)


@dataclass(slots=True)
class GroupingResult:
    groups: list[ItemGroup]
    pruned: list[str] = field(default_factory=list)

    def keys(self) -> list[str]:
        return [group.key for group in self.groups]


def mode_from_settings(settings: Settings | None) -> GroupMode:
    """Map the grouping flags to a mode; grouping on with no sub-mode groups by type."""

    if settings is None or not settings.group_items:
        return GroupMode.NONE
    if settings.group_by_folder:
        return GroupMode.FOLDER
    if settings.group_by_type:
        return GroupMode.TYPE
    if settings.group_alphabetically:
        return GroupMode.ALPHABETICAL
    return GroupMode.TYPE


def split_pascal_case(text: str) -> str:
    """``EntityViewData`` -> ``Entity View Data``; the first letter is capitalized."""

    if not text:
        return text
    chars: list[str] = []
    for char in text:
        if char.isupper() and chars:
            chars.append(" ")
        chars.append(char)
    chars[0] = chars[0].upper()
    return "".join(chars)


def group_key(item: ResolvedItem, mode: GroupMode) -> str:
    if mode is GroupMode.FOLDER:
        return split_pascal_case(item.folder) if item.folder else NO_FOLDER_KEY
    if mode is GroupMode.TYPE:
        if item.is_folder:
            return FOLDER_KIND_KEY
        return split_pascal_case(item.kind or "") or UNGROUPED_KEY
    if mode is GroupMode.ALPHABETICAL:
        first = item.display_name[:1].upper()
        return first if first.isalpha() else NON_LETTER_KEY
    return UNGROUPED_KEY


def prune_missing(category: Category, resolver: ItemResolver) -> tuple[list[str], dict[str, ResolvedItem]]:
    """Drop refs that no longer resolve from ``category.item_refs`` in place."""

    pruned: list[str] = []
    resolved: dict[str, ResolvedItem] = {}
    kept: list[str] = []
    for ref in category.item_refs:
        item = resolver.resolve(ref)
        if not item.exists:
            pruned.append(ref)
            continue
        resolved[ref] = item
        kept.append(ref)
    if pruned:
        category.item_refs[:] = kept
        LOGGER.debug("Pruned %d missing item(s) from %s", len(pruned), category.id)
    return pruned, resolved


def group_items(category: Category, resolver: ItemResolver, mode: GroupMode) -> GroupingResult:
    """Prune missing refs, then bucket the remaining items by ``mode``.

    Groups are ordered case-insensitively by key; items within a group by
    display name.
    """

    pruned, resolved = prune_missing(category, resolver)
    buckets: dict[str, ItemGroup] = {}
    for ref in category.item_refs:
        item = resolved[ref]
        key = group_key(item, mode)
        buckets.setdefault(key, ItemGroup(key)).items.append(GroupedItem(ref, item))
    groups = sorted(buckets.values(), key=lambda group: (group.key.lower(), group.key))
    for group in groups:
        group.items.sort(key=lambda entry: (entry.item.display_name.lower(), entry.ref))
    return GroupingResult(groups=groups, pruned=pruned)
