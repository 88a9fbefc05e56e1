"""Pure structural operations over a category root sequence.

Every function takes the root sequence (``roots``) explicitly and mutates
nodes in place. Parents are found by scanning from the roots; nodes hold
no back-references. Membership checks and removals use identity.
"""

from __future__ import annotations

import logging
from typing import Iterator, MutableSequence, Sequence

from .category import Category, iter_categories, new_category, new_id
from .errors import InvalidMove

__all__ = [
    "find_by_id",
    "find_parent",
    "find_owner",
    "is_descendant_of",
    "reparent",
    "remove_from_parent",
    "add_child",
    "add_subcategory",
    "rename",
    "delete",
    "delete_subcategory",
    "move_subcategory",
    "move_item_ref",
    "remove_item_ref",
    "remove_item_everywhere",
    "sort_categories",
    "sort_by_name",
    "walk_children",
    "needs_id_migration",
    "regenerate_ids",
]

LOGGER = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Lookup
# ----------------------------------------------------------------------


def find_by_id(category_id: str | None, roots: Sequence[Category]) -> Category | None:
    """Depth-first search: node, then its subcategories, then its children."""

    if not category_id:
        return None
    for category in roots:
        if category.id == category_id:
            return category
        found = find_by_id(category_id, category.sub_categories)
        if found is not None:
            return found
        found = find_by_id(category_id, category.children)
        if found is not None:
            return found
    return None


def find_parent(node: Category, roots: Sequence[Category]) -> Category | None:
    """Return the category whose ``children`` hold ``node``, or None for roots/unknown."""

    for category in roots:
        if _contains(category.children, node):
            return category
        parent = find_parent(node, category.children)
        if parent is not None:
            return parent
    return None


def find_owner(node: Category, roots: Sequence[Category]) -> Category | None:
    """Return the category whose ``sub_categories`` hold ``node``."""

    for category in iter_categories(roots):
        if _contains(category.sub_categories, node):
            return category
    return None


def is_descendant_of(candidate: Category, ancestor: Category) -> bool:
    """True if ``candidate`` appears anywhere in ``ancestor.children`` transitively."""

    for child in ancestor.children:
        if child is candidate or child.id == candidate.id:
            return True
        if is_descendant_of(candidate, child):
            return True
    return False


def walk_children(roots: Sequence[Category], depth: int = 0) -> Iterator[tuple[int, Category]]:
    """Yield ``(depth, category)`` over the ``children`` hierarchy only."""

    for category in roots:
        yield depth, category
        yield from walk_children(category.children, depth + 1)


# ----------------------------------------------------------------------
# Structural mutation
# ----------------------------------------------------------------------


def reparent(
    roots: MutableSequence[Category],
    node: Category,
    old_parent: Category | None,
    new_parent: Category | None,
) -> None:
    """Move ``node`` from ``old_parent`` (None = roots) under ``new_parent`` (None = roots).

    Raises:
        InvalidMove: If ``new_parent`` is the node, one of its descendants,
            or already directly holds it. Nothing is mutated in that case.
    """

    target_id = new_parent.id if new_parent is not None else None
    if new_parent is not None:
        if new_parent is node:
            raise InvalidMove(node.id, target_id, InvalidMove.SELF)
        if is_descendant_of(new_parent, node):
            raise InvalidMove(node.id, target_id, InvalidMove.DESCENDANT)
        if _contains(new_parent.children, node):
            raise InvalidMove(node.id, target_id, InvalidMove.ALREADY_HERE)
    elif _contains(roots, node):
        raise InvalidMove(node.id, None, InvalidMove.ALREADY_HERE)

    source = old_parent.children if old_parent is not None else roots
    if not _remove(source, node):
        # Stale old_parent; fall back to a structural search.
        remove_from_parent(node, roots)

    destination = new_parent.children if new_parent is not None else roots
    destination.append(node)
    sort_by_name(destination)
    LOGGER.debug("Moved category %s under %s", node.id, target_id or "<root>")


def remove_from_parent(node: Category, roots: MutableSequence[Category]) -> bool:
    """Detach ``node`` from the root sequence or its parent's ``children``."""

    if _remove(roots, node):
        return True
    parent = find_parent(node, roots)
    if parent is None:
        return False
    return _remove(parent.children, node)


def add_child(roots: MutableSequence[Category], parent: Category | None, name: str) -> Category:
    """Create a category named ``name`` under ``parent`` (None = roots)."""

    category = new_category(name)
    destination = parent.children if parent is not None else roots
    destination.append(category)
    sort_by_name(destination)
    return category


def add_subcategory(category: Category, name: str) -> Category:
    """Create a subcategory tab named ``name`` on ``category``."""

    sub = new_category(name)
    category.sub_categories.append(sub)
    sort_by_name(category.sub_categories)
    return sub


def rename(roots: MutableSequence[Category], node: Category, new_name: str) -> bool:
    """Rename ``node`` and re-sort the sequence that contains it.

    Returns False (no-op) for an empty name or an unchanged name.
    """

    if not new_name or new_name == node.name:
        return False
    node.name = new_name
    container = _containing_sequence(node, roots)
    if container is not None:
        sort_by_name(container)
    return True


def delete(node: Category, roots: MutableSequence[Category]) -> bool:
    """Remove ``node`` from the root sequence or nested ``children``."""

    return remove_from_parent(node, roots)


def delete_subcategory(category: Category, sub_id: str) -> bool:
    before = len(category.sub_categories)
    category.sub_categories[:] = [sub for sub in category.sub_categories if sub.id != sub_id]
    return len(category.sub_categories) != before


def move_subcategory(sub: Category, from_category: Category, to_category: Category) -> None:
    """Move a subcategory tab between two categories.

    Raises:
        InvalidMove: If source and target are the same category or the
            target is the subcategory itself.
    """

    if to_category is from_category or _contains(to_category.sub_categories, sub):
        raise InvalidMove(sub.id, to_category.id, InvalidMove.ALREADY_HERE)
    if to_category is sub:
        raise InvalidMove(sub.id, to_category.id, InvalidMove.SELF)
    _remove(from_category.sub_categories, sub)
    to_category.sub_categories.append(sub)
    sort_by_name(to_category.sub_categories)


def move_item_ref(ref: str, from_category: Category, to_category: Category) -> None:
    """Move ``ref`` with set semantics; a duplicate add is silently dropped."""

    if ref in from_category.item_refs:
        from_category.item_refs.remove(ref)
    if ref not in to_category.item_refs:
        to_category.item_refs.append(ref)


def remove_item_ref(ref: str, category: Category) -> bool:
    if ref in category.item_refs:
        category.item_refs.remove(ref)
        return True
    return False


def remove_item_everywhere(ref: str, roots: Sequence[Category]) -> int:
    """Remove ``ref`` from every node in the tree; return how many held it."""

    removed = 0
    for category in iter_categories(roots):
        if remove_item_ref(ref, category):
            removed += 1
    return removed


# ----------------------------------------------------------------------
# Ordering
# ----------------------------------------------------------------------


def sort_by_name(sequence: MutableSequence[Category]) -> None:
    """Stable ordinal sort of one sibling sequence, in place."""

    sequence[:] = sorted(sequence, key=_name_key)


def sort_categories(roots: MutableSequence[Category]) -> None:
    """Sort roots, every ``children`` and every ``sub_categories`` recursively."""

    sort_by_name(roots)
    for category in roots:
        sort_by_name(category.sub_categories)
        sort_categories(category.sub_categories)
        sort_categories(category.children)


# ----------------------------------------------------------------------
# Legacy id migration
# ----------------------------------------------------------------------


def needs_id_migration(roots: Sequence[Category]) -> bool:
    """True if any node lacks an id or two nodes share one."""

    seen: set[str] = set()
    for category in iter_categories(roots):
        if not category.id or category.id in seen:
            return True
        seen.add(category.id)
    return False


def regenerate_ids(roots: Sequence[Category]) -> int:
    """Assign a fresh id to every node, depth-first; return the node count."""

    count = 0
    for category in iter_categories(roots):
        category.id = new_id()
        count += 1
    return count


# ----------------------------------------------------------------------
# Internal helpers
# ----------------------------------------------------------------------


def _name_key(category: Category) -> str:
    return category.name


def _contains(sequence: Sequence[Category], node: Category) -> bool:
    return any(entry is node for entry in sequence)


def _remove(sequence: MutableSequence[Category], node: Category) -> bool:
    for index, entry in enumerate(sequence):
        if entry is node:
            del sequence[index]
            return True
    return False


def _containing_sequence(
    node: Category, roots: MutableSequence[Category]
) -> MutableSequence[Category] | None:
    if _contains(roots, node):
        return roots
    for category in iter_categories(roots):
        if _contains(category.children, node):
            return category.children
        if _contains(category.sub_categories, node):
            return category.sub_categories
    return None
