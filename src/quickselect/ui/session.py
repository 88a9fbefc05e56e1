"""Per-window controller owning one live category tree.

A session holds its own tree instance, the active category/subcategory
selection and the scope it is editing. Every structural edit mutates the
tree through :mod:`quickselect.core.tree` and then calls :meth:`save`,
which writes the current scope and lets the :class:`ChangeNotifier`
propagate the change to sibling sessions.
"""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from ..core import tree
from ..core.category import Category, iter_categories
from ..core.errors import InvalidMove
from ..services.persistence import PersistenceStore, PresentationMode, Scope, WindowStateStore
from .collaborators import PassthroughItemResolver
from .destinations import Destination, category_destinations, item_destinations
from .events import (
    CategoriesSaved,
    EventBus,
    ItemsPruned,
    LayoutMigrated,
    RedrawRequested,
    SaveFailed,
    ScopeSwitched,
    SelectionChanged,
    get_event_bus,
)
from .grouping import GroupingResult, group_items, mode_from_settings

if TYPE_CHECKING:  # pragma: no cover
    from ..services.settings import Settings
    from .collaborators import ItemResolver, SelectionBridge
    from .notifier import ChangeNotifier

__all__ = ["CategorySession"]

LOGGER = logging.getLogger(__name__)

_SESSION_IDS = itertools.count(1)


class CategorySession:
    """Controller for one view (docked or floating) of the category tree."""

    def __init__(
        self,
        store: PersistenceStore,
        window_state: WindowStateStore,
        notifier: ChangeNotifier | None = None,
        *,
        mode: PresentationMode = PresentationMode.DOCKED,
        event_bus: EventBus[Any] | None = None,
        resolver: ItemResolver | None = None,
        settings: Settings | None = None,
        selection: SelectionBridge | None = None,
        session_id: str | None = None,
    ) -> None:
        self._store = store
        self._window_state = window_state
        self._notifier = notifier
        self._mode = PresentationMode(mode)
        self._bus = event_bus or get_event_bus()
        self._resolver = resolver
        self._settings = settings
        self.session_id = session_id or f"{self._mode.value}-{next(_SESSION_IDS)}"
        self._scope = window_state.scope_for(self._mode)
        self._roots: list[Category] = []
        self._active_category_id: str | None = None
        self._active_subcategory_id: str | None = None
        self._started = False
        self._selection = selection
        self._selected_items: tuple[str, ...] = ()
        self._selection_hooked = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def roots(self) -> list[Category]:
        return self._roots

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def mode(self) -> PresentationMode:
        return self._mode

    @property
    def started(self) -> bool:
        return self._started

    @property
    def active_category_id(self) -> str | None:
        return self._active_category_id

    @property
    def active_subcategory_id(self) -> str | None:
        return self._active_subcategory_id

    @property
    def active_category(self) -> Category | None:
        return self.find_category(self._active_category_id)

    @property
    def active_subcategory(self) -> Category | None:
        category = self.active_category
        if category is None:
            return None
        return category.find_subcategory(self._active_subcategory_id)

    @property
    def content_category(self) -> Category | None:
        """The node whose items are shown: the active subcategory, else the active category."""

        return self.active_subcategory or self.active_category

    def find_category(self, category_id: str | None) -> Category | None:
        """Find a node reachable through roots and ``children`` (not a subcategory tab)."""

        if not category_id:
            return None
        for _depth, category in tree.walk_children(self._roots):
            if category.id == category_id:
                return category
        return None

    def find_subcategory(self, sub_id: str | None) -> tuple[Category, Category] | None:
        """Return ``(owner, subcategory)`` for a subcategory id anywhere in the tree."""

        if not sub_id:
            return None
        for owner in iter_categories(self._roots):
            sub = owner.find_subcategory(sub_id)
            if sub is not None:
                return owner, sub
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._started:
            return
        self._load_tree()
        self._restore_window_state()
        self._started = True
        self._hook_selection()
        if self._notifier is not None:
            self._notifier.register(self)
        LOGGER.debug(
            "Session %s started (scope=%s, roots=%d)", self.session_id, self._scope.value, len(self._roots)
        )
        self.redraw()

    def close(self) -> None:
        if not self._started:
            return
        self._persist_window_state()
        if self._notifier is not None:
            self._notifier.unregister(self)
        self._started = False
        LOGGER.debug("Session %s closed", self.session_id)

    def switch_scope(self) -> Scope:
        """Save to the current scope, then load the other one and its window state."""

        if self._started:
            self.save()
        self._scope = self._scope.toggled()
        self._window_state.set_scope_for(self._mode, self._scope)
        self._load_tree()
        self._restore_window_state()
        LOGGER.info("Session %s switched to %s layout", self.session_id, self._scope.value)
        self._bus.publish(ScopeSwitched(session_id=self.session_id, scope=self._scope.value))
        self.redraw()
        return self._scope

    def reload(self) -> None:
        """Replace the tree from the store and revalidate the selection."""

        self._load_tree()
        self._revalidate_selection()
        self.redraw()

    def refresh(self) -> None:
        self.reload()

    def redraw(self) -> None:
        self._bus.publish(RedrawRequested(session_id=self.session_id))

    def save(self) -> bool:
        """Write the tree to the current scope and propagate to sibling sessions."""

        try:
            written = self._store.save(self._scope, self._roots)
        except OSError as exc:
            LOGGER.error("Session %s could not save %s layout: %s", self.session_id, self._scope.value, exc)
            self._bus.publish(SaveFailed(session_id=self.session_id, scope=self._scope.value, error=str(exc)))
            return False
        self._persist_window_state()
        if written:
            self._after_save()
        else:
            self._store.scheduler.call_soon(self._after_save)
        return True

    def _after_save(self) -> None:
        self._bus.publish(
            CategoriesSaved(session_id=self.session_id, scope=self._scope.value, root_count=len(self._roots))
        )
        if self._notifier is not None:
            self._notifier.notify_others(self)
        else:
            self.redraw()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def select_category(self, category_id: str) -> bool:
        category = self.find_category(category_id)
        if category is None:
            LOGGER.debug("select_category: unknown id %s", category_id)
            return False
        self._activate(category)
        self._window_state.set_active_category(self._scope, self._mode, category.id)
        self._publish_selection()
        self.redraw()
        return True

    def select_subcategory(self, sub_id: str) -> bool:
        category = self.active_category
        if category is None or category.find_subcategory(sub_id) is None:
            LOGGER.debug("select_subcategory: %s is not a tab of the active category", sub_id)
            return False
        self._active_subcategory_id = sub_id
        self._window_state.set_active_subcategory(self._scope, self._mode, category.id, sub_id)
        self._publish_selection()
        self.redraw()
        return True

    def _activate(self, category: Category | None) -> None:
        if category is None:
            self._active_category_id = None
            self._active_subcategory_id = None
            return
        self._active_category_id = category.id
        remembered = self._window_state.active_subcategory(self._scope, self._mode, category.id)
        sub = category.find_subcategory(remembered)
        if sub is None and category.sub_categories:
            sub = category.sub_categories[0]
        self._active_subcategory_id = sub.id if sub is not None else None

    def _fallback_category(self) -> Category | None:
        return self._roots[0] if self._roots else None

    def _restore_window_state(self) -> None:
        remembered = self._window_state.active_category(self._scope, self._mode)
        self._activate(self.find_category(remembered) or self._fallback_category())

    def _revalidate_selection(self) -> None:
        category = self.active_category
        if category is None:
            self._restore_window_state()
            return
        if category.find_subcategory(self._active_subcategory_id) is None:
            self._activate(category)

    def _persist_window_state(self) -> None:
        self._window_state.set_active_category(self._scope, self._mode, self._active_category_id)
        category = self.active_category
        if category is not None and self._active_subcategory_id:
            self._window_state.set_active_subcategory(
                self._scope, self._mode, category.id, self._active_subcategory_id
            )

    def _publish_selection(self) -> None:
        self._bus.publish(
            SelectionChanged(
                session_id=self.session_id,
                category_id=self._active_category_id,
                subcategory_id=self._active_subcategory_id,
            )
        )

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------
    def add_category(self, name: str, parent_id: str | None = None) -> Category | None:
        name = (name or "").strip()
        if not name:
            return None
        parent = None
        if parent_id is not None:
            parent = self.find_category(parent_id)
            if parent is None:
                LOGGER.debug("add_category: unknown parent %s", parent_id)
                return None
        category = tree.add_child(self._roots, parent, name)
        if parent is not None:
            self._window_state.set_expanded(self._scope, self._mode, parent.id, True)
        self._activate(category)
        self.save()
        self._publish_selection()
        return category

    def rename_category(self, category_id: str, name: str) -> bool:
        category = self.find_category(category_id)
        if category is None:
            return False
        if not tree.rename(self._roots, category, (name or "").strip()):
            return False
        self.save()
        return True

    def delete_category(self, category_id: str) -> bool:
        category = self.find_category(category_id)
        if category is None:
            return False
        tree.delete(category, self._roots)
        if self.active_category is None:
            self._activate(self._fallback_category())
            self._publish_selection()
        self.save()
        return True

    def move_category(self, category_id: str, new_parent_id: str | None) -> bool:
        """Reparent a category; ``new_parent_id=None`` makes it top-level."""

        category = self.find_category(category_id)
        if category is None:
            return False
        new_parent = None
        if new_parent_id is not None:
            new_parent = self.find_category(new_parent_id)
            if new_parent is None:
                return False
        old_parent = tree.find_parent(category, self._roots)
        try:
            tree.reparent(self._roots, category, old_parent, new_parent)
        except InvalidMove as exc:
            LOGGER.debug("Rejected move: %s", exc)
            return False
        self.save()
        return True

    def make_top_level(self, category_id: str) -> bool:
        return self.move_category(category_id, None)

    # ------------------------------------------------------------------
    # Subcategories
    # ------------------------------------------------------------------
    def add_subcategory(self, name: str, category_id: str | None = None) -> Category | None:
        name = (name or "").strip()
        category = self.find_category(category_id) if category_id else self.active_category
        if not name or category is None:
            return None
        sub = tree.add_subcategory(category, name)
        self._window_state.set_active_subcategory(self._scope, self._mode, category.id, sub.id)
        if category.id == self._active_category_id:
            self._active_subcategory_id = sub.id
            self._publish_selection()
        self.save()
        return sub

    def rename_subcategory(self, sub_id: str, name: str) -> bool:
        found = self.find_subcategory(sub_id)
        if found is None:
            return False
        _owner, sub = found
        if not tree.rename(self._roots, sub, (name or "").strip()):
            return False
        self.save()
        return True

    def delete_subcategory(self, sub_id: str) -> bool:
        found = self.find_subcategory(sub_id)
        if found is None:
            return False
        owner, _sub = found
        tree.delete_subcategory(owner, sub_id)
        if owner.id == self._active_category_id and self._active_subcategory_id == sub_id:
            first = owner.sub_categories[0] if owner.sub_categories else None
            self._active_subcategory_id = first.id if first is not None else None
            self._publish_selection()
        self.save()
        return True

    def move_subcategory(self, sub_id: str, from_category_id: str, to_category_id: str) -> bool:
        source = self.find_category(from_category_id)
        target = self.find_category(to_category_id)
        if source is None or target is None:
            return False
        sub = source.find_subcategory(sub_id)
        if sub is None:
            return False
        try:
            tree.move_subcategory(sub, source, target)
        except InvalidMove as exc:
            LOGGER.debug("Rejected subcategory move: %s", exc)
            return False
        if source.id == self._active_category_id and self._active_subcategory_id == sub_id:
            self._activate(source)
            self._publish_selection()
        self.save()
        return True

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------
    def add_items(self, refs: Iterable[str]) -> int:
        """Drop refs onto the active category; a first subcategory is created if needed."""

        refs = [ref for ref in refs if ref]
        category = self.active_category
        if category is None or not refs:
            return 0
        created = False
        if not category.sub_categories:
            sub = tree.add_subcategory(category, category.name)
            self._active_subcategory_id = sub.id
            self._window_state.set_active_subcategory(self._scope, self._mode, category.id, sub.id)
            created = True
        target = self.active_subcategory or category.sub_categories[0]
        added = 0
        for ref in refs:
            if not target.has_item(ref):
                target.item_refs.append(ref)
                added += 1
        if added or created:
            self.save()
        return added

    def drop_items_on_subcategory(self, refs: Iterable[str], sub_id: str) -> int:
        """Move refs into a subcategory, removing them from wherever they were."""

        found = self.find_subcategory(sub_id)
        if found is None:
            return 0
        _owner, sub = found
        moved = 0
        for ref in refs:
            if not ref:
                continue
            tree.remove_item_everywhere(ref, self._roots)
            sub.item_refs.append(ref)
            moved += 1
        if moved:
            self.save()
        return moved

    def remove_item(self, ref: str, category_id: str) -> bool:
        category = tree.find_by_id(category_id, self._roots)
        if category is None or not tree.remove_item_ref(ref, category):
            return False
        self.save()
        return True

    def move_item(self, ref: str, from_id: str, to_id: str) -> bool:
        source = tree.find_by_id(from_id, self._roots)
        target = tree.find_by_id(to_id, self._roots)
        if source is None or target is None or source is target:
            return False
        tree.move_item_ref(ref, source, target)
        self.save()
        return True

    # ------------------------------------------------------------------
    # Host selection
    # ------------------------------------------------------------------
    @property
    def selected_items(self) -> tuple[str, ...]:
        return self._selected_items

    def is_selected(self, ref: str) -> bool:
        return ref in self._selected_items

    def select_items(self, refs: Iterable[str], *, add: bool = False, toggle: bool = False) -> tuple[str, ...]:
        """Push a click on item buttons to the host selection.

        A plain click replaces the selection, ``add`` appends missing refs and
        ``toggle`` flips membership of each ref.
        """

        if self._selection is None:
            return ()
        refs = [ref for ref in refs if ref]
        if not add and not toggle:
            selected = refs
        else:
            selected = list(self._selection.get_selected())
            for ref in refs:
                if ref in selected:
                    if toggle:
                        selected.remove(ref)
                elif add or toggle:
                    selected.append(ref)
        self._selection.set_selected(selected)
        self._selected_items = tuple(self._selection.get_selected())
        return self._selected_items

    def add_selected_items(self) -> int:
        """Add whatever the host currently has selected to the active category."""

        if self._selection is None:
            return 0
        return self.add_items(self._selection.get_selected())

    def _hook_selection(self) -> None:
        if self._selection is None:
            return
        self._selected_items = tuple(self._selection.get_selected())
        if not self._selection_hooked:
            self._selection.on_selection_changed(self._on_host_selection_changed)
            self._selection_hooked = True

    def _on_host_selection_changed(self, selected: Iterable[str]) -> None:
        if not self._started:
            return
        self._selected_items = tuple(selected)
        self.redraw()

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------
    def is_expanded(self, category_id: str) -> bool:
        return self._window_state.expanded(self._scope, self._mode, category_id)

    def set_expanded(self, category_id: str, value: bool) -> None:
        self._window_state.set_expanded(self._scope, self._mode, category_id, value)
        self.redraw()

    def toggle_expanded(self, category_id: str) -> bool:
        value = not self.is_expanded(category_id)
        self.set_expanded(category_id, value)
        return value

    def visible_rows(self) -> Iterator[tuple[int, Category]]:
        """Yield ``(depth, category)`` for rows shown with the current expansion."""

        def walk(categories: list[Category], depth: int) -> Iterator[tuple[int, Category]]:
            for category in categories:
                yield depth, category
                if category.children and self.is_expanded(category.id):
                    yield from walk(category.children, depth + 1)

        return walk(self._roots, 0)

    # ------------------------------------------------------------------
    # Display helpers
    # ------------------------------------------------------------------
    def grouped_items(self, category: Category | None = None) -> GroupingResult:
        """Group the items of ``category`` (default: the content category).

        Refs that no longer resolve are pruned in memory and written on the
        next save.
        """

        category = category or self.content_category
        if category is None:
            return GroupingResult(groups=[])
        resolver = self._resolver or PassthroughItemResolver()
        result = group_items(category, resolver, mode_from_settings(self._settings))
        if result.pruned:
            LOGGER.info("Pruned %d missing item(s) from %s", len(result.pruned), category.name)
            self._bus.publish(
                ItemsPruned(session_id=self.session_id, category_id=category.id, item_refs=tuple(result.pruned))
            )
        return result

    def category_label(self, category: Category) -> str:
        if self._settings is not None and self._settings.show_subcategory_count:
            return f"{category.name} ({len(category.sub_categories)})"
        return category.name

    def subcategory_label(self, sub: Category) -> str:
        if self._settings is not None and self._settings.show_item_count:
            return f"{sub.name} ({len(sub.item_refs)})"
        return sub.name

    def category_destinations(self, category_id: str) -> list[Destination]:
        category = self.find_category(category_id)
        if category is None:
            return []
        return category_destinations(self._roots, category, tree.find_parent(category, self._roots))

    def item_destinations(self, source_id: str) -> list[Destination]:
        return item_destinations(self._roots, tree.find_by_id(source_id, self._roots))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def _load_tree(self) -> None:
        roots = self._store.load(self._scope)
        if tree.needs_id_migration(roots):
            count = tree.regenerate_ids(roots)
            LOGGER.warning(
                "Regenerated ids for %d categories in the %s layout", count, self._scope.value
            )
            try:
                self._store.save(self._scope, roots)
            except OSError as exc:
                LOGGER.error("Could not persist migrated %s layout: %s", self._scope.value, exc)
            self._bus.publish(
                LayoutMigrated(session_id=self.session_id, scope=self._scope.value, node_count=count)
            )
        self._roots = roots
