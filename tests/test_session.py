"""Tests for :mod:`quickselect.ui.session`."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from helpers import DictResolver, Recorder, names, node

from quickselect.core.category import iter_categories
from quickselect.services.persistence import (
    PersistenceStore,
    PresentationMode,
    PrivateLayoutBackend,
    Scope,
    WindowStateStore,
)
from quickselect.services.preferences import PreferencesStore
from quickselect.services.save_guard import SaveGuard
from quickselect.services.scheduler import DeferredQueue
from quickselect.services.settings import Settings
from quickselect.ui.collaborators import InMemorySelectionBridge, ResolvedItem
from quickselect.ui.events import (
    CategoriesSaved,
    EventBus,
    ItemsPruned,
    LayoutMigrated,
    RedrawRequested,
    SaveFailed,
    ScopeSwitched,
    SelectionChanged,
)
from quickselect.ui.session import CategorySession

SessionFactory = Callable[..., CategorySession]


@pytest.fixture
def session(make_session: SessionFactory) -> CategorySession:
    session = make_session()
    session.start()
    return session


def _seed(store: PersistenceStore, *roots, scope: Scope = Scope.PRIVATE) -> None:
    store.save(scope, list(roots))


class TestLifecycle:
    def test_start_on_empty_layout(self, session: CategorySession) -> None:
        assert session.started
        assert session.roots == []
        assert session.active_category is None
        assert session.scope is Scope.PRIVATE

    def test_start_falls_back_to_first_root(self, store: PersistenceStore, make_session: SessionFactory) -> None:
        _seed(store, node("Zed"), node("Art"))

        session = make_session()
        session.start()

        assert session.active_category_id == "id-Art"

    def test_start_restores_remembered_selection(
        self, store: PersistenceStore, window_state: WindowStateStore, make_session: SessionFactory
    ) -> None:
        _seed(store, node("Art"), node("Audio", subs=[node("Music"), node("Sfx")]))
        window_state.set_active_category(Scope.PRIVATE, PresentationMode.DOCKED, "id-Audio")
        window_state.set_active_subcategory(Scope.PRIVATE, PresentationMode.DOCKED, "id-Audio", "id-Sfx")

        session = make_session()
        session.start()

        assert session.active_category_id == "id-Audio"
        assert session.active_subcategory_id == "id-Sfx"

    def test_close_persists_selection_for_the_next_session(
        self, store: PersistenceStore, make_session: SessionFactory
    ) -> None:
        _seed(store, node("Art"), node("Audio"))
        first = make_session()
        first.start()
        first.select_category("id-Audio")
        first.close()

        second = make_session()
        second.start()

        assert second.active_category_id == "id-Audio"

    def test_session_ids_default_to_mode(self, make_session: SessionFactory) -> None:
        assert make_session(PresentationMode.FLOATING).session_id.startswith("floating-")


class TestSelection:
    def test_first_subcategory_when_nothing_is_remembered(
        self, store: PersistenceStore, make_session: SessionFactory
    ) -> None:
        _seed(store, node("Art", subs=[node("Textures"), node("Props")]))
        session = make_session()
        session.start()

        assert session.active_subcategory_id == "id-Props"

    def test_stale_remembered_subcategory_falls_back(
        self, store: PersistenceStore, window_state: WindowStateStore, make_session: SessionFactory
    ) -> None:
        _seed(store, node("Art", subs=[node("Props")]))
        window_state.set_active_subcategory(Scope.PRIVATE, PresentationMode.DOCKED, "id-Art", "gone")
        session = make_session()
        session.start()

        assert session.active_subcategory_id == "id-Props"

    def test_category_without_subcategories_has_none(
        self, store: PersistenceStore, make_session: SessionFactory
    ) -> None:
        _seed(store, node("Art"))
        session = make_session()
        session.start()

        assert session.active_subcategory_id is None
        assert session.content_category is session.active_category

    def test_select_category_publishes_and_persists(
        self,
        store: PersistenceStore,
        window_state: WindowStateStore,
        make_session: SessionFactory,
        bus: EventBus[Any],
    ) -> None:
        _seed(store, node("Art"), node("Audio", subs=[node("Music")]))
        session = make_session()
        session.start()
        recorder = Recorder()
        bus.subscribe(SelectionChanged, recorder)

        assert session.select_category("id-Audio")

        assert recorder.events == [SelectionChanged(session.session_id, "id-Audio", "id-Music")]
        assert window_state.active_category(Scope.PRIVATE, PresentationMode.DOCKED) == "id-Audio"

    def test_select_unknown_or_subcategory_id_is_rejected(
        self, store: PersistenceStore, make_session: SessionFactory
    ) -> None:
        _seed(store, node("Art", subs=[node("Props")]))
        session = make_session()
        session.start()

        assert not session.select_category("missing")
        assert not session.select_category("id-Props")

    def test_select_subcategory_must_belong_to_active_category(
        self, store: PersistenceStore, make_session: SessionFactory
    ) -> None:
        _seed(store, node("Art", subs=[node("Props"), node("Wood")]), node("Audio", subs=[node("Music")]))
        session = make_session()
        session.start()

        assert session.select_subcategory("id-Wood")
        assert not session.select_subcategory("id-Music")
        assert session.active_subcategory_id == "id-Wood"


class TestCategoryEdits:
    def test_add_category_saves_and_activates(
        self, session: CategorySession, store: PersistenceStore, bus: EventBus[Any]
    ) -> None:
        saved = Recorder()
        bus.subscribe(CategoriesSaved, saved)

        art = session.add_category("  Art  ")

        assert art is not None and art.name == "Art"
        assert session.active_category_id == art.id
        assert names(store.load(Scope.PRIVATE)) == ["Art"]
        assert saved.events == [CategoriesSaved(session.session_id, "private", 1)]

    def test_add_child_expands_parent(self, session: CategorySession) -> None:
        art = session.add_category("Art")
        assert art is not None

        child = session.add_category("Characters", parent_id=art.id)

        assert child is not None
        assert art.children == [child]
        assert session.is_expanded(art.id)

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_names_are_rejected(self, session: CategorySession, name: str) -> None:
        assert session.add_category(name) is None
        assert session.roots == []

    def test_rename_resorts(self, session: CategorySession) -> None:
        art = session.add_category("Art")
        session.add_category("Bees")
        assert art is not None

        assert session.rename_category(art.id, "Zoo")

        assert names(session.roots) == ["Bees", "Zoo"]
        assert not session.rename_category(art.id, "Zoo")

    def test_delete_active_category_falls_back_to_first_root(self, session: CategorySession) -> None:
        session.add_category("Bees")
        art = session.add_category("Art")
        zoo = session.add_category("Zoo")
        assert art is not None and zoo is not None

        assert session.delete_category(zoo.id)

        assert session.active_category_id == art.id
        assert names(session.roots) == ["Art", "Bees"]

    def test_move_and_make_top_level(self, session: CategorySession) -> None:
        art = session.add_category("Art")
        audio = session.add_category("Audio")
        assert art is not None and audio is not None

        assert session.move_category(audio.id, art.id)
        assert names(session.roots) == ["Art"]
        assert not session.move_category(art.id, audio.id)
        assert not session.move_category(audio.id, art.id)

        assert session.make_top_level(audio.id)
        assert names(session.roots) == ["Art", "Audio"]

    def test_move_to_unknown_parent_is_rejected(self, session: CategorySession) -> None:
        art = session.add_category("Art")
        assert art is not None

        assert not session.move_category(art.id, "missing")
        assert not session.move_category("missing", art.id)


class TestSubcategoryEdits:
    def test_add_subcategory_becomes_active(self, session: CategorySession) -> None:
        session.add_category("Art")

        sub = session.add_subcategory("Props")

        assert sub is not None
        assert session.active_subcategory_id == sub.id

    def test_add_subcategory_needs_a_category(self, session: CategorySession) -> None:
        assert session.add_subcategory("Props") is None

    def test_delete_active_subcategory_falls_back_to_first_remaining(self, session: CategorySession) -> None:
        session.add_category("Art")
        session.add_subcategory("Props")
        wood = session.add_subcategory("Wood")
        assert wood is not None

        assert session.delete_subcategory(wood.id)

        assert session.active_subcategory is not None
        assert session.active_subcategory.name == "Props"

    def test_rename_and_move_subcategory(self, session: CategorySession) -> None:
        art = session.add_category("Art")
        audio = session.add_category("Audio")
        assert art is not None and audio is not None
        props = session.add_subcategory("Props", art.id)
        assert props is not None

        assert session.rename_subcategory(props.id, "Clips")
        assert session.move_subcategory(props.id, art.id, audio.id)
        assert not session.move_subcategory(props.id, audio.id, audio.id)

        assert names(audio.sub_categories) == ["Clips"]
        assert art.sub_categories == []


class TestItems:
    def test_add_items_creates_first_subcategory(self, session: CategorySession, store: PersistenceStore) -> None:
        session.add_category("Art")

        assert session.add_items(["a", "b", "a"]) == 2

        [art] = store.load(Scope.PRIVATE)
        assert names(art.sub_categories) == ["Art"]
        assert art.sub_categories[0].item_refs == ["a", "b"]
        assert session.active_subcategory_id == art.sub_categories[0].id

    def test_add_items_without_active_category(self, session: CategorySession) -> None:
        assert session.add_items(["a"]) == 0

    def test_drop_removes_ref_from_every_other_holder(
        self, store: PersistenceStore, make_session: SessionFactory
    ) -> None:
        _seed(
            store,
            node("Art", items=["g1"], subs=[node("Props", items=["g1"])]),
            node("Audio", subs=[node("Music")]),
        )
        session = make_session()
        session.start()

        assert session.drop_items_on_subcategory(["g1"], "id-Music") == 1

        holders = [c.name for c in iter_categories(session.roots) if "g1" in c.item_refs]
        assert holders == ["Music"]

    def test_move_item_keeps_set_semantics(self, store: PersistenceStore, make_session: SessionFactory) -> None:
        _seed(store, node("Art", subs=[node("S1", items=["g1"]), node("S2", items=["g1"])]))
        session = make_session()
        session.start()

        assert session.move_item("g1", "id-S1", "id-S2")

        [art] = store.load(Scope.PRIVATE)
        assert art.sub_categories[0].item_refs == []
        assert art.sub_categories[1].item_refs == ["g1"]
        assert not session.move_item("g1", "id-S2", "id-S2")

    def test_remove_item(self, store: PersistenceStore, make_session: SessionFactory) -> None:
        _seed(store, node("Art", subs=[node("Props", items=["g1"])]))
        session = make_session()
        session.start()

        assert session.remove_item("g1", "id-Props")
        assert not session.remove_item("g1", "id-Props")

    def test_grouped_items_prunes_missing_refs(
        self, store: PersistenceStore, make_session: SessionFactory, bus: EventBus[Any]
    ) -> None:
        _seed(store, node("Art", subs=[node("Props", items=["here", "gone"])]))
        resolver = DictResolver({"here": ResolvedItem("here", True)})
        session = make_session(resolver=resolver)
        session.start()
        pruned = Recorder()
        bus.subscribe(ItemsPruned, pruned)

        result = session.grouped_items()

        assert [entry.ref for group in result.groups for entry in group.items] == ["here"]
        assert pruned.events == [ItemsPruned(session.session_id, "id-Props", ("gone",))]
        session.save()
        assert store.load(Scope.PRIVATE)[0].sub_categories[0].item_refs == ["here"]


class TestHostSelection:
    @pytest.fixture
    def bridge(self) -> InMemorySelectionBridge:
        return InMemorySelectionBridge(["held"])

    def test_plain_click_replaces_and_modifiers_extend(
        self, make_session: SessionFactory, bridge: InMemorySelectionBridge
    ) -> None:
        session = make_session(selection=bridge)
        session.start()

        assert session.selected_items == ("held",)
        assert session.select_items(["a"]) == ("a",)
        assert session.select_items(["b", "a"], add=True) == ("a", "b")
        assert session.select_items(["a", "c"], toggle=True) == ("b", "c")
        assert bridge.get_selected() == ["b", "c"]
        assert session.is_selected("c")

    def test_without_bridge_selection_is_inert(self, session: CategorySession) -> None:
        assert session.select_items(["a"]) == ()
        assert session.add_selected_items() == 0

    def test_add_selected_items_uses_host_selection(
        self, make_session: SessionFactory, bridge: InMemorySelectionBridge
    ) -> None:
        session = make_session(selection=bridge)
        session.start()
        session.add_category("Art")

        assert session.add_selected_items() == 1
        assert session.content_category.item_refs == ["held"]

    def test_host_changes_redraw_only_while_started(
        self, make_session: SessionFactory, bridge: InMemorySelectionBridge, bus: EventBus[Any]
    ) -> None:
        session = make_session(selection=bridge)
        session.start()
        recorder = Recorder()
        bus.subscribe(RedrawRequested, recorder)

        bridge.set_selected(["x"])
        assert session.selected_items == ("x",)
        assert len(recorder.events) == 1

        session.close()
        bridge.set_selected(["y"])
        assert session.selected_items == ("x",)
        assert len(recorder.events) == 1

        session.start()
        assert session.selected_items == ("y",)


class TestScopes:
    def test_switch_scope_saves_and_loads_the_other_layout(
        self, session: CategorySession, store: PersistenceStore, window_state: WindowStateStore, bus: EventBus[Any]
    ) -> None:
        switched = Recorder()
        bus.subscribe(ScopeSwitched, switched)
        session.add_category("Mine")

        assert session.switch_scope() is Scope.SHARED
        assert session.roots == []
        session.add_category("Ours")
        assert session.switch_scope() is Scope.PRIVATE

        assert names(session.roots) == ["Mine"]
        assert names(store.load(Scope.SHARED)) == ["Ours"]
        assert window_state.scope_for(PresentationMode.DOCKED) is Scope.PRIVATE
        assert [e.scope for e in switched.events] == ["shared", "private"]

    def test_selection_is_kept_per_scope(self, session: CategorySession) -> None:
        mine = session.add_category("Mine")
        session.switch_scope()
        ours = session.add_category("Ours")
        assert mine is not None and ours is not None

        session.switch_scope()
        assert session.active_category_id == mine.id
        session.switch_scope()
        assert session.active_category_id == ours.id


class TestMigration:
    def test_empty_ids_are_regenerated_and_saved(
        self, store: PersistenceStore, make_session: SessionFactory, bus: EventBus[Any]
    ) -> None:
        _seed(store, node("Art", id="", subs=[node("Props", id="")]), node("Audio", id=""))
        migrated = Recorder()
        bus.subscribe(LayoutMigrated, migrated)

        session = make_session()
        session.start()

        ids = [c.id for c in iter_categories(session.roots)]
        assert all(ids) and len(set(ids)) == 3
        assert [c.id for c in iter_categories(store.load(Scope.PRIVATE))] == ids
        assert migrated.events[0].node_count == 3


class TestPropagation:
    def test_edit_in_one_view_reaches_the_other_next_turn(
        self, make_session: SessionFactory, queue: DeferredQueue
    ) -> None:
        docked = make_session(PresentationMode.DOCKED)
        floating = make_session(PresentationMode.FLOATING)
        docked.start()
        floating.start()

        docked.add_category("Art")

        assert floating.roots == []
        queue.drain()
        assert names(floating.roots) == ["Art"]
        assert floating.roots[0] is not docked.roots[0]

    def test_reload_keeps_valid_selection_and_drops_stale_one(
        self, make_session: SessionFactory, queue: DeferredQueue
    ) -> None:
        docked = make_session(PresentationMode.DOCKED)
        floating = make_session(PresentationMode.FLOATING)
        docked.start()
        art = docked.add_category("Art")
        docked.add_category("Bees")
        assert art is not None
        floating.start()
        floating.select_category(art.id)

        docked.delete_category(art.id)
        queue.drain()

        assert floating.active_category is not None
        assert floating.active_category.name == "Bees"


class TestSaveFailure:
    def test_write_error_keeps_tree_and_reports(self, window_state: WindowStateStore, bus: EventBus[Any]) -> None:
        class BrokenBackend:
            def read_text(self) -> str | None:
                return None

            def write_text(self, text: str) -> None:
                raise PermissionError("read-only")

            def describe(self) -> str:
                return "broken"

        store = PersistenceStore(
            PrivateLayoutBackend(PreferencesStore(persist=False), "demo"),
            BrokenBackend(),
            scheduler=DeferredQueue(),
            guard=SaveGuard(),
        )
        window_state.set_scope_for(PresentationMode.DOCKED, Scope.SHARED)
        failures = Recorder()
        bus.subscribe(SaveFailed, failures)
        session = CategorySession(store, window_state, None, event_bus=bus)
        session.start()

        session.add_category("Art")

        assert names(session.roots) == ["Art"]
        assert failures.events[0].scope == "shared"
        assert "read-only" in failures.events[0].error
        assert not store.is_saving


class TestPresentation:
    def test_visible_rows_follow_expansion(self, session: CategorySession) -> None:
        art = session.add_category("Art")
        assert art is not None
        characters = session.add_category("Characters", parent_id=art.id)
        assert characters is not None
        session.add_category("Heroes", parent_id=characters.id)
        session.set_expanded(characters.id, False)

        assert [(d, c.name) for d, c in session.visible_rows()] == [(0, "Art"), (1, "Characters")]
        assert session.toggle_expanded(characters.id)
        assert [c.name for _d, c in session.visible_rows()] == ["Art", "Characters", "Heroes"]
        assert not session.toggle_expanded(art.id)
        assert [c.name for _d, c in session.visible_rows()] == ["Art"]

    def test_labels_show_counts_when_enabled(self, make_session: SessionFactory) -> None:
        settings = Settings(show_subcategory_count=True, show_item_count=True)
        session = make_session(settings=settings)
        category = node("Art", subs=[node("Props", items=["a", "b"])])

        assert session.category_label(category) == "Art (1)"
        assert session.subcategory_label(category.sub_categories[0]) == "Props (2)"

    def test_labels_are_plain_by_default(self, session: CategorySession) -> None:
        category = node("Art", subs=[node("Props", items=["a"])])

        assert session.category_label(category) == "Art"
        assert session.subcategory_label(category.sub_categories[0]) == "Props"

    def test_destinations_delegate_to_live_tree(self, session: CategorySession) -> None:
        art = session.add_category("Art")
        audio = session.add_category("Audio")
        assert art is not None and audio is not None
        session.add_subcategory("Props", art.id)

        assert [d.label for d in session.category_destinations(audio.id)] == ["Root (already here)", "Art"]
        assert session.category_destinations("missing") == []
        assert [d.label for d in session.item_destinations("missing")] == ["Art/Props", "Audio (no subcategories)"]
