"""Tests for :mod:`quickselect.ui.destinations`."""

from __future__ import annotations

from helpers import node

from quickselect.ui.destinations import Destination, category_destinations, item_destinations


def _tree():
    """Art{children: Characters{children: Heroes}}, Audio."""

    heroes = node("Heroes")
    characters = node("Characters", children=[heroes])
    art = node("Art", children=[characters])
    audio = node("Audio")
    return [art, audio]


def _labels(entries: list[Destination]) -> list[str]:
    return [entry.label for entry in entries]


class TestCategoryDestinations:
    def test_excludes_node_and_its_subtree(self) -> None:
        roots = _tree()
        art, _audio = roots
        characters = art.children[0]

        entries = category_destinations(roots, characters, art)

        assert _labels(entries) == ["Root", "Art (current)", "Audio"]
        assert [entry.enabled for entry in entries] == [True, False, True]

    def test_root_level_node_has_disabled_root_entry(self) -> None:
        roots = _tree()

        entries = category_destinations(roots, roots[1], None)

        assert entries[0] == Destination(("Root",), None, enabled=False, note="already here")
        assert _labels(entries[1:]) == ["Art", "Art/Characters", "Art/Characters/Heroes"]

    def test_every_enabled_entry_is_a_legal_move(self) -> None:
        roots = _tree()
        art = roots[0]

        entries = category_destinations(roots, art, None)

        assert _labels(entries) == ["Root (already here)", "Audio"]


class TestItemDestinations:
    def _roots(self):
        crew = node("Crew", subs=[node("Pilots")])
        ships = node("Ships", children=[crew])
        art = node("Art", subs=[node("Props"), node("Textures")], children=[ships])
        empty = node("Empty")
        return [art, empty]

    def test_lists_every_subcategory_and_disables_source(self) -> None:
        roots = self._roots()
        props = roots[0].sub_categories[0]

        entries = item_destinations(roots, props)

        assert _labels(entries) == [
            "Art/Props (current)",
            "Art/Textures",
            "Art/Ships/Crew/Pilots",
            "Empty (no subcategories)",
        ]
        assert entries[1].category_id == "id-Textures"
        assert not entries[0].enabled and not entries[-1].enabled

    def test_unknown_source_disables_nothing_but_empty_categories(self) -> None:
        entries = item_destinations(self._roots(), None)

        assert [entry.enabled for entry in entries] == [True, True, True, False]
