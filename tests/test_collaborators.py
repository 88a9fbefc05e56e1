"""Tests for host collaborators."""

from __future__ import annotations

from pathlib import Path

from quickselect.ui.collaborators import (
    FileSystemItemResolver,
    InMemorySelectionBridge,
    PassthroughItemResolver,
)


class TestFileSystemItemResolver:
    def test_existing_file(self, tmp_path: Path) -> None:
        (tmp_path / "Textures").mkdir()
        (tmp_path / "Textures" / "rock.png").write_bytes(b"\x89PNG")
        resolver = FileSystemItemResolver(tmp_path)

        item = resolver.resolve("Textures/rock.png")

        assert item.exists
        assert item.display_name == "rock.png"
        assert item.kind == "PNGFile"
        assert item.folder == "Textures"
        assert item.path == tmp_path / "Textures" / "rock.png"
        assert not item.is_folder

    def test_directory(self, tmp_path: Path) -> None:
        (tmp_path / "Prefabs").mkdir()

        item = FileSystemItemResolver(tmp_path).resolve("Prefabs")

        assert item.exists and item.is_folder
        assert item.kind == "Folder"
        assert item.folder is None

    def test_missing_and_extensionless(self, tmp_path: Path) -> None:
        item = FileSystemItemResolver(tmp_path).resolve("docs\\README")

        assert not item.exists
        assert item.kind == "File"
        assert item.folder == "docs"


def test_passthrough_resolver_treats_everything_as_present() -> None:
    item = PassthroughItemResolver().resolve("a/b/c.txt")

    assert item.exists
    assert item.display_name == "c.txt"


class TestInMemorySelectionBridge:
    def test_set_selected_dedupes_and_notifies(self) -> None:
        bridge = InMemorySelectionBridge()
        seen: list[tuple[str, ...]] = []
        bridge.on_selection_changed(seen.append)

        bridge.set_selected(["a", "b", "a"])

        assert bridge.get_selected() == ["a", "b"]
        assert seen == [("a", "b")]

    def test_unchanged_selection_is_silent(self) -> None:
        bridge = InMemorySelectionBridge(["a"])
        seen: list[tuple[str, ...]] = []
        bridge.on_selection_changed(seen.append)

        bridge.set_selected(["a"])

        assert seen == []

    def test_failing_callback_does_not_block_others(self) -> None:
        bridge = InMemorySelectionBridge()
        seen: list[tuple[str, ...]] = []

        def broken(_selection: tuple[str, ...]) -> None:
            raise RuntimeError("boom")

        bridge.on_selection_changed(broken)
        bridge.on_selection_changed(seen.append)
        bridge.set_selected(["x"])

        assert seen == [("x",)]
