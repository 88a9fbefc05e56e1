"""Host-side collaborators: item resolution and selection exchange."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Iterable, Protocol, Sequence

__all__ = [
    "ResolvedItem",
    "ItemResolver",
    "FileSystemItemResolver",
    "PassthroughItemResolver",
    "SelectionBridge",
    "SelectionCallback",
    "InMemorySelectionBridge",
]

LOGGER = logging.getLogger(__name__)

SelectionCallback = Callable[[Sequence[str]], None]


@dataclass(slots=True, frozen=True)
class ResolvedItem:
    """What the host knows about an opaque item reference."""

    display_name: str
    exists: bool
    path: Path | None = None
    kind: str | None = None
    preview_icon: Any = None
    folder: str | None = None
    is_folder: bool = False


class ItemResolver(Protocol):
    def resolve(self, item_id: str) -> ResolvedItem:
        ...


class FileSystemItemResolver:
    """Resolves item refs as paths relative to a project root.

    ``kind`` is derived from the file extension (``PNGFile``) and
    directories report ``Folder``.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, item_id: str) -> ResolvedItem:
        relative = PurePosixPath(item_id.replace("\\", "/"))
        path = self._root.joinpath(*relative.parts) if relative.parts else self._root
        folder = relative.parent.name or None
        try:
            is_dir = path.is_dir()
            exists = is_dir or path.is_file()
        except OSError as exc:
            LOGGER.debug("Could not stat %s: %s", path, exc)
            is_dir = exists = False
        if is_dir:
            kind = "Folder"
        else:
            suffix = relative.suffix.lstrip(".")
            kind = f"{suffix.upper()}File" if suffix else "File"
        return ResolvedItem(
            display_name=relative.name or item_id,
            exists=exists,
            path=path,
            kind=kind,
            folder=folder,
            is_folder=is_dir,
        )


class SelectionBridge(Protocol):
    """Two-way exchange with the host's notion of "selected items"."""

    def get_selected(self) -> list[str]:
        ...

    def set_selected(self, item_ids: Iterable[str]) -> None:
        ...

    def on_selection_changed(self, callback: SelectionCallback) -> None:
        ...


class InMemorySelectionBridge:
    """Selection bridge for headless hosts and tests."""

    def __init__(self, selected: Iterable[str] | None = None) -> None:
        self._selected: list[str] = list(selected or ())
        self._callbacks: list[SelectionCallback] = []

    def get_selected(self) -> list[str]:
        return list(self._selected)

    def set_selected(self, item_ids: Iterable[str]) -> None:
        selected: list[str] = []
        for item_id in item_ids:
            if item_id not in selected:
                selected.append(item_id)
        if selected == self._selected:
            return
        self._selected = selected
        for callback in list(self._callbacks):
            try:
                callback(tuple(selected))
            except Exception:
                LOGGER.exception("Selection callback %r failed", callback)

    def on_selection_changed(self, callback: SelectionCallback) -> None:
        self._callbacks.append(callback)


class PassthroughItemResolver:
    """Treats every ref as an existing item named after itself."""

    def resolve(self, item_id: str) -> ResolvedItem:
        name = PurePosixPath(item_id.replace("\\", "/")).name or item_id
        return ResolvedItem(display_name=name, exists=True)
