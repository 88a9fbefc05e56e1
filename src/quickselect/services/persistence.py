"""Dual-scope layout persistence and per-window UI state.

Two independent scopes hold a category layout:

* ``Scope.PRIVATE``: one compact JSON string in the user's preferences,
  namespaced per project.
* ``Scope.SHARED``: a pretty-printed JSON file at the project root meant for
  version control or a synced folder.

:class:`PersistenceStore` dispatches on the scope to a small
:class:`LayoutBackend`; tree logic never special-cases the scope.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, Sequence

from ..core.category import Category, dumps_layout, loads_layout
from ..core.errors import LayoutDecodeError
from ..core.tree import sort_categories
from ..utils import file_io
from .save_guard import SaveGuard, get_save_guard

if TYPE_CHECKING:  # pragma: no cover
    from .preferences import PreferencesStore
    from .scheduler import Scheduler
    from .settings import Settings

__all__ = [
    "Scope",
    "PresentationMode",
    "LayoutBackend",
    "PrivateLayoutBackend",
    "SharedLayoutBackend",
    "PersistenceStore",
    "WindowStateStore",
]

LOGGER = logging.getLogger(__name__)


class Scope(str, Enum):
    """Persistence target for a layout."""

    PRIVATE = "private"
    SHARED = "shared"

    def toggled(self) -> Scope:
        return Scope.SHARED if self is Scope.PRIVATE else Scope.PRIVATE


class PresentationMode(str, Enum):
    """How a session's view is hosted; window state is kept per mode."""

    DOCKED = "docked"
    FLOATING = "floating"


# ----------------------------------------------------------------------
# Backends
# ----------------------------------------------------------------------


class LayoutBackend(Protocol):
    """Raw text storage for one scope."""

    def read_text(self) -> str | None:
        """Return the stored layout text, or None when nothing was saved."""
        ...

    def write_text(self, text: str) -> None:
        """Replace the stored layout text wholesale."""
        ...

    def describe(self) -> str:
        ...


class PrivateLayoutBackend:
    """Layout text stored under a project-specific preferences key."""

    def __init__(self, preferences: PreferencesStore, project_key: str) -> None:
        self._preferences = preferences
        self._key = f"{project_key}:categories"

    @property
    def key(self) -> str:
        return self._key

    def read_text(self) -> str | None:
        return self._preferences.get_string(self._key) or None

    def write_text(self, text: str) -> None:
        self._preferences.set_string(self._key, text)

    def describe(self) -> str:
        return f"preferences[{self._key}]"


class SharedLayoutBackend:
    """Layout text stored in a file at the project root."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read_text(self) -> str | None:
        return file_io.read_text_or_none(self._path)

    def write_text(self, text: str) -> None:
        file_io.write_text(self._path, text)

    def describe(self) -> str:
        return str(self._path)


# ----------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------


class PersistenceStore:
    """Loads and saves category layouts for both scopes.

    ``save`` on the shared scope raises the process-wide :class:`SaveGuard`
    before writing; the guard resets itself on the next scheduler turn. A
    save requested while another save is running (for instance from an
    event handler) is deferred to the next turn instead of interleaving.
    """

    def __init__(
        self,
        private: LayoutBackend,
        shared: LayoutBackend,
        *,
        scheduler: Scheduler,
        guard: SaveGuard | None = None,
    ) -> None:
        self._backends = {Scope.PRIVATE: private, Scope.SHARED: shared}
        self._scheduler = scheduler
        self._guard = guard or get_save_guard()
        self._saving = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        preferences: PreferencesStore,
        *,
        scheduler: Scheduler,
        guard: SaveGuard | None = None,
    ) -> PersistenceStore:
        return cls(
            PrivateLayoutBackend(preferences, settings.project_key),
            SharedLayoutBackend(settings.shared_layout_path),
            scheduler=scheduler,
            guard=guard,
        )

    @property
    def guard(self) -> SaveGuard:
        return self._guard

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def is_saving(self) -> bool:
        return self._saving

    def backend(self, scope: Scope) -> LayoutBackend:
        return self._backends[Scope(scope)]

    def load(self, scope: Scope) -> list[Category]:
        """Return the sorted layout for ``scope``; never raises for absent or corrupt data.

        A corrupt layout is replaced by an empty tree; the next save
        overwrites it.
        """

        backend = self.backend(scope)
        try:
            text = backend.read_text()
        except OSError as exc:
            LOGGER.warning("Could not read %s layout from %s: %s", scope.value, backend.describe(), exc)
            return []
        except UnicodeDecodeError as exc:
            LOGGER.warning(
                "Discarding undecodable %s layout at %s: %s", scope.value, backend.describe(), exc
            )
            return []
        if text is None:
            LOGGER.debug("No %s layout at %s; starting empty", scope.value, backend.describe())
            return []
        try:
            roots = loads_layout(text)
        except LayoutDecodeError as exc:
            LOGGER.warning(
                "Discarding unreadable %s layout at %s: %s", scope.value, backend.describe(), exc
            )
            return []
        sort_categories(roots)
        LOGGER.debug("Loaded %d root categories from %s", len(roots), backend.describe())
        return roots

    def save(self, scope: Scope, roots: Sequence[Category]) -> bool:
        """Serialize and write ``roots``; return False when deferred."""

        scope = Scope(scope)
        if self._saving:
            LOGGER.debug("PersistenceStore.save re-entered; deferring %s save", scope.value)
            snapshot = list(roots)
            self._scheduler.call_soon(self.save, scope, snapshot)
            return False

        backend = self.backend(scope)
        self._saving = True
        try:
            if scope is Scope.SHARED:
                self._guard.begin(self._scheduler)
            text = dumps_layout(roots, pretty=scope is Scope.SHARED)
            backend.write_text(text)
            if scope is Scope.SHARED and isinstance(backend, SharedLayoutBackend):
                self._guard.record_write(backend.path)
        except OSError:
            LOGGER.exception("Failed to save %s layout to %s", scope.value, backend.describe())
            raise
        finally:
            self._saving = False
        LOGGER.debug("Saved %d root categories to %s", len(roots), backend.describe())
        return True


# ----------------------------------------------------------------------
# Window state
# ----------------------------------------------------------------------


class WindowStateStore:
    """Session-local UI state keyed by (project, scope, presentation mode, node id)."""

    def __init__(self, preferences: PreferencesStore, project_key: str) -> None:
        self._preferences = preferences
        self._project = project_key

    @property
    def preferences(self) -> PreferencesStore:
        return self._preferences

    def _key(self, kind: str, *parts: str) -> str:
        return ":".join((self._project, kind, *parts))

    def active_category(self, scope: Scope, mode: PresentationMode) -> str | None:
        value = self._preferences.get_string(self._key("active_category", scope.value, mode.value))
        return value or None

    def set_active_category(self, scope: Scope, mode: PresentationMode, category_id: str | None) -> None:
        self._preferences.set_string(
            self._key("active_category", scope.value, mode.value), category_id or ""
        )

    def active_subcategory(self, scope: Scope, mode: PresentationMode, category_id: str) -> str | None:
        key = self._key("active_subcategory", scope.value, mode.value, category_id)
        return self._preferences.get_string(key) or None

    def set_active_subcategory(
        self, scope: Scope, mode: PresentationMode, category_id: str, sub_id: str | None
    ) -> None:
        key = self._key("active_subcategory", scope.value, mode.value, category_id)
        self._preferences.set_string(key, sub_id or "")

    def expanded(self, scope: Scope, mode: PresentationMode, category_id: str) -> bool:
        return self._preferences.get_bool(self._key("expanded", scope.value, mode.value, category_id))

    def set_expanded(self, scope: Scope, mode: PresentationMode, category_id: str, value: bool) -> None:
        self._preferences.set_bool(self._key("expanded", scope.value, mode.value, category_id), value)

    def scope_for(self, mode: PresentationMode) -> Scope:
        shared = self._preferences.get_bool(self._key("shared_mode", mode.value))
        return Scope.SHARED if shared else Scope.PRIVATE

    def set_scope_for(self, mode: PresentationMode, scope: Scope) -> None:
        self._preferences.set_bool(self._key("shared_mode", mode.value), scope is Scope.SHARED)
