"""Drag-and-drop gestures mapped onto session operations.

Views report gesture phases (begin, drop, release, cancel); how a
gesture is recognized is up to the host.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .session import CategorySession

__all__ = ["DragController", "DragKind", "DragState"]

LOGGER = logging.getLogger(__name__)


class DragKind(Enum):
    CATEGORY = auto()
    SUBCATEGORY = auto()


@dataclass(slots=True, frozen=True)
class DragState:
    kind: DragKind
    node_id: str
    source_id: str | None = None


class DragController:
    """Tracks one in-flight drag for a session."""

    def __init__(self, session: CategorySession) -> None:
        self._session = session
        self._state: DragState | None = None

    @property
    def active(self) -> DragState | None:
        return self._state

    def begin_category(self, category_id: str) -> bool:
        if self._session.find_category(category_id) is None:
            return False
        self._state = DragState(DragKind.CATEGORY, category_id)
        LOGGER.debug("Dragging category %s", category_id)
        return True

    def begin_subcategory(self, parent_id: str, sub_id: str) -> bool:
        parent = self._session.find_category(parent_id)
        if parent is None or parent.find_subcategory(sub_id) is None:
            return False
        self._state = DragState(DragKind.SUBCATEGORY, sub_id, parent_id)
        LOGGER.debug("Dragging subcategory %s from %s", sub_id, parent_id)
        return True

    def drop_on_category(self, target_id: str) -> bool:
        """Reparent the dragged category, or move the dragged tab, onto ``target_id``."""

        state = self._take()
        if state is None or state.node_id == target_id:
            return False
        if state.kind is DragKind.CATEGORY:
            return self._session.move_category(state.node_id, target_id)
        if state.source_id is None:
            return False
        return self._session.move_subcategory(state.node_id, state.source_id, target_id)

    def drop_on_root(self) -> bool:
        state = self._take()
        if state is None or state.kind is not DragKind.CATEGORY:
            return False
        return self._session.make_top_level(state.node_id)

    def release_outside(self) -> bool:
        """A category released over no target becomes top-level; tabs snap back."""

        return self.drop_on_root()

    def cancel(self) -> None:
        if self._state is not None:
            LOGGER.debug("Drag of %s cancelled", self._state.node_id)
        self._state = None

    def _take(self) -> DragState | None:
        state, self._state = self._state, None
        return state
