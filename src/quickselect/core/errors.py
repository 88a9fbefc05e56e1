"""Error types raised by the category tree."""

from __future__ import annotations

from typing import ClassVar


class CategoryError(Exception):
    """Base class for category tree errors."""


class InvalidMove(CategoryError):
    """Raised when a reparent would create a cycle or is a no-op.

    Attributes:
        node_id: Id of the category being moved.
        target_id: Id of the requested parent, or None for the root sequence.
        reason: One of ``self``, ``descendant`` or ``already_here``.
    """

    SELF: ClassVar[str] = "self"
    DESCENDANT: ClassVar[str] = "descendant"
    ALREADY_HERE: ClassVar[str] = "already_here"

    def __init__(self, node_id: str, target_id: str | None, reason: str) -> None:
        self.node_id = node_id
        self.target_id = target_id
        self.reason = reason
        target = target_id if target_id is not None else "<root>"
        super().__init__(f"Cannot move {node_id} under {target}: {reason}")


class CategoryNotFound(CategoryError, LookupError):
    """Raised when an id does not resolve to a category."""

    def __init__(self, category_id: str) -> None:
        self.category_id = category_id
        super().__init__(f"Unknown category id: {category_id}")


class LayoutDecodeError(CategoryError, ValueError):
    """Raised when persisted layout data cannot be decoded."""


__all__ = ["CategoryError", "InvalidMove", "CategoryNotFound", "LayoutDecodeError"]
