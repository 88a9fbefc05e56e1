"""Category node type and its JSON-compatible serialized form.

A layout is an ordered sequence of root :class:`Category` nodes. Each node
owns its ``sub_categories`` (tab-like groupings) and ``children`` (nested
categories); item references are opaque strings resolved by the host.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence

from .errors import LayoutDecodeError

__all__ = [
    "Category",
    "LAYOUT_VERSION",
    "new_category",
    "new_id",
    "iter_categories",
    "serialize_categories",
    "deserialize_categories",
    "dumps_layout",
    "loads_layout",
]

LAYOUT_VERSION = 1
_LEGACY_WRAPPER_KEYS: tuple[str, ...] = ("_value", "List", "Value")
_LEGACY_ITEM_KEYS: tuple[str, ...] = ("fileGUIDs", "file_guids")


@dataclass(slots=True)
class Category:
    """A named node in the category tree.

    Equality is structural (ids, names, item refs and both child lists, in
    order). Tree operations compare nodes by identity.
    """

    id: str
    name: str
    item_refs: list[str] = field(default_factory=list)
    sub_categories: list[Category] = field(default_factory=list)
    children: list[Category] = field(default_factory=list)

    def has_item(self, ref: str) -> bool:
        return ref in self.item_refs

    def find_subcategory(self, sub_id: str | None) -> Category | None:
        if not sub_id:
            return None
        for sub in self.sub_categories:
            if sub.id == sub_id:
                return sub
        return None

    def __repr__(self) -> str:
        return (
            f"Category(id={self.id!r}, name={self.name!r}, items={len(self.item_refs)}, "
            f"subs={len(self.sub_categories)}, children={len(self.children)})"
        )


def new_id() -> str:
    """Return a fresh unique category id."""

    return str(uuid.uuid4())


def new_category(name: str, *, item_refs: Iterable[str] | None = None) -> Category:
    """Create a category with a fresh id and empty child lists."""

    refs: list[str] = []
    for ref in item_refs or ():
        if ref not in refs:
            refs.append(ref)
    return Category(id=new_id(), name=name, item_refs=refs)


def iter_categories(roots: Sequence[Category]) -> Iterator[Category]:
    """Yield every node depth-first: node, its subcategories, then its children."""

    for category in roots:
        yield category
        yield from iter_categories(category.sub_categories)
        yield from iter_categories(category.children)


# ----------------------------------------------------------------------
# Serialization
# ----------------------------------------------------------------------


def serialize_categories(roots: Sequence[Category]) -> list[dict[str, Any]]:
    """Convert a root sequence into plain JSON-compatible dicts."""

    return [_serialize_node(category) for category in roots]


def deserialize_categories(payload: Any) -> list[Category]:
    """Rebuild a root sequence from :func:`serialize_categories` output.

    Accepts the current payload (``{"version": 1, "categories": [...]}``), a
    bare node list, and the older ``_value``/``List`` wrappers.

    Raises:
        LayoutDecodeError: If the payload is not a recognizable layout.
    """

    nodes = _unwrap(payload)
    return [_deserialize_node(entry, path=f"[{index}]") for index, entry in enumerate(nodes)]


def dumps_layout(roots: Sequence[Category], *, pretty: bool = True) -> str:
    """Serialize a layout to JSON text."""

    payload = {"version": LAYOUT_VERSION, "categories": serialize_categories(roots)}
    if pretty:
        return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def loads_layout(text: str) -> list[Category]:
    """Parse JSON text produced by :func:`dumps_layout`.

    Blank text is an empty layout. Anything else that is not a layout,
    including nesting too deep to walk, raises :class:`LayoutDecodeError`.
    """

    if not text or not text.strip():
        return []
    try:
        payload = json.loads(text)
        return deserialize_categories(payload)
    except json.JSONDecodeError as exc:
        raise LayoutDecodeError(f"Layout is not valid JSON: {exc}") from exc
    except RecursionError as exc:
        raise LayoutDecodeError("Layout is nested too deeply") from exc


def _serialize_node(category: Category) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "itemRefs": list(category.item_refs),
        "subCategories": [_serialize_node(sub) for sub in category.sub_categories],
        "children": [_serialize_node(child) for child in category.children],
    }


def _unwrap(payload: Any) -> list[Any]:
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, Mapping):
        raise LayoutDecodeError(f"Unexpected layout payload type: {type(payload).__name__}")
    if "categories" in payload:
        nodes = payload["categories"]
    else:
        for key in _LEGACY_WRAPPER_KEYS:
            if key in payload:
                nodes = payload[key]
                break
        else:
            raise LayoutDecodeError("Layout payload has no category list")
    if nodes is None:
        return []
    if not isinstance(nodes, list):
        raise LayoutDecodeError("Layout category list is not a list")
    return nodes


def _deserialize_node(entry: Any, *, path: str) -> Category:
    if not isinstance(entry, Mapping):
        raise LayoutDecodeError(f"Category at {path} is not an object")

    raw_id = entry.get("id")
    category_id = str(raw_id) if raw_id is not None else ""
    raw_name = entry.get("name")
    name = str(raw_name) if raw_name is not None else ""

    items_payload = entry.get("itemRefs")
    if items_payload is None:
        for key in _LEGACY_ITEM_KEYS:
            if key in entry:
                items_payload = entry[key]
                break
    item_refs: list[str] = []
    for ref in _as_list(items_payload, f"{path}.itemRefs"):
        if not isinstance(ref, str):
            raise LayoutDecodeError(f"Item reference at {path} is not a string")
        if ref and ref not in item_refs:
            item_refs.append(ref)

    subs = _as_list(entry.get("subCategories"), f"{path}.subCategories")
    children = _as_list(entry.get("children"), f"{path}.children")
    return Category(
        id=category_id,
        name=name,
        item_refs=item_refs,
        sub_categories=[
            _deserialize_node(sub, path=f"{path}.subCategories[{i}]") for i, sub in enumerate(subs)
        ],
        children=[
            _deserialize_node(child, path=f"{path}.children[{i}]") for i, child in enumerate(children)
        ],
    )


def _as_list(value: Any, path: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise LayoutDecodeError(f"Expected a list at {path}")
    return value
