"""Category tree model and structural operations."""

from .category import Category, deserialize_categories, new_category, serialize_categories
from .errors import CategoryError, CategoryNotFound, InvalidMove, LayoutDecodeError

__all__ = [
    "Category",
    "CategoryError",
    "CategoryNotFound",
    "InvalidMove",
    "LayoutDecodeError",
    "deserialize_categories",
    "new_category",
    "serialize_categories",
]
