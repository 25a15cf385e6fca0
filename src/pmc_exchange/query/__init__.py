"""Folder resolution and paginated item queries."""

from .folders import FolderResolver
from .items import ItemEnumerator

__all__ = ["FolderResolver", "ItemEnumerator"]
