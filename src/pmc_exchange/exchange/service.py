"""Capability interface for the remote mail service.

The extraction code only needs three operations from Exchange: bind a
well-known folder, search folders below a parent, and find items in a folder.
Both the EWS adapter and the in-memory fake implement :class:`MailService`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Protocol, TypeVar, runtime_checkable

from pmc_exchange.models import MailMessage

# MAPI PidTagFolderType values.
FOLDER_TYPE_GENERIC = 1
FOLDER_TYPE_SEARCH = 2

DEFAULT_ITEM_CLASS = "IPM.Note"

T = TypeVar("T")


class WellKnownFolder(str, Enum):
    """Folders addressed by role rather than by search."""

    ROOT = "root"
    INBOX = "inbox"
    JUNK = "junk"


class Traversal(str, Enum):
    """How far below the parent a folder search reaches."""

    SHALLOW = "Shallow"
    DEEP = "Deep"


@dataclass(frozen=True)
class FolderRef:
    """A folder used as a query scope."""

    id: str
    display_name: str = ""
    folder_type: int | None = None
    parent_id: str | None = None


@dataclass(frozen=True)
class FolderQuery:
    """Restriction for a folder search. Unset fields match anything."""

    display_name: str | None = None
    folder_type: int | None = None
    traversal: Traversal = Traversal.SHALLOW


@dataclass(frozen=True)
class ItemQuery:
    """Restriction for an item search; all set conditions are ANDed."""

    item_class: str = DEFAULT_ITEM_CLASS
    unread_only: bool = False
    flag_status_exists: bool = False
    exclude_parent_folder_id: str | None = None


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a paginated response."""

    results: list[T] = field(default_factory=list)
    more_available: bool = False
    next_page_offset: int | None = None


FolderPage = Page[FolderRef]
ItemPage = Page[MailMessage]


@runtime_checkable
class MailService(Protocol):
    """Operations the extraction pipeline needs from the mail service."""

    async def bind_well_known_folder(self, name: WellKnownFolder) -> FolderRef: ...

    async def search_folders(
        self,
        parent: FolderRef,
        query: FolderQuery,
        *,
        offset: int = 0,
        page_size: int = 10,
    ) -> FolderPage: ...

    async def find_items(
        self,
        folder: FolderRef,
        query: ItemQuery,
        *,
        offset: int = 0,
        page_size: int = 1000,
    ) -> ItemPage: ...


def paginate(results: list[T], offset: int, page_size: int) -> Page[T]:
    """Cut one page out of a fully materialised result list."""
    window = results[offset : offset + page_size]
    more = offset + page_size < len(results)
    return Page(
        results=window,
        more_available=more,
        next_page_offset=offset + len(window) if more else None,
    )
