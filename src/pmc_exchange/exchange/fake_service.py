"""In-memory mail service with synthetic paged responses.

Used to exercise the extraction pipeline without a live Exchange account.
Folders form a tree below ``root``; search folders (folder type 2) see the
items of every folder in the mailbox.
"""

from __future__ import annotations

from dataclasses import dataclass

from pmc_exchange.exceptions import ExchangeAPIError
from pmc_exchange.exchange.service import (
    DEFAULT_ITEM_CLASS,
    FOLDER_TYPE_GENERIC,
    FOLDER_TYPE_SEARCH,
    FolderPage,
    FolderQuery,
    FolderRef,
    ItemPage,
    ItemQuery,
    Page,
    Traversal,
    WellKnownFolder,
    paginate,
)
from pmc_exchange.models import FlagStatus, MailMessage


@dataclass(frozen=True)
class StoredItem:
    message: MailMessage
    folder_id: str
    item_class: str = DEFAULT_ITEM_CLASS


class FakeMailService:
    """Mail service backed by Python lists.

    Every call is recorded in ``calls`` as ``(operation, target_id, offset)``
    so tests can assert on the exact request sequence.
    """

    def __init__(self, *, with_all_items: bool = True) -> None:
        self._folders: dict[str, FolderRef] = {}
        self._order: list[str] = []
        self._well_known: dict[WellKnownFolder, str] = {}
        self._items: list[StoredItem] = []
        self._scripted: dict[str, list[ItemPage]] = {}
        self.calls: list[tuple[str, str, int]] = []

        self.add_folder("root", "Root", well_known=WellKnownFolder.ROOT)
        self.add_folder("inbox", "Inbox", parent_id="root", well_known=WellKnownFolder.INBOX)
        self.add_folder("junk", "Junk Email", parent_id="root", well_known=WellKnownFolder.JUNK)
        if with_all_items:
            self.add_folder("allitems", "AllItems", parent_id="root", folder_type=FOLDER_TYPE_SEARCH)

    def add_folder(
        self,
        folder_id: str,
        display_name: str,
        *,
        parent_id: str | None = None,
        folder_type: int = FOLDER_TYPE_GENERIC,
        well_known: WellKnownFolder | None = None,
    ) -> FolderRef:
        folder = FolderRef(
            id=folder_id,
            display_name=display_name,
            folder_type=folder_type,
            parent_id=parent_id,
        )
        self._folders[folder_id] = folder
        self._order.append(folder_id)
        if well_known is not None:
            self._well_known[well_known] = folder_id
        return folder

    def add_message(
        self,
        folder_id: str,
        message: MailMessage,
        *,
        item_class: str = DEFAULT_ITEM_CLASS,
    ) -> None:
        self._items.append(StoredItem(message=message, folder_id=folder_id, item_class=item_class))

    def script_item_pages(self, folder_id: str, pages: list[ItemPage]) -> None:
        """Serve ``pages`` in order for ``folder_id``, ignoring the query."""
        self._scripted[folder_id] = list(pages)

    async def bind_well_known_folder(self, name: WellKnownFolder) -> FolderRef:
        self.calls.append(("bind_well_known_folder", name.value, 0))
        try:
            return self._folders[self._well_known[name]]
        except KeyError as exc:
            raise ExchangeAPIError(f"Well-known folder not available: {name.value}") from exc

    async def search_folders(
        self,
        parent: FolderRef,
        query: FolderQuery,
        *,
        offset: int = 0,
        page_size: int = 10,
    ) -> FolderPage:
        self.calls.append(("search_folders", parent.id, offset))
        if query.traversal is Traversal.DEEP:
            candidates = self._descendants(parent.id)
        else:
            candidates = self._children(parent.id)

        matches = [
            f
            for f in candidates
            if (query.display_name is None or f.display_name == query.display_name)
            and (query.folder_type is None or f.folder_type == query.folder_type)
        ]
        return paginate(matches, offset, page_size)

    async def find_items(
        self,
        folder: FolderRef,
        query: ItemQuery,
        *,
        offset: int = 0,
        page_size: int = 1000,
    ) -> ItemPage:
        self.calls.append(("find_items", folder.id, offset))
        scripted = self._scripted.get(folder.id)
        if scripted is not None:
            return scripted.pop(0) if scripted else Page()

        searches_mailbox = self._folders[folder.id].folder_type == FOLDER_TYPE_SEARCH
        matches = [
            stored.message
            for stored in self._items
            if (searches_mailbox or stored.folder_id == folder.id) and self._matches(stored, query)
        ]
        return paginate(matches, offset, page_size)

    def _children(self, parent_id: str) -> list[FolderRef]:
        return [self._folders[fid] for fid in self._order if self._folders[fid].parent_id == parent_id]

    def _descendants(self, parent_id: str) -> list[FolderRef]:
        result: list[FolderRef] = []
        for child in self._children(parent_id):
            result.append(child)
            result.extend(self._descendants(child.id))
        return result

    @staticmethod
    def _matches(stored: StoredItem, query: ItemQuery) -> bool:
        message = stored.message
        if stored.item_class != query.item_class:
            return False
        if query.unread_only and message.is_read is not False:
            return False
        if query.flag_status_exists and message.flag_status is FlagStatus.NOT_FLAGGED:
            return False
        if query.exclude_parent_folder_id is not None and stored.folder_id == query.exclude_parent_folder_id:
            return False
        return True
