"""Resolution of the folders used as query scopes."""

from __future__ import annotations

from collections.abc import AsyncIterator

import structlog

from pmc_exchange.exceptions import MissingFolderError
from pmc_exchange.exchange.service import (
    FOLDER_TYPE_SEARCH,
    FolderQuery,
    FolderRef,
    MailService,
    Traversal,
    WellKnownFolder,
)

logger = structlog.get_logger()

ALL_ITEMS_NAME = "AllItems"
DEFAULT_FOLDER_PAGE_SIZE = 10


class FolderResolver:
    """Locate the AllItems search folder, the Inbox subtree and Junk."""

    def __init__(self, service: MailService, *, page_size: int = DEFAULT_FOLDER_PAGE_SIZE) -> None:
        self._service = service
        self._page_size = page_size

    async def resolve_all_items(self) -> FolderRef:
        """Find Outlook's own "AllItems" search folder below the account root.

        Raises:
            MissingFolderError: If there is not exactly one such folder.
        """
        root = await self._service.bind_well_known_folder(WellKnownFolder.ROOT)
        query = FolderQuery(display_name=ALL_ITEMS_NAME, folder_type=FOLDER_TYPE_SEARCH)
        matches = [folder async for folder in self._iter_folders(root, query)]

        if len(matches) != 1:
            logger.error("all_items_folder_unresolved", match_count=len(matches))
            raise MissingFolderError(
                f"Expected exactly one {ALL_ITEMS_NAME} search folder, found {len(matches)}"
            )

        logger.info("folder_resolved", folder=ALL_ITEMS_NAME, folder_id=matches[0].id)
        return matches[0]

    async def resolve_inbox_tree(self) -> list[FolderRef]:
        """Return the Inbox followed by all of its descendants."""
        inbox = await self._service.bind_well_known_folder(WellKnownFolder.INBOX)
        query = FolderQuery(traversal=Traversal.DEEP)
        folders = [inbox]
        folders.extend([folder async for folder in self._iter_folders(inbox, query)])

        logger.info("folder_resolved", folder="Inbox", subtree_size=len(folders))
        return folders

    async def resolve_junk(self) -> FolderRef:
        junk = await self._service.bind_well_known_folder(WellKnownFolder.JUNK)
        logger.info("folder_resolved", folder="Junk", folder_id=junk.id)
        return junk

    async def _iter_folders(self, parent: FolderRef, query: FolderQuery) -> AsyncIterator[FolderRef]:
        offset = 0
        while True:
            page = await self._service.search_folders(
                parent,
                query,
                offset=offset,
                page_size=self._page_size,
            )
            for folder in page.results:
                yield folder
            if not page.more_available:
                break
            offset = page.next_page_offset or 0
