"""Paginated item queries.

Both queries request only the message projection needed for output and walk
result pages strictly in order until the service reports no more results.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

import structlog

from pmc_exchange.exchange.service import FolderRef, ItemQuery, MailService
from pmc_exchange.models import MailMessage

logger = structlog.get_logger()

DEFAULT_ITEM_PAGE_SIZE = 1000

UNREAD_QUERY = ItemQuery(unread_only=True)


def flagged_query(junk: FolderRef) -> ItemQuery:
    """Flagged messages anywhere except in ``junk``."""
    return ItemQuery(flag_status_exists=True, exclude_parent_folder_id=junk.id)


class ItemEnumerator:
    """Run item queries against a mail service, page by page."""

    def __init__(self, service: MailService, *, page_size: int = DEFAULT_ITEM_PAGE_SIZE) -> None:
        self._service = service
        self._page_size = page_size

    async def iter_items(self, folder: FolderRef, query: ItemQuery) -> AsyncIterator[MailMessage]:
        """Yield every item in ``folder`` matching ``query`` in service order."""
        offset = 0
        page_number = 0
        while True:
            page = await self._service.find_items(
                folder,
                query,
                offset=offset,
                page_size=self._page_size,
            )
            page_number += 1
            logger.debug(
                "item_page_fetched",
                folder=folder.display_name,
                page=page_number,
                offset=offset,
                item_count=len(page.results),
                more_available=page.more_available,
            )
            for item in page.results:
                yield item
            if not page.more_available:
                break
            offset = page.next_page_offset or 0

    async def iter_unread(self, folders: Sequence[FolderRef]) -> AsyncIterator[MailMessage]:
        """Unread messages, one folder at a time, each folder fully drained."""
        for folder in folders:
            async for item in self.iter_items(folder, UNREAD_QUERY):
                yield item

    async def iter_flagged(self, all_items: FolderRef, junk: FolderRef) -> AsyncIterator[MailMessage]:
        """Flagged messages in the AllItems search folder, excluding Junk."""
        async for item in self.iter_items(all_items, flagged_query(junk)):
            yield item
