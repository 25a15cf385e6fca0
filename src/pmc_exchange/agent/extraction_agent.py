"""Extraction agent implementation.

This module provides the agent that resolves query scopes, runs the unread
and flagged queries and streams the results to standard output.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum

import structlog

from pmc_exchange.config import Settings
from pmc_exchange.exchange.service import FolderRef, MailService
from pmc_exchange.models import MailMessage
from pmc_exchange.output import Deduplicator, RecordEmitter
from pmc_exchange.query import FolderResolver, ItemEnumerator
from pmc_exchange.query.folders import DEFAULT_FOLDER_PAGE_SIZE
from pmc_exchange.query.items import DEFAULT_ITEM_PAGE_SIZE

logger = structlog.get_logger()


class QueryMode(str, Enum):
    """Which queries a run executes."""

    UNREAD = "unread"
    FLAGGED = "flagged"
    ALL = "all"

    @property
    def runs_unread(self) -> bool:
        return self in (QueryMode.UNREAD, QueryMode.ALL)

    @property
    def runs_flagged(self) -> bool:
        return self in (QueryMode.FLAGGED, QueryMode.ALL)


@dataclass(frozen=True)
class QueryScopes:
    inbox_tree: list[FolderRef]
    all_items: FolderRef | None
    junk: FolderRef | None


class ExtractionAgent:
    """Single-pass extraction of unread and flagged messages.

    All scopes are resolved before the first item query, so a missing
    AllItems folder fails the run before anything is written.
    """

    def __init__(
        self,
        service: MailService,
        settings: Settings | None = None,
        emitter: RecordEmitter | None = None,
    ) -> None:
        """Initialize the extraction agent.

        Args:
            service: Mail service to query.
            settings: Application settings; only the page sizes are used.
            emitter: Output sink. If None, writes to standard output.
        """
        folder_page_size = settings.folder_page_size if settings else DEFAULT_FOLDER_PAGE_SIZE
        item_page_size = settings.item_page_size if settings else DEFAULT_ITEM_PAGE_SIZE

        self.service = service
        self.resolver = FolderResolver(service, page_size=folder_page_size)
        self.enumerator = ItemEnumerator(service, page_size=item_page_size)
        self.emitter = emitter or RecordEmitter()
        logger.info("extraction_agent_initialized")

    async def run(self, mode: QueryMode = QueryMode.ALL) -> int:
        """Run the configured queries once and emit every result.

        Args:
            mode: Queries to execute. Only ``ALL`` deduplicates, since a
                message can be both unread and flagged.

        Returns:
            Number of records written.
        """
        logger.info("extraction_started", mode=mode.value)

        scopes = await self.resolve_scopes(mode)
        messages = self.iter_messages(mode, scopes)
        if mode is QueryMode.ALL:
            messages = Deduplicator().filter(messages)

        async for message in messages:
            self.emitter.emit(message)

        logger.info("extraction_completed", mode=mode.value, emitted=self.emitter.emitted)
        return self.emitter.emitted

    async def resolve_scopes(self, mode: QueryMode) -> QueryScopes:
        inbox_tree: list[FolderRef] = []
        all_items = junk = None
        if mode.runs_unread:
            inbox_tree = await self.resolver.resolve_inbox_tree()
        if mode.runs_flagged:
            all_items = await self.resolver.resolve_all_items()
            junk = await self.resolver.resolve_junk()
        return QueryScopes(inbox_tree=inbox_tree, all_items=all_items, junk=junk)

    async def iter_messages(self, mode: QueryMode, scopes: QueryScopes) -> AsyncIterator[MailMessage]:
        """Unread stream first, fully drained, then the flagged stream."""
        if mode.runs_unread:
            async for message in self.enumerator.iter_unread(scopes.inbox_tree):
                yield message
        if mode.runs_flagged:
            assert scopes.all_items is not None and scopes.junk is not None
            async for message in self.enumerator.iter_flagged(scopes.all_items, scopes.junk):
                yield message
