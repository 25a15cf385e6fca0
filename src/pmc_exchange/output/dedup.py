"""Run-scoped duplicate suppression."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator

import structlog

from pmc_exchange.models import MailMessage

logger = structlog.get_logger()


class Deduplicator:
    """Pass each message identifier through at most once.

    The set of seen identifiers lives on the instance and only grows; create
    a new Deduplicator per run.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def accept(self, message: MailMessage) -> bool:
        """Record ``message`` and return True if its id was not seen before."""
        if message.id in self._seen:
            logger.debug("duplicate_suppressed", message_id=message.id)
            return False
        self._seen.add(message.id)
        return True

    async def filter(self, messages: AsyncIterable[MailMessage]) -> AsyncIterator[MailMessage]:
        """Yield first occurrences from ``messages`` in arrival order."""
        async for message in messages:
            if self.accept(message):
                yield message
