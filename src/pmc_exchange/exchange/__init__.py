"""Access to the Exchange mail service.

:class:`MailService` is the capability interface used by the extraction
pipeline. :class:`ExchangeClient` implements it over EWS and
:class:`FakeMailService` implements it in memory.
"""

from .client import ExchangeClient
from .fake_service import FakeMailService
from .service import (
    FolderQuery,
    FolderRef,
    ItemQuery,
    MailService,
    Page,
    Traversal,
    WellKnownFolder,
)

__all__ = [
    "ExchangeClient",
    "FakeMailService",
    "FolderQuery",
    "FolderRef",
    "ItemQuery",
    "MailService",
    "Page",
    "Traversal",
    "WellKnownFolder",
]
