"""Exchange Web Services client implementation.

This module provides the :class:`MailService` implementation backed by
``exchangelib``.

Notes:
    exchangelib is synchronous. Calls are wrapped with `asyncio.to_thread` so
    the rest of the codebase stays async, and strictly one request is in
    flight at a time.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import structlog

from pmc_exchange.config import Settings
from pmc_exchange.exceptions import (
    AuthenticationError,
    DiscoveryError,
    ExchangeAPIError,
    PmcExchangeError,
)
from pmc_exchange.exchange.autodiscover import build_http_auth, discover_ews_url, is_secure_redirect
from pmc_exchange.exchange.parsing import folder_to_ref, item_parent_folder_id, item_to_mail_message
from pmc_exchange.exchange.service import (
    FolderPage,
    FolderQuery,
    FolderRef,
    ItemPage,
    ItemQuery,
    Page,
    WellKnownFolder,
)

logger = structlog.get_logger()

# MAPI property tags.
PID_TAG_FOLDER_TYPE = 0x3601
PID_TAG_FLAG_STATUS = 0x1090

_ITEM_FIELDS = ("datetime_received", "subject", "is_read", "flag_status", "parent_folder_id")

_WELL_KNOWN_ATTRS = {
    WellKnownFolder.ROOT: "root",
    WellKnownFolder.INBOX: "inbox",
    WellKnownFolder.JUNK: "junk",
}

_extended_properties_registered = False


def item_lookups(query: ItemQuery) -> dict[str, Any]:
    """Build the item restriction as exchangelib lookups, ANDed by ``filter()``."""
    lookups: dict[str, Any] = {"item_class": query.item_class}
    if query.unread_only:
        lookups["is_read"] = False
    if query.flag_status_exists:
        lookups["flag_status__exists"] = True
    return lookups


def folder_lookups(query: FolderQuery) -> dict[str, Any]:
    """Build the folder restriction as exchangelib lookups."""
    lookups: dict[str, Any] = {}
    if query.display_name is not None:
        lookups["name"] = query.display_name
    if query.folder_type is not None:
        lookups["folder_type"] = query.folder_type
    return lookups


def _lookahead_page(fetched: list[Any], offset: int, page_size: int) -> tuple[list[Any], bool, int | None]:
    # Callers fetch page_size + 1 rows; the extra row only signals another page.
    more = len(fetched) > page_size
    return fetched[:page_size], more, offset + page_size if more else None


def _register_extended_properties() -> None:
    """Teach exchangelib about the two MAPI properties used in restrictions."""
    global _extended_properties_registered
    if _extended_properties_registered:
        return

    from exchangelib import ExtendedProperty, Message
    from exchangelib.folders import Folder

    class FolderTypeProperty(ExtendedProperty):
        property_tag = PID_TAG_FOLDER_TYPE
        property_type = "Integer"

    class FlagStatusProperty(ExtendedProperty):
        property_tag = PID_TAG_FLAG_STATUS
        property_type = "Integer"

    Folder.register("folder_type", FolderTypeProperty)
    Message.register("flag_status", FlagStatusProperty)
    _extended_properties_registered = True


class ExchangeClient:
    """EWS client for folder and item queries.

    The client handles endpoint discovery, authentication and the three
    operations of :class:`MailService`.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the Exchange client.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from pmc_exchange.config import get_settings

        self.settings = settings or get_settings()
        self._account: Any | None = None
        self._folders: dict[str, Any] = {}
        logger.info("exchange_client_initialized", email=self.settings.email)

    async def authenticate(self) -> None:
        """Discover the EWS endpoint and open an authenticated session.

        Raises:
            AuthenticationError: If the credentials are rejected.
            DiscoveryError: If no https endpoint can be found.
        """
        if self._account is not None:
            return

        ews_url = self.settings.ews_url
        if ews_url is None:
            auth = build_http_auth(
                self.settings.username,
                self.settings.password.get_secret_value(),
                self.settings.auth_type,
            )
            ews_url = await asyncio.to_thread(
                discover_ews_url,
                self.settings.email,
                auth=auth,
                timeout=self.settings.autodiscover_timeout,
                max_redirects=self.settings.max_autodiscover_redirects,
            )
        elif not is_secure_redirect(ews_url):
            raise DiscoveryError(f"Refusing non-https EWS URL: {ews_url}")

        logger.info("exchange_authentication_started", ews_url=ews_url, auth_type=self.settings.auth_type)

        try:
            self._account = await asyncio.to_thread(self._build_account, ews_url)
        except Exception as exc:  # noqa: BLE001
            logger.exception("exchange_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("exchange_authentication_completed")

    async def close(self) -> None:
        """Release the HTTP session pool."""
        if self._account is None:
            return
        await asyncio.to_thread(self._account.protocol.close)
        self._account = None
        self._folders.clear()

    async def bind_well_known_folder(self, name: WellKnownFolder) -> FolderRef:
        """Bind a folder by role.

        Raises:
            ExchangeAPIError: If the request fails.
        """
        logger.debug("binding_well_known_folder", folder=name.value)
        return await self._call("exchange_bind_folder", self._bind_sync, name, folder=name.value)

    async def search_folders(
        self,
        parent: FolderRef,
        query: FolderQuery,
        *,
        offset: int = 0,
        page_size: int = 10,
    ) -> FolderPage:
        """Return one page of folders below ``parent`` matching ``query``.

        Each call is one FindFolder request carrying the offset and page size.

        Raises:
            ExchangeAPIError: If the request fails.
        """
        logger.debug("searching_folders", parent=parent.display_name, offset=offset, page_size=page_size)
        return await self._call(
            "exchange_search_folders",
            self._search_folders_sync,
            parent,
            query,
            offset,
            page_size,
            parent=parent.display_name,
        )

    async def find_items(
        self,
        folder: FolderRef,
        query: ItemQuery,
        *,
        offset: int = 0,
        page_size: int = 1000,
    ) -> ItemPage:
        """Return one page of items in ``folder`` matching ``query``.

        Raises:
            ExchangeAPIError: If the request fails.
        """
        logger.debug("finding_items", folder=folder.display_name, offset=offset, page_size=page_size)
        return await self._call(
            "exchange_find_items",
            self._find_items_sync,
            folder,
            query,
            offset,
            page_size,
            folder=folder.display_name,
        )

    async def _ensure_authenticated(self) -> None:
        if self._account is None:
            raise AuthenticationError(
                "Exchange client is not authenticated. Call await ExchangeClient.authenticate() first."
            )

    async def _call(self, event: str, func: Callable[..., Any], *args: Any, **context: Any) -> Any:
        await self._ensure_authenticated()
        try:
            return await asyncio.to_thread(func, *args)
        except PmcExchangeError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"{event}_failed", error=str(exc), **context)
            raise self._translate_error(exc) from exc

    @staticmethod
    def _translate_error(exc: Exception) -> PmcExchangeError:
        from exchangelib.errors import UnauthorizedError

        if isinstance(exc, UnauthorizedError):
            return AuthenticationError(str(exc))
        return ExchangeAPIError(str(exc))

    def _build_account(self, ews_url: str) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from exchangelib import DELEGATE, Account, Configuration, Credentials, Version
        from exchangelib.version import EXCHANGE_2016

        _register_extended_properties()

        credentials = Credentials(
            username=self.settings.username,
            password=self.settings.password.get_secret_value(),
        )
        config = Configuration(
            service_endpoint=ews_url,
            credentials=credentials,
            auth_type="basic" if self.settings.auth_type.lower() == "basic" else "NTLM",
            version=Version(build=EXCHANGE_2016),
        )
        account = Account(
            primary_smtp_address=self.settings.email,
            config=config,
            autodiscover=False,
            access_type=DELEGATE,
        )
        # First round trip; bad credentials fail here rather than mid-query.
        self._remember(account.root)
        return account

    def _remember(self, folder: Any) -> FolderRef:
        ref = folder_to_ref(folder)
        self._folders[ref.id] = folder
        return ref

    def _bind_sync(self, name: WellKnownFolder) -> FolderRef:
        assert self._account is not None
        return self._remember(getattr(self._account, _WELL_KNOWN_ATTRS[name]))

    def _folder_collection(self, parent: FolderRef) -> Any:
        from exchangelib.folders import FolderCollection

        return FolderCollection(account=self._account, folders=[self._folders[parent.id]])

    def _search_folders_sync(
        self,
        parent: FolderRef,
        query: FolderQuery,
        offset: int,
        page_size: int,
    ) -> FolderPage:
        assert self._account is not None
        from exchangelib import Q

        lookups = folder_lookups(query)
        found = self._folder_collection(parent).find_folders(
            q=Q(**lookups) if lookups else None,
            depth=query.traversal.value,
            page_size=page_size + 1,
            max_items=page_size + 1,
            offset=offset,
        )
        fetched = []
        for folder in found:
            # FindFolder reports per-folder failures inline.
            if isinstance(folder, Exception):
                raise folder
            fetched.append(folder)

        window, more, next_offset = _lookahead_page(fetched, offset, page_size)
        return Page(
            results=[self._remember(f) for f in window],
            more_available=more,
            next_page_offset=next_offset,
        )

    def _find_items_sync(
        self,
        folder: FolderRef,
        query: ItemQuery,
        offset: int,
        page_size: int,
    ) -> ItemPage:
        assert self._account is not None

        qs = self._folders[folder.id].filter(**item_lookups(query)).only(*_ITEM_FIELDS)
        # Without this exchangelib pages the slice in its own default chunks.
        qs.page_size = page_size + 1
        fetched = list(qs[offset : offset + page_size + 1])
        window, more, next_offset = _lookahead_page(fetched, offset, page_size)

        messages = [
            item_to_mail_message(item)
            for item in window
            if query.exclude_parent_folder_id is None
            or item_parent_folder_id(item) != query.exclude_parent_folder_id
        ]
        return Page(results=messages, more_available=more, next_page_offset=next_offset)
