"""Helpers for converting exchangelib objects into internal models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pmc_exchange.exceptions import ExchangeAPIError
from pmc_exchange.exchange.service import FolderRef
from pmc_exchange.models import FlagStatus, MailMessage

# MAPI PidTagFlagStatus values.
_FLAG_STATUS_BY_CODE = {
    0: FlagStatus.NOT_FLAGGED,
    1: FlagStatus.COMPLETE,
    2: FlagStatus.FLAGGED,
}


def flag_status_from_code(code: Any) -> FlagStatus:
    """Map a PidTagFlagStatus value (or None when absent) to FlagStatus."""
    if code is None:
        return FlagStatus.NOT_FLAGGED
    try:
        return _FLAG_STATUS_BY_CODE.get(int(code), FlagStatus.NOT_FLAGGED)
    except (TypeError, ValueError):
        return FlagStatus.NOT_FLAGGED


def _received(item: Any) -> datetime:
    value = getattr(item, "datetime_received", None)
    if value is None:
        raise ExchangeAPIError(f"Item {item.id} has no received time; was datetime_received projected?")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def item_to_mail_message(item: Any) -> MailMessage:
    """Convert an exchangelib message (projected with ``only()``) to MailMessage.

    Args:
        item: exchangelib ``Message`` with id, datetime_received, subject,
            is_read and the registered ``flag_status`` extended property.

    Returns:
        MailMessage: Header-only model.

    Raises:
        ExchangeAPIError: If the item carries no received time.
    """
    is_read = getattr(item, "is_read", None)
    return MailMessage(
        id=str(item.id),
        received=_received(item),
        subject=getattr(item, "subject", None) or "",
        is_read=bool(is_read) if is_read is not None else None,
        flag_status=flag_status_from_code(getattr(item, "flag_status", None)),
    )


def item_parent_folder_id(item: Any) -> str | None:
    parent = getattr(item, "parent_folder_id", None)
    return getattr(parent, "id", None) if parent is not None else None


def folder_to_ref(folder: Any) -> FolderRef:
    """Convert an exchangelib folder to FolderRef."""
    parent = getattr(folder, "parent_folder_id", None)
    folder_type = getattr(folder, "folder_type", None)
    return FolderRef(
        id=str(folder.id),
        display_name=getattr(folder, "name", None) or "",
        folder_type=int(folder_type) if folder_type is not None else None,
        parent_id=getattr(parent, "id", None) if parent is not None else None,
    )
