"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone

import pytest
import structlog

from pmc_exchange.exchange import FakeMailService
from pmc_exchange.models import FlagStatus, MailMessage


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Make every test load settings afresh."""
    from pmc_exchange.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration done by CLI tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def mock_settings():
    """Provide settings that never touch a real server."""
    from pmc_exchange.config import Settings

    return Settings(
        username="CONTOSO\\alice",
        password="s3cret",
        email="alice@contoso.com",
        ews_url="https://mail.contoso.com/EWS/Exchange.asmx",
        log_level="DEBUG",
    )


@pytest.fixture
def make_message():
    """Factory for MailMessage instances with sensible defaults."""

    def _make(
        message_id: str,
        *,
        subject: str = "Hello",
        is_read: bool | None = False,
        flag_status: FlagStatus = FlagStatus.NOT_FLAGGED,
        received: datetime | None = None,
    ) -> MailMessage:
        return MailMessage(
            id=message_id,
            received=received or datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
            subject=subject,
            is_read=is_read,
            flag_status=flag_status,
        )

    return _make


@pytest.fixture
def fake_service() -> FakeMailService:
    """Mailbox with root, Inbox, Junk and the AllItems search folder."""
    return FakeMailService()
