"""Header-only projection of an Exchange message.

Only the identifier, received time, subject, read state and flag state are
requested from the server. Bodies and attachments are never fetched.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FlagStatus(str, Enum):
    """Follow-up flag state of a message."""

    NOT_FLAGGED = "notFlagged"
    FLAGGED = "flagged"
    COMPLETE = "complete"


class MailMessage(BaseModel):
    """A minimal representation of an email message without the body."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="EWS item ID")
    received: datetime = Field(description="Time the message was received")
    subject: str = Field(default="", description="Subject line")
    is_read: Optional[bool] = Field(default=None, description="Read state, if projected")
    flag_status: FlagStatus = Field(
        default=FlagStatus.NOT_FLAGGED,
        description="Follow-up flag state",
    )
