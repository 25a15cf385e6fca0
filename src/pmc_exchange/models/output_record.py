"""Output record written to standard output for each extracted message.

The record shape is consumed by the downstream event pipeline and is kept
flat: one JSON object per line.
"""

from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from pmc_exchange.models.message import FlagStatus, MailMessage

SOURCE = "pmc-exchange"


class OutputRecord(BaseModel):
    """A single emitted email event."""

    model_config = ConfigDict(frozen=True)

    source: Literal["pmc-exchange"] = Field(default=SOURCE, description="Event source tag")
    type: Literal["email"] = Field(default="email", description="Event type")
    id: str = Field(description="EWS item ID")
    # Field name is fixed by the output format.
    datetime: dt.datetime = Field(description="Time the message was received")
    subject: str = Field(default="", description="Subject line")

    flagged: bool = Field(default=False, description="Whether the message carries a flag")
    completed: bool = Field(default=False, description="Whether the flag is marked complete")
    read: bool | None = Field(default=None, description="Read state, when known")
    rank: int = Field(default=0, description="Ordering hint for downstream consumers")

    @classmethod
    def from_message(cls, message: MailMessage) -> OutputRecord:
        """Build the record for a message. A completed flag still counts as flagged."""
        return cls(
            id=message.id,
            datetime=message.received,
            subject=message.subject,
            flagged=message.flag_status is not FlagStatus.NOT_FLAGGED,
            completed=message.flag_status is FlagStatus.COMPLETE,
            read=message.is_read,
        )

    def to_json_line(self) -> str:
        """Serialize to compact single-line JSON (no trailing newline)."""
        return self.model_dump_json()
