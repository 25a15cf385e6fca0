"""Newline-delimited JSON output."""

from __future__ import annotations

import sys
from typing import TextIO

import structlog

from pmc_exchange.models import MailMessage, OutputRecord

logger = structlog.get_logger()


class RecordEmitter:
    """Write one JSON line per message and flush immediately.

    Write failures (for example a closed pipe) propagate to the caller.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self.emitted = 0

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so a redirected sys.stdout is honoured.
        return self._stream or sys.stdout

    def emit(self, message: MailMessage) -> OutputRecord:
        record = OutputRecord.from_message(message)
        stream = self.stream
        stream.write(record.to_json_line() + "\n")
        stream.flush()
        self.emitted += 1
        return record
