"""Data models for pmc-exchange.

This module contains Pydantic models for the message projections read from
Exchange and the records written to standard output.
"""

from pmc_exchange.models.message import FlagStatus, MailMessage
from pmc_exchange.models.output_record import OutputRecord

__all__ = ["FlagStatus", "MailMessage", "OutputRecord"]
