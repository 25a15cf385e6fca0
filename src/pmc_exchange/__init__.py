"""pmc-exchange - unread and flagged Exchange messages as JSON events.

This package connects to an Exchange mailbox over EWS, collects unread and
flagged messages and writes one JSON record per message to standard output
for the downstream event pipeline.
"""

__version__ = "0.1.0"

from pmc_exchange.config import Settings, get_settings, load_settings

__all__ = ["Settings", "get_settings", "load_settings", "__version__"]
