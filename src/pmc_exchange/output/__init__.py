"""Deduplication and NDJSON emission of extracted messages."""

from .dedup import Deduplicator
from .emitter import RecordEmitter

__all__ = ["Deduplicator", "RecordEmitter"]
