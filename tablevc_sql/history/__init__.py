"""
History module for tablevc-sql - the commit log of versioned tables.

This module handles:
- History entry types and content-derived commit ids
- The in-memory version history (the mirror)
- The persisted history log table
- The durable version history tying both together

Invariants:
    - History entries are immutable and only ever appended
    - Storage-local sequence numbers order rows within one store only
    - Commit ids correlate entries across stores
"""

from .durable import DurableVersionHistory, HistoryState
from .entries import (
    HistoryEntry,
    HistoryInit,
    HistoryMerge,
    HistoryOperation,
    RecordAdded,
    RecordChanged,
    RecordDeleted,
    commit_id_for_operation,
    entry_from_dict,
)
from .log_store import HistoryLogStore
from .memory import HistoryDelta, MemoryVersionHistory

__all__ = [
    "DurableVersionHistory",
    "HistoryDelta",
    "HistoryEntry",
    "HistoryInit",
    "HistoryLogStore",
    "HistoryMerge",
    "HistoryOperation",
    "HistoryState",
    "MemoryVersionHistory",
    "RecordAdded",
    "RecordChanged",
    "RecordDeleted",
    "commit_id_for_operation",
    "entry_from_dict",
]
