"""
In-memory version history.

MemoryVersionHistory is the version-history contract a merge engine reads
from: an ordered, append-only list of history entries indexed by commit id.
It is usable on its own (pure in-memory versioned tables) and is the mirror
that DurableVersionHistory keeps in sync with the persisted log.

Invariants:
    - Entries are only ever appended, never removed, reordered or replaced
    - A commit id appears at most once
    - Every read operation is served from memory, without I/O

How to change safely:
    - Read operations must stay synchronous and side-effect free
    - Subclasses change how entries arrive (push/refresh), never how they
      are read
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from .entries import HistoryEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryDelta:
    """Entries committed after a known commit.

    Attributes:
        commit_id: Last commit id of the history the delta was taken from
        changes: Entries strictly after the requested commit, oldest first
    """

    commit_id: str | None
    changes: list[HistoryEntry] = field(default_factory=list)


class MemoryVersionHistory:
    """Ordered in-memory log of history entries.

    Example:
        >>> history = MemoryVersionHistory([init_entry])
        >>> await history.push(added_entry)
        2
        >>> history.index_of(added_entry.commit_id)
        1
        >>> history.history_delta(init_entry.commit_id).changes
        [added_entry]
    """

    def __init__(self, entries: Iterable[HistoryEntry] = ()) -> None:
        """Initialize the history.

        Args:
            entries: Initial entries, oldest first
        """
        self._entries: list[HistoryEntry] = []
        self._index: dict[str, int] = {}
        for entry in entries:
            self._absorb(entry)

    def _absorb(self, entry: HistoryEntry) -> bool:
        """Append an entry unless its commit id is already known.

        Returns:
            True if the entry was appended
        """
        if entry.commit_id in self._index:
            return False
        self._index[entry.commit_id] = len(self._entries)
        self._entries.append(entry)
        return True

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def length(self) -> int:
        return len(self._entries)

    async def push(self, entry: HistoryEntry) -> int:
        """Append an entry.

        Returns:
            The new length of the history
        """
        if not self._absorb(entry):
            logger.debug("Commit already in history", extra={"commit_id": entry.commit_id})
        return len(self._entries)

    async def refresh(self) -> int:
        """Absorb entries written elsewhere. Nothing to do in memory.

        Returns:
            The length of the history
        """
        return len(self._entries)

    def get_by_index(self, index: int) -> HistoryEntry:
        """Entry at a position (negative indexes count from the end).

        Raises:
            IndexError: If the position is out of range
        """
        return self._entries[index]

    def index_of(self, commit_id: str) -> int:
        """Position of a commit, or -1 if the commit is unknown."""
        return self._index.get(commit_id, -1)

    def entry_for(self, commit_id: str) -> HistoryEntry | None:
        """Entry with the given commit id, if any."""
        index = self.index_of(commit_id)
        return self._entries[index] if index >= 0 else None

    def last_entry(self) -> HistoryEntry | None:
        return self._entries[-1] if self._entries else None

    def last_commit_id(self) -> str | None:
        return self._entries[-1].commit_id if self._entries else None

    def entries(self, start: int = 0, end: int | None = None) -> list[HistoryEntry]:
        """Entries in the half-open position range [start, end)."""
        return self._entries[start:end]

    def previous_commit_id(self, commit_id: str) -> str | None:
        """Commit id just before the given one.

        Returns:
            None if the commit is unknown or is the first entry
        """
        index = self.index_of(commit_id)
        if index <= 0:
            return None
        return self._entries[index - 1].commit_id

    def next_commit_id(self, commit_id: str) -> str | None:
        """Commit id just after the given one.

        Returns:
            None if the commit is unknown or is the last entry
        """
        index = self.index_of(commit_id)
        if index < 0 or index + 1 >= len(self._entries):
            return None
        return self._entries[index + 1].commit_id

    def branch_from(self, commit_id: str) -> list[HistoryEntry] | None:
        """Entries strictly after a commit.

        Returns:
            The entries, or None if the commit is unknown
        """
        index = self.index_of(commit_id)
        if index < 0:
            return None
        return self._entries[index + 1 :]

    def history_delta(self, commit_id: str) -> HistoryDelta | None:
        """Changes committed since a commit.

        Returns:
            The delta, or None if the commit is unknown
        """
        branch = self.branch_from(commit_id)
        if branch is None:
            return None
        return HistoryDelta(commit_id=self.last_commit_id(), changes=branch)
