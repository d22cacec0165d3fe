"""
Durable version history backed by a relational history log table.

DurableVersionHistory exposes the same contract as MemoryVersionHistory, so
a merge engine can use either one. It is made of two cooperating parts:
- HistoryLogStore: the persisted log, source of truth, sequence numbered
- the in-memory mirror inherited from MemoryVersionHistory, commit-id indexed

They meet in exactly two places. push() writes a row and, once the
transaction has committed, appends the entry to the mirror. refresh() reads
the rows written since the mirror's last commit and absorbs the new ones.

Lifecycle:
    UNINITIALIZED -> BOOTSTRAPPING -> READY

    fresh (no from_commit_id):
        load every row; if the log is empty, persist a HistoryInit entry
        and start from it
    resuming (from_commit_id):
        load the row of that commit and every row after it; an unknown
        commit or an empty result is a consistency error

Invariants:
    - The mirror only grows, and only with committed entries
    - A failed push leaves neither a row nor a mirror entry behind
    - refresh() is idempotent: entries already mirrored are skipped by
      commit id, so a retried refresh is a no-op for them
    - Read operations never touch the database

How to change safely:
    - Never mutate the mirror before the row write has committed
    - Keep refresh() appending one entry at a time, by commit id
    - Test with two instances sharing one log table
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import partial

from ..db.database import Database
from ..db.schema import TableDefinition
from ..errors import EmptyHistoryError, HistoryNotReadyError
from .entries import HistoryEntry, HistoryInit
from .log_store import HistoryLogStore
from .memory import MemoryVersionHistory

logger = logging.getLogger(__name__)


class HistoryState(Enum):
    """Loading state of a durable history."""

    UNINITIALIZED = "uninitialized"
    BOOTSTRAPPING = "bootstrapping"
    READY = "ready"


class DurableVersionHistory(MemoryVersionHistory):
    """Version history persisted to a history log table.

    Attributes:
        who: Actor recorded on the entries this instance creates
        state: Loading state

    Example:
        >>> history = await DurableVersionHistory.load_or_init(
        ...     db, history_log_definition("tstLog", "tst_log"), who="user:42"
        ... )
        >>> await history.push(entry)
        >>> await history.refresh()
    """

    def __init__(self, store: HistoryLogStore, who: str | None = None) -> None:
        """Initialize an unloaded history. Use load_or_init() instead.

        Args:
            store: Persisted log
            who: Actor recorded on the entries this instance creates
        """
        super().__init__()
        self._store = store
        self.who = who
        self.state = HistoryState.UNINITIALIZED

    @classmethod
    async def load_or_init(
        cls,
        database: Database,
        definition: TableDefinition,
        from_commit_id: str | None = None,
        who: str | None = None,
    ) -> DurableVersionHistory:
        """Load a history from its log table, seeding an empty log.

        Args:
            database: Database holding the log table
            definition: History log table definition
            from_commit_id: Resume from this commit instead of loading the
                whole log
            who: Actor recorded on the entries this instance creates

        Returns:
            A ready history

        Raises:
            CommitNotFoundError: If from_commit_id is not in the log
            EmptyHistoryError: If resuming produced no entries
        """
        history = cls(HistoryLogStore(database, definition), who=who)
        await history.bootstrap(from_commit_id)
        return history

    @property
    def store(self) -> HistoryLogStore:
        return self._store

    @property
    def database(self) -> Database:
        return self._store.database

    def _require_ready(self) -> None:
        if self.state is not HistoryState.READY:
            raise HistoryNotReadyError(self.state.value)

    async def bootstrap(self, from_commit_id: str | None = None) -> None:
        """Fill the mirror from storage.

        Raises:
            HistoryNotReadyError: If the history was already bootstrapped
            CommitNotFoundError: If from_commit_id is not in the log
            EmptyHistoryError: If resuming produced no entries
        """
        if self.state is not HistoryState.UNINITIALIZED:
            raise HistoryNotReadyError(self.state.value)
        self.state = HistoryState.BOOTSTRAPPING

        try:
            if from_commit_id is not None:
                entries = await self._store.load_entries(from_commit_id)
                if not entries:
                    raise EmptyHistoryError(from_commit_id)
            else:
                entries = await self._store.load_entries()
                if not entries:
                    init = HistoryInit.create(who=self.who)
                    async with self.database.tx():
                        await self._store.insert(init)
                    entries = [init]
                    logger.info(
                        "History log initialized",
                        extra={"table": self._store.table_name, "commit_id": init.commit_id},
                    )
        except Exception:
            self.state = HistoryState.UNINITIALIZED
            raise

        for entry in entries:
            self._absorb(entry)
        self.state = HistoryState.READY
        logger.info(
            "History loaded",
            extra={
                "table": self._store.table_name,
                "from_commit_id": from_commit_id,
                "entries": len(self),
            },
        )

    async def push(self, entry: HistoryEntry) -> int:
        """Persist an entry and append it to the mirror.

        Inside an enclosing transaction the mirror is updated when that
        transaction commits; until then the returned length does not
        include the entry. On rollback the mirror is left untouched.

        Returns:
            The mirror length after the call

        Raises:
            HistoryNotReadyError: If the history is not loaded
        """
        self._require_ready()
        async with self.database.tx() as scope:
            await self._store.insert(entry)
            scope.after_commit(partial(self._absorb, entry))
        return len(self)

    async def refresh(self) -> int:
        """Absorb entries written to the log by other instances.

        Returns:
            The mirror length after the call

        Raises:
            HistoryNotReadyError: If the history is not loaded
            CommitNotFoundError: If the mirror's last commit is not in the log
        """
        self._require_ready()
        entries = await self._store.load_entries(from_commit_id=self.last_commit_id())
        absorbed = 0
        for entry in entries:
            if self._absorb(entry):
                absorbed += 1
        if absorbed:
            logger.info(
                "History refreshed from storage",
                extra={"table": self._store.table_name, "absorbed": absorbed},
            )
        return len(self)
