"""
Integration tests for DurableVersionHistory on SQLite.

Tests cover:
- Seeding an empty log
- Append-then-read
- Refresh across instances sharing one log table
- Resuming from a commit id
- Rollback leaving the mirror untouched
"""

import pytest

from tablevc_sql.errors import CommitNotFoundError, HistoryNotReadyError
from tablevc_sql.history import (
    DurableVersionHistory,
    HistoryInit,
    HistoryLogStore,
    HistoryState,
    RecordAdded,
)


def added(i: int) -> RecordAdded:
    return RecordAdded.create(
        who="user:1", record_id=f"TEST{i}", record={"_id": f"TEST{i}", "amount": i}
    )


class TestDurableHistoryBootstrap:
    """Loading a history from its log table."""

    @pytest.mark.asyncio
    async def test_empty_log_is_seeded(self, db, tst_log_definition):
        history = await DurableVersionHistory.load_or_init(db, tst_log_definition, who="user:1")

        assert history.state is HistoryState.READY
        assert len(history) == 1
        init = history.get_by_index(0)
        assert isinstance(init, HistoryInit)
        assert init.who == "user:1"

        stored = await HistoryLogStore(db, tst_log_definition).load_entries()
        assert stored == [init]

    @pytest.mark.asyncio
    async def test_existing_log_not_reseeded(self, db, tst_log_definition):
        first = await DurableVersionHistory.load_or_init(db, tst_log_definition)
        second = await DurableVersionHistory.load_or_init(db, tst_log_definition)

        assert len(second) == 1
        assert second.last_commit_id() == first.last_commit_id()

    @pytest.mark.asyncio
    async def test_resume_from_commit(self, db, tst_log_definition):
        history = await DurableVersionHistory.load_or_init(db, tst_log_definition)
        e1, e2, e3 = added(1), added(2), added(3)
        for entry in (e1, e2, e3):
            await history.push(entry)

        resumed = await DurableVersionHistory.load_or_init(
            db, tst_log_definition, from_commit_id=e1.commit_id
        )

        assert resumed.entries() == [e1, e2, e3]

    @pytest.mark.asyncio
    async def test_resume_from_unknown_commit(self, db, tst_log_definition):
        await DurableVersionHistory.load_or_init(db, tst_log_definition)

        with pytest.raises(CommitNotFoundError) as exc_info:
            await DurableVersionHistory.load_or_init(
                db, tst_log_definition, from_commit_id="not-a-commit"
            )

        assert exc_info.value.code == "COMMIT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_failed_bootstrap_can_be_retried(self, db, tst_log_definition):
        await DurableVersionHistory.load_or_init(db, tst_log_definition)
        history = DurableVersionHistory(HistoryLogStore(db, tst_log_definition))

        with pytest.raises(CommitNotFoundError):
            await history.bootstrap("not-a-commit")
        assert history.state is HistoryState.UNINITIALIZED

        await history.bootstrap()
        assert history.state is HistoryState.READY

    @pytest.mark.asyncio
    async def test_push_before_ready(self, db, tst_log_definition):
        history = DurableVersionHistory(HistoryLogStore(db, tst_log_definition))

        with pytest.raises(HistoryNotReadyError):
            await history.push(added(1))


class TestDurableHistoryAppend:
    """push() and refresh()."""

    @pytest.mark.asyncio
    async def test_append_then_read(self, db, tst_log_definition):
        history = await DurableVersionHistory.load_or_init(db, tst_log_definition)
        entry = added(1)

        assert await history.push(entry) == 2
        assert history.last_commit_id() == entry.commit_id
        assert history.entry_for(entry.commit_id) == entry

        reloaded = await DurableVersionHistory.load_or_init(db, tst_log_definition)
        assert reloaded.entries() == history.entries()

    @pytest.mark.asyncio
    async def test_refresh_picks_up_other_instance(self, db, tst_log_definition):
        writer = await DurableVersionHistory.load_or_init(db, tst_log_definition)
        reader = await DurableVersionHistory.load_or_init(db, tst_log_definition)

        await writer.push(added(1))
        await writer.push(added(2))
        assert len(reader) == 1

        assert await reader.refresh() == 3
        assert reader.entries() == writer.entries()

    @pytest.mark.asyncio
    async def test_refresh_is_idempotent(self, db, tst_log_definition):
        writer = await DurableVersionHistory.load_or_init(db, tst_log_definition)
        reader = await DurableVersionHistory.load_or_init(db, tst_log_definition)
        await writer.push(added(1))

        assert await reader.refresh() == 2
        assert await reader.refresh() == 2
        assert await writer.refresh() == 2

    @pytest.mark.asyncio
    async def test_rollback_leaves_mirror_untouched(self, db, tst_log_definition):
        history = await DurableVersionHistory.load_or_init(db, tst_log_definition)

        with pytest.raises(RuntimeError):
            async with db.tx():
                await history.push(added(1))
                raise RuntimeError("rollback")

        assert len(history) == 1
        assert len(await history.store.load_entries()) == 1

    @pytest.mark.asyncio
    async def test_mirror_updated_when_enclosing_tx_commits(self, db, tst_log_definition):
        history = await DurableVersionHistory.load_or_init(db, tst_log_definition)
        entry = added(1)

        async with db.tx():
            assert await history.push(entry) == 1
            assert history.index_of(entry.commit_id) == -1

        assert history.index_of(entry.commit_id) == 1

    @pytest.mark.asyncio
    async def test_last_entry_from_store(self, db, tst_log_definition):
        history = await DurableVersionHistory.load_or_init(db, tst_log_definition)
        entry = added(1)
        await history.push(entry)

        assert await history.store.last_entry() == entry
        assert await history.store.find_sequence(entry.commit_id) == 2
