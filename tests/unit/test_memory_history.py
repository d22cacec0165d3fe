"""
Unit tests for the in-memory version history.

Tests cover:
- Appending and deduplication by commit id
- Index and neighbor lookups
- Branches and deltas
"""

import pytest

from tablevc_sql.history import HistoryInit, MemoryVersionHistory, RecordAdded


@pytest.fixture
def entries():
    """An init entry followed by three additions."""
    init = HistoryInit.create(who="user:1")
    added = [
        RecordAdded.create(record_id=f"TEST{i}", record={"_id": f"TEST{i}", "amount": i})
        for i in range(1, 4)
    ]
    return [init, *added]


class TestMemoryVersionHistory:
    """Tests for MemoryVersionHistory."""

    @pytest.mark.asyncio
    async def test_push_returns_length(self, entries):
        history = MemoryVersionHistory()

        assert await history.push(entries[0]) == 1
        assert await history.push(entries[1]) == 2
        assert len(history) == 2
        assert history.length == 2

    @pytest.mark.asyncio
    async def test_push_ignores_known_commit(self, entries):
        history = MemoryVersionHistory(entries)

        assert await history.push(entries[1]) == 4
        assert history.entries() == entries

    @pytest.mark.asyncio
    async def test_refresh_is_noop(self, entries):
        history = MemoryVersionHistory(entries)

        assert await history.refresh() == 4

    def test_lookups(self, entries):
        history = MemoryVersionHistory(entries)

        assert history.get_by_index(0) is entries[0]
        assert history.get_by_index(-1) is entries[3]
        assert history.index_of(entries[2].commit_id) == 2
        assert history.index_of("unknown") == -1
        assert history.entry_for(entries[1].commit_id) is entries[1]
        assert history.entry_for("unknown") is None
        assert history.last_entry() is entries[3]
        assert history.last_commit_id() == entries[3].commit_id

    def test_empty(self):
        history = MemoryVersionHistory()

        assert history.last_entry() is None
        assert history.last_commit_id() is None
        with pytest.raises(IndexError):
            history.get_by_index(0)

    def test_neighbors(self, entries):
        history = MemoryVersionHistory(entries)
        ids = [e.commit_id for e in entries]

        assert history.previous_commit_id(ids[0]) is None
        assert history.previous_commit_id(ids[2]) == ids[1]
        assert history.next_commit_id(ids[2]) == ids[3]
        assert history.next_commit_id(ids[3]) is None
        assert history.next_commit_id("unknown") is None

    def test_entries_range(self, entries):
        history = MemoryVersionHistory(entries)

        assert history.entries(1, 3) == entries[1:3]
        assert history.entries(2) == entries[2:]

    def test_branch_and_delta(self, entries):
        history = MemoryVersionHistory(entries)

        assert history.branch_from(entries[1].commit_id) == entries[2:]
        assert history.branch_from(entries[3].commit_id) == []
        assert history.branch_from("unknown") is None

        delta = history.history_delta(entries[0].commit_id)
        assert delta.commit_id == entries[3].commit_id
        assert delta.changes == entries[1:]
        assert history.history_delta("unknown") is None
