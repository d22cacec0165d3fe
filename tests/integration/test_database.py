"""
Integration tests for Database scopes on SQLite.

Tests cover:
- Nested transactions joining the outermost one
- After-commit callbacks
- Read scopes rejecting writes
"""

import pytest
import sqlalchemy as sa

from tablevc_sql.errors import TransactionScopeError


class TestDatabaseScopes:
    """Tests for task() and tx()."""

    @pytest.mark.asyncio
    async def test_nested_tx_joins_outer(self, db):
        async with db.tx() as outer:
            async with db.tx() as inner:
                assert inner is outer
            async with db.task() as read:
                assert read is outer

        assert db.current_scope() is None

    @pytest.mark.asyncio
    async def test_after_commit_runs_in_order(self, db):
        calls = []

        async with db.tx() as scope:
            scope.after_commit(lambda: calls.append("first"))
            async with db.tx() as nested:
                nested.after_commit(lambda: calls.append("second"))
            assert calls == []

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_after_commit_discarded_on_rollback(self, db):
        calls = []

        with pytest.raises(RuntimeError):
            async with db.tx() as scope:
                scope.after_commit(lambda: calls.append("never"))
                raise RuntimeError("rollback")

        assert calls == []

    @pytest.mark.asyncio
    async def test_tx_inside_task_rejected(self, db):
        async with db.task() as scope:
            assert scope.writable is False
            with pytest.raises(TransactionScopeError):
                async with db.tx():
                    pass
            with pytest.raises(TransactionScopeError):
                scope.after_commit(lambda: None)

    @pytest.mark.asyncio
    async def test_rows_as_dicts(self, db, tst_definition):
        table = tst_definition.table
        await db.none(sa.insert(table).values({table.c["_id"]: "a", table.c["name"]: "x"}))

        rows = await db.any(sa.select(*tst_definition.labeled_columns(["_id", "name"])))
        row = await db.one(sa.select(tst_definition.column("name").label("name")))
        missing = await db.one_or_none(
            sa.select(table).where(tst_definition.column("_id") == "missing")
        )

        assert rows == [{"_id": "a", "name": "x"}]
        assert row == {"name": "x"}
        assert missing is None
