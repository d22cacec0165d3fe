"""
Shared fixtures for tablevc-sql tests.

Every database test gets its own SQLite file in a temporary directory and
its own MetaData, so tests never share tables.
"""

import os
import tempfile

import pytest
import pytest_asyncio
from sqlalchemy import DateTime, Integer, MetaData, String, func

from tablevc_sql.config import DatabaseConfig
from tablevc_sql.db import Database, FieldDef, TableDefinition, history_log_definition


def make_tst_definition(metadata: MetaData) -> TableDefinition:
    """The test record table, with physical names differing from logical ones."""
    return TableDefinition(
        name="tst",
        db_name="tst",
        fields=(
            FieldDef("_id", "tst_id", String, primary_key=True),
            FieldDef("name", "tst_name", String),
            FieldDef("amount", "tst_amount", Integer),
            FieldDef("when", "tst_when", DateTime),
            FieldDef("nullable", "tst_nullable", String),
        ),
        metadata=metadata,
    )


def make_managed_definition(metadata: MetaData) -> TableDefinition:
    """A record table with a database-managed insert timestamp."""
    return TableDefinition(
        name="managed",
        db_name="managed",
        fields=(
            FieldDef("_id", "managed_id", String, primary_key=True),
            FieldDef("name", "managed_name", String),
            FieldDef(
                "inserted_at",
                "managed_inserted_at",
                DateTime,
                server_default=func.current_timestamp(),
            ),
        ),
        insert_timestamp_field="inserted_at",
        metadata=metadata,
    )


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def metadata():
    """Fresh metadata per test."""
    return MetaData()


@pytest.fixture
def tst_definition(metadata):
    return make_tst_definition(metadata)


@pytest.fixture
def managed_definition(metadata):
    return make_managed_definition(metadata)


@pytest.fixture
def tst_log_definition(metadata):
    return history_log_definition("tstLog", "tst_log", metadata=metadata)


@pytest_asyncio.fixture
async def db(data_dir, metadata, tst_definition, managed_definition, tst_log_definition):
    """Database on a temporary SQLite file with all test tables created."""
    tables = [d.table for d in (tst_definition, managed_definition, tst_log_definition)]
    url = f"sqlite+aiosqlite:///{os.path.join(data_dir, 'tablevc.db')}"
    database = Database.from_config(DatabaseConfig(url=url))
    async with database.engine.begin() as conn:
        await conn.run_sync(metadata.create_all, tables=tables)
    yield database
    await database.dispose()
