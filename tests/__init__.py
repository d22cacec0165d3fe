"""
tablevc-sql Test Suite.

This package contains:
- unit/: Unit tests (no database)
- integration/: Integration tests (temporary SQLite file via aiosqlite)
"""
