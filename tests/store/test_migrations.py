"""
Tests for the SQLite migration runner.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from daily_facts.store.migrations import MIGRATIONS, Migration, MigrationRunner


class TestMigrationRunner:
    async def test_applies_all_migrations_on_fresh_database(self, temp_db_path: Path):
        async with aiosqlite.connect(temp_db_path) as db:
            runner = MigrationRunner(db)

            applied = await runner.run_migrations()

            assert applied == len(MIGRATIONS)
            assert await runner.get_current_version() == max(m.version for m in MIGRATIONS)

            cursor = await db.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            tables = {row[0] for row in await cursor.fetchall()}

        assert {
            "users",
            "user_sessions",
            "categories",
            "user_categories",
            "facts",
            "user_facts",
            "notifications",
            "analytics_snapshots",
            "schema_migrations",
        } <= tables

    async def test_rerun_is_a_no_op(self, temp_db_path: Path):
        async with aiosqlite.connect(temp_db_path) as db:
            runner = MigrationRunner(db)
            await runner.run_migrations()

            assert await runner.run_migrations() == 0

            cursor = await db.execute("SELECT COUNT(*) FROM schema_migrations")
            (count,) = await cursor.fetchone()

        assert count == len(MIGRATIONS)

    async def test_only_newer_migrations_are_applied(self, temp_db_path: Path):
        extra = Migration(99, "scratch_table", "CREATE TABLE scratch (id INTEGER PRIMARY KEY);")

        async with aiosqlite.connect(temp_db_path) as db:
            await MigrationRunner(db).run_migrations()

            runner = MigrationRunner(db, migrations=(*MIGRATIONS, extra))
            assert await runner.run_migrations() == 1
            assert await runner.get_current_version() == 99

    async def test_repository_initialize_twice_keeps_data(self, temp_db_path: Path, make_user):
        from daily_facts.store.sqlite import SQLiteRepository

        first = SQLiteRepository(db_path=temp_db_path, max_notification_retries=3)
        await first.initialize()
        await first.save_user(make_user("u1"))
        await first.close()

        second = SQLiteRepository(db_path=temp_db_path, max_notification_retries=3)
        await second.initialize()
        try:
            assert await second.find_user("u1") is not None
        finally:
            await second.close()
