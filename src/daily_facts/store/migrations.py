"""
Database Migration Runner for the SQLite repository.

Applies versioned migrations on startup and records them in the
schema_migrations table. Timestamps are stored as REAL Unix epoch seconds.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..core.logging import get_logger

if TYPE_CHECKING:
    import aiosqlite

logger = get_logger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    sql: str


_INITIAL_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    timezone TEXT NOT NULL DEFAULT 'UTC',
    notifications_enabled INTEGER NOT NULL DEFAULT 1,
    daily_notification_time TEXT NOT NULL DEFAULT '09:00',
    max_notifications_per_day INTEGER NOT NULL DEFAULT 3,
    weekend_notifications INTEGER NOT NULL DEFAULT 1,
    difficulty_level TEXT NOT NULL DEFAULT 'MEDIUM',
    current_streak INTEGER NOT NULL DEFAULT 0,
    longest_streak INTEGER NOT NULL DEFAULT 0,
    last_active_at REAL,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS user_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    refresh_token TEXT NOT NULL UNIQUE,
    device_id TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    expires_at REAL NOT NULL,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS user_categories (
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    category_id TEXT NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
    is_enabled INTEGER NOT NULL DEFAULT 1,
    engagement_score REAL,
    created_at REAL NOT NULL,
    PRIMARY KEY (user_id, category_id)
);

CREATE TABLE IF NOT EXISTS facts (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    short_content TEXT,
    category_id TEXT NOT NULL REFERENCES categories(id),
    difficulty TEXT NOT NULL DEFAULT 'MEDIUM',
    tags TEXT NOT NULL DEFAULT '[]',
    is_approved INTEGER NOT NULL DEFAULT 0,
    is_featured INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    view_count INTEGER NOT NULL DEFAULT 0,
    like_count INTEGER NOT NULL DEFAULT 0,
    share_count INTEGER NOT NULL DEFAULT 0,
    bookmark_count INTEGER NOT NULL DEFAULT 0,
    published_at REAL,
    created_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_facts_category ON facts(category_id);
CREATE INDEX IF NOT EXISTS idx_facts_eligible ON facts(is_approved, is_active, published_at);
CREATE INDEX IF NOT EXISTS idx_facts_difficulty ON facts(difficulty);

CREATE TABLE IF NOT EXISTS user_facts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    fact_id TEXT NOT NULL REFERENCES facts(id) ON DELETE CASCADE,
    is_viewed INTEGER NOT NULL DEFAULT 0,
    viewed_at REAL,
    is_liked INTEGER NOT NULL DEFAULT 0,
    is_bookmarked INTEGER NOT NULL DEFAULT 0,
    is_shared INTEGER NOT NULL DEFAULT 0,
    delivery_status TEXT NOT NULL DEFAULT 'PENDING',
    delivered_at REAL,
    time_spent INTEGER,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    UNIQUE (user_id, fact_id)
);

CREATE INDEX IF NOT EXISTS idx_user_facts_fact ON user_facts(fact_id);
CREATE INDEX IF NOT EXISTS idx_user_facts_viewed ON user_facts(user_id, is_viewed, viewed_at);

CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    fact_id TEXT,
    title TEXT NOT NULL,
    body TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'PENDING',
    retry_count INTEGER NOT NULL DEFAULT 0,
    max_retries INTEGER NOT NULL DEFAULT 3,
    next_retry_at REAL,
    sent_at REAL,
    error_message TEXT,
    error_code TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_notifications_user_status ON notifications(user_id, status);
CREATE INDEX IF NOT EXISTS idx_notifications_retry ON notifications(status, next_retry_at);
"""

_ANALYTICS_SNAPSHOTS = """
CREATE TABLE IF NOT EXISTS analytics_snapshots (
    day TEXT PRIMARY KEY,
    metrics_json TEXT NOT NULL,
    created_at REAL NOT NULL
);
"""

MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "initial_schema", _INITIAL_SCHEMA),
    Migration(2, "analytics_snapshots", _ANALYTICS_SNAPSHOTS),
)


class MigrationRunner:
    """
    Apply database migrations on startup.

    Migrations are applied in version order and tracked in the
    schema_migrations table, so re-running is a no-op.
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        migrations: tuple[Migration, ...] = MIGRATIONS,
    ):
        self.db = db
        self.migrations = migrations

    async def run_migrations(self) -> int:
        """
        Apply pending migrations.

        Returns:
            Number of migrations applied.
        """
        await self._ensure_migrations_table()
        current_version = await self.get_current_version()
        applied = 0

        for migration in sorted(self.migrations, key=lambda m: m.version):
            if migration.version > current_version:
                await self._apply_migration(migration)
                applied += 1

        if applied > 0:
            logger.info("Applied %d database migration(s)", applied)

        return applied

    async def _ensure_migrations_table(self) -> None:
        await self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL,
                description TEXT
            )
            """
        )
        await self.db.commit()

    async def get_current_version(self) -> int:
        """Latest applied migration version, or 0 if none applied."""
        cursor = await self.db.execute("SELECT MAX(version) FROM schema_migrations")
        row = await cursor.fetchone()
        return row[0] if row and row[0] is not None else 0

    async def _apply_migration(self, migration: Migration) -> None:
        logger.info("Applying migration %03d: %s", migration.version, migration.description)

        await self.db.executescript(migration.sql)
        await self.db.execute(
            """
            INSERT INTO schema_migrations (version, applied_at, description)
            VALUES (?, ?, ?)
            """,
            (migration.version, int(time.time()), migration.description),
        )
        await self.db.commit()
