"""
Daily Facts Store - Repository and Cache Collaborators.

The personalization core reads and writes only through the Repository and
Cache protocols. This package ships a SQLite repository and an in-process
TTL cache.

Usage:
    from daily_facts.store import MemoryCache, SQLiteRepository

    repo = SQLiteRepository("facts.db")
    await repo.initialize()

    prefs = await repo.find_user_preferences("user-1")
"""

from .cache import MemoryCache
from .migrations import MIGRATIONS, Migration, MigrationRunner
from .protocol import (
    Cache,
    DailyMetrics,
    InteractionFilter,
    ItemFilter,
    ItemOrder,
    Repository,
    StoreError,
)
from .sqlite import SQLiteRepository

__all__ = [
    # Implementations
    "SQLiteRepository",
    "MemoryCache",
    # Migrations
    "MIGRATIONS",
    "Migration",
    "MigrationRunner",
    # Protocol
    "Repository",
    "Cache",
    "StoreError",
    "ItemFilter",
    "ItemOrder",
    "InteractionFilter",
    "DailyMetrics",
]
