"""
Daily Facts - Personalization and Scheduling Core

Builds per-user profiles from interaction history, scores and diversifies
candidate facts, and runs the recurring jobs that deliver one fact per user
at their chosen hour.

Usage as library:
    from daily_facts import DistributionService, SQLiteRepository, WebhookSender

    repo = SQLiteRepository()
    await repo.initialize()
    service = DistributionService(repository=repo, sender=WebhookSender(url))
    await service.start()

Usage as CLI:
    python -m daily_facts run
    python -m daily_facts tick daily-facts-distribution
    python -m daily_facts status

Package structure:
    daily_facts/
    ├── core/             # Config, logging, clock, transport retry
    ├── store/            # Repository/Cache protocols, SQLite, TTL cache
    ├── personalization/  # Profiles, scoring, selection, recommendations
    └── delivery/         # Scheduler, distribution, retry, maintenance
"""

__version__ = "1.0.0"

from .delivery import DistributionService, LogSender, WebhookSender
from .personalization import CandidateSelector, ProfileBuilder, ScoredItem, SelectionOptions
from .store import MemoryCache, SQLiteRepository, StoreError

__all__ = [
    "__version__",
    "DistributionService",
    "LogSender",
    "WebhookSender",
    "CandidateSelector",
    "ProfileBuilder",
    "ScoredItem",
    "SelectionOptions",
    "MemoryCache",
    "SQLiteRepository",
    "StoreError",
]
