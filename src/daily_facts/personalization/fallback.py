"""
Global fallback list.

Used whenever no profile can be resolved or personalization fails: eligible
items ordered featured first, then by likes, then by views.
"""

from __future__ import annotations

from datetime import datetime

from ..core.logging import get_logger
from ..models import ContentItem
from ..store.protocol import ItemFilter, ItemOrder, Repository

logger = get_logger(__name__)


async def popular_items(repository: Repository, now: datetime, limit: int) -> list[ContentItem]:
    """Top `limit` eligible items by popularity; [] if the query itself fails."""
    if limit <= 0:
        return []
    try:
        return await repository.find_eligible_items(
            ItemFilter(now=now, limit=limit, order=ItemOrder.POPULARITY)
        )
    except Exception as e:
        logger.error(
            "Fallback item query failed: %s",
            e,
            exc_info=True,
            extra={"operation": "popular_items"},
        )
        return []
