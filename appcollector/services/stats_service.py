"""Token usage statistics by app category for the latest collect batch."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..amounts import from_storage
from ..constants import FALLBACK_CATEGORY
from ..database import BatchUsage, Database

logger = logging.getLogger(__name__)


@dataclass
class CategoryStats:
    category: str
    total_tokens: int = 0
    apps: set[str] = field(default_factory=set)
    percentage: float = 0.0

    @property
    def app_count(self) -> int:
        return len(self.apps)


@dataclass
class StatsReport:
    batch_id: int
    collected_at: datetime
    categories: list[CategoryStats] = field(default_factory=list)
    total_tokens: int = 0
    models: list[str] = field(default_factory=list)

    @property
    def total_apps(self) -> int:
        return sum(c.app_count for c in self.categories)


def aggregate_by_category(usage: list[BatchUsage]) -> tuple[list[CategoryStats], int]:
    """
    Sum token amounts per category, largest first.

    Apps without a category count as "Others"; unparseable amounts count as zero.
    """
    by_category: dict[str, CategoryStats] = {}
    total = 0

    for record in usage:
        category = record.category or FALLBACK_CATEGORY
        tokens = from_storage(record.tokens_used)
        total += tokens

        stats = by_category.setdefault(category, CategoryStats(category=category))
        stats.total_tokens += tokens
        stats.apps.add(record.app_url)

    for stats in by_category.values():
        stats.percentage = round(stats.total_tokens / total * 100, 2) if total > 0 else 0.0

    ordered = sorted(by_category.values(), key=lambda s: s.total_tokens, reverse=True)
    return ordered, total


async def build_category_stats(db: Database) -> StatsReport | None:
    """
    Build the category report for the most recent batch.

    Returns:
        None if no batch exists yet; a report without categories if the
        latest batch has no usage history.
    """
    batch = await db.latest_collect_batch()
    if batch is None:
        return None

    logger.debug(f"Using batch #{batch.id} from {batch.collected_at}")
    usage = await db.usage_for_batch(batch.id)
    report = StatsReport(batch_id=batch.id, collected_at=batch.collected_at)
    if not usage:
        return report

    logger.debug(f"Found {len(usage)} usage records")
    report.categories, report.total_tokens = aggregate_by_category(usage)
    report.models = sorted({u.model_display_name for u in usage})
    return report
