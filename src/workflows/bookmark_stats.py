"""
Stats report over the analysis history of one user.
"""
import logging
from typing import List

from core.entities import DisplayUnit
from delivery.packager import build_stats_unit
from processing.stats import DEFAULT_PERIOD, BookmarkStats, period_limit, summarize_analyses
from services.bookmark_store import SqliteBookmarkStore
from services.usage_store import UsageStore

logger = logging.getLogger(__name__)


class BookmarkStatsReport:
    name = "bookmark_stats"

    def __init__(self, *, store: SqliteBookmarkStore, usage: UsageStore, user_id: str = "default"):
        self.store = store
        self.usage = usage
        self.user_id = user_id

    async def collect(self, period: str = DEFAULT_PERIOD) -> BookmarkStats:
        limit = period_limit(period)
        analyses = await self.store.get_recent_analyses(limit)
        today = await self.usage.today_tokens(self.user_id)
        monthly = await self.usage.monthly_tokens(self.user_id)

        logger.info(f"Stats over {len(analyses)} analyses ({period})", extra={"user_id": self.user_id})
        return summarize_analyses(analyses, period=period, today_tokens=today, monthly_tokens=monthly)

    async def run(self, period: str = DEFAULT_PERIOD) -> List[DisplayUnit]:
        return [build_stats_unit(await self.collect(period))]
