"""
Persistent log of summarization token usage.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from services.database import Database

logger = logging.getLogger(__name__)


class UsageStore:
    def __init__(self, database: Database):
        self.db = database

    async def log_usage(
        self,
        *,
        user_id: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        operation: str = "digest",
        logged_at: Optional[datetime] = None,
    ) -> None:
        await self.db.init_tables()
        await self.db.execute(
            """
            INSERT INTO usage_log (user_id, model, input_tokens, output_tokens, operation, logged_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                model,
                input_tokens,
                output_tokens,
                operation,
                (logged_at or datetime.utcnow()).isoformat(),
            ),
        )
        logger.debug(f"Logged {input_tokens + output_tokens} tokens for {operation}", extra={"user_id": user_id})

    async def _tokens_between(self, user_id: str, start: datetime, end: datetime) -> Tuple[int, int]:
        await self.db.init_tables()
        row = await self.db.fetchone(
            """SELECT COALESCE(SUM(input_tokens), 0), COALESCE(SUM(output_tokens), 0)
               FROM usage_log
               WHERE user_id = ? AND logged_at >= ? AND logged_at < ?""",
            (user_id, start.isoformat(), end.isoformat()),
        )
        return int(row[0]), int(row[1])

    async def today_tokens(self, user_id: str, now: Optional[datetime] = None) -> Tuple[int, int]:
        now = now or datetime.utcnow()
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return await self._tokens_between(user_id, start, start + timedelta(days=1))

    async def monthly_tokens(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        end = (start + timedelta(days=32)).replace(day=1)
        input_tokens, output_tokens = await self._tokens_between(user_id, start, end)
        return input_tokens + output_tokens
