"""
Store of analyzed bookmarks, used to skip re-analysis on later runs.
"""
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Set

from core.entities import AnalysisResult
from services.database import Database

logger = logging.getLogger(__name__)

# SQLite's default host-parameter limit is 999; keep well below it.
_ID_CHUNK = 500


class ProcessedStore(ABC):
    """
    Membership test and persistence for analyzed bookmarks.
    Writes must be idempotent per bookmark id.
    """

    @abstractmethod
    async def processed_ids(self, bookmark_ids: Iterable[str]) -> Set[str]:
        """Return the subset of ids that were already analyzed."""
        raise NotImplementedError

    @abstractmethod
    async def save_analyses(self, results: List[AnalysisResult]) -> None:
        raise NotImplementedError


class SqliteBookmarkStore(ProcessedStore):
    def __init__(self, database: Database, user_id: str):
        self.db = database
        self.user_id = user_id

    async def processed_ids(self, bookmark_ids: Iterable[str]) -> Set[str]:
        ids = list(dict.fromkeys(bookmark_ids))
        if not ids:
            return set()

        await self.db.init_tables()
        found: Set[str] = set()
        for i in range(0, len(ids), _ID_CHUNK):
            chunk = ids[i:i + _ID_CHUNK]
            placeholders = ",".join("?" for _ in chunk)
            rows = await self.db.fetchall(
                f"""SELECT bookmark_id FROM analyzed_bookmarks
                    WHERE user_id = ? AND bookmark_id IN ({placeholders})""",
                (self.user_id, *chunk),
            )
            found.update(row[0] for row in rows)
        return found

    async def save_analyses(self, results: List[AnalysisResult]) -> None:
        if not results:
            return

        await self.db.init_tables()
        now = datetime.utcnow().isoformat()
        rows = [
            (
                r.bookmark_id,
                self.user_id,
                now,
                r.category,
                1 if r.is_actionable else 0,
                r.summary,
                r.key_takeaway,
                json.dumps(list(r.actions)),
                r.author,
                r.author_username,
                r.text,
                r.like_count,
                r.retweet_count,
                r.created_at,
                1 if r.fallback else 0,
            )
            for r in results
        ]
        await self.db.executemany(
            """
            INSERT OR REPLACE INTO analyzed_bookmarks (
                bookmark_id, user_id, analyzed_at, category, is_actionable,
                summary, key_takeaway, actions, author, author_username, tweet_text,
                like_count, retweet_count, created_at, fallback
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
        logger.info(f"Saved {len(rows)} analyses", extra={"user_id": self.user_id})

    async def get_recent_analyses(self, limit: int = 100) -> List[AnalysisResult]:
        await self.db.init_tables()
        rows = await self.db.fetchall(
            """SELECT bookmark_id, category, is_actionable, summary, key_takeaway, actions,
                      author, author_username, tweet_text, like_count, retweet_count,
                      created_at, fallback
               FROM analyzed_bookmarks
               WHERE user_id = ?
               ORDER BY analyzed_at DESC LIMIT ?""",
            (self.user_id, limit),
        )
        return [
            AnalysisResult(
                bookmark_id=row[0],
                category=row[1],
                is_actionable=bool(row[2]),
                summary=row[3],
                key_takeaway=row[4],
                actions=tuple(json.loads(row[5])),
                author=row[6],
                author_username=row[7],
                text=row[8],
                like_count=row[9],
                retweet_count=row[10],
                created_at=row[11],
                fallback=bool(row[12]),
            )
            for row in rows
        ]

    async def clear(self) -> int:
        """Forget every analysis for this user so the next run re-analyzes."""
        await self.db.init_tables()
        count = await self.db.execute(
            "DELETE FROM analyzed_bookmarks WHERE user_id = ?", (self.user_id,)
        )
        logger.info(f"Cleared {count} analyses", extra={"user_id": self.user_id})
        return count
