import aiosqlite
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable
import logging

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, path: str):
        self.path = path
        self._initialized = False

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self.path)
        await conn.execute("PRAGMA journal_mode=WAL;")
        try:
            yield conn
        finally:
            await conn.close()

    async def execute(self, query: str, params: tuple = ()) -> int:
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def executemany(self, query: str, rows: Iterable[tuple]) -> None:
        """Run one statement for many rows inside a single transaction."""
        async with self.connect() as conn:
            await conn.executemany(query, rows)
            await conn.commit()

    async def fetchone(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def init_tables(self) -> None:
        """Create tables for analyzed bookmarks and token usage."""
        if self._initialized:
            return

        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS analyzed_bookmarks (
                    bookmark_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    analyzed_at TIMESTAMP NOT NULL,
                    category TEXT NOT NULL,
                    is_actionable INTEGER NOT NULL,
                    summary TEXT NOT NULL,
                    key_takeaway TEXT NOT NULL,
                    actions TEXT NOT NULL,
                    author TEXT NOT NULL,
                    author_username TEXT NOT NULL,
                    tweet_text TEXT NOT NULL,
                    like_count INTEGER NOT NULL,
                    retweet_count INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    fallback INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (bookmark_id, user_id)
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS usage_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    model TEXT NOT NULL,
                    input_tokens INTEGER NOT NULL,
                    output_tokens INTEGER NOT NULL,
                    operation TEXT NOT NULL,
                    logged_at TIMESTAMP NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_usage_log_user ON usage_log(user_id, logged_at)
            """)
            await conn.commit()

        self._initialized = True
        logger.info("Database tables initialized")
