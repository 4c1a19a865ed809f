"""
Decide how many bookmarks to pull so that enough unprocessed ones come back.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from ingestion.base import Bookmark, BookmarkSource, XCredentials
from services.bookmark_store import ProcessedStore
from services.progress import NullProgressSink, ProgressEvent, ProgressSink

logger = logging.getLogger(__name__)

MIN_WINDOW = 20
WINDOW_PADDING = 10
GROWTH_FACTOR = 3
DEFAULT_CEILING = 200


def initial_window(target: int) -> int:
    return max(target + WINDOW_PADDING, MIN_WINDOW)


@dataclass(frozen=True)
class FetchOutcome:
    bookmarks: List[Bookmark]
    fetched_count: int
    window: int


async def fetch_new_bookmarks(
    source: BookmarkSource,
    store: ProcessedStore,
    target: int,
    *,
    credentials: Optional[XCredentials] = None,
    ceiling: int = DEFAULT_CEILING,
    progress: Optional[ProgressSink] = None,
) -> FetchOutcome:
    """
    Find up to `target` bookmarks the store has not processed, newest first,
    along with how many raw bookmarks the final window returned.

    The source has no cursor, so each attempt re-fetches the whole (larger)
    window from scratch. Fetch errors propagate unchanged.
    """
    progress = progress or NullProgressSink()
    window = min(initial_window(target), ceiling)

    while True:
        await progress.publish(ProgressEvent(stage="fetch", message=f"Fetching {window} bookmarks..."))
        bookmarks = await source.fetch_latest(window, credentials)

        processed = await store.processed_ids([b.id for b in bookmarks])
        fresh = [b for b in bookmarks if b.id not in processed]

        logger.info(
            f"Fetch window {window}: {len(bookmarks)} fetched, "
            f"{len(fresh)} new, {len(bookmarks) - len(fresh)} already analyzed"
        )

        if len(fresh) >= target:
            break
        if window >= ceiling:
            logger.info(f"Fetch ceiling {ceiling} reached with {len(fresh)}/{target} new bookmarks")
            break
        if len(bookmarks) < window:
            logger.info(f"Source exhausted at {len(bookmarks)} bookmarks")
            break

        grown = min(window * GROWTH_FACTOR, ceiling)
        await progress.publish(
            ProgressEvent(
                stage="fetch",
                message=f"Only {len(fresh)}/{target} new bookmarks in the last {window}; widening to {grown}",
            )
        )
        window = grown

    return FetchOutcome(bookmarks=fresh[:target], fetched_count=len(bookmarks), window=window)


async def resolve_fetch_target(
    source: BookmarkSource,
    store: ProcessedStore,
    target: int,
    *,
    credentials: Optional[XCredentials] = None,
    ceiling: int = DEFAULT_CEILING,
    progress: Optional[ProgressSink] = None,
) -> List[Bookmark]:
    """Return up to `target` unprocessed bookmarks, newest first."""
    outcome = await fetch_new_bookmarks(
        source, store, target, credentials=credentials, ceiling=ceiling, progress=progress
    )
    return outcome.bookmarks
