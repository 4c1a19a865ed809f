"""
Resolve stub bookmarks (a bare t.co link and nothing else) to full content.

The bookmarks listing returns X Articles as stubs; `bird read <id>` returns
the article body. Lookups run one at a time because each one spawns a
memory-hungry process.
"""
import logging
import re
from typing import Dict, List, Optional

from ingestion.base import Bookmark, BookmarkSource, FetchError, FetchTimeout, XCredentials
from services.progress import NullProgressSink, ProgressEvent, ProgressSink

logger = logging.getLogger(__name__)

STUB_PATTERN = re.compile(r"^https?://t\.co/\w+\s*$")


def is_stub(bookmark: Bookmark) -> bool:
    return bool(STUB_PATTERN.match(bookmark.text.strip()))


def merge_full_content(stub: Bookmark, full: Bookmark) -> Bookmark:
    """
    Take content from the full lookup but keep the listing's engagement counts,
    which are more accurate than the single-post lookup.
    """
    return full.model_copy(
        update={
            "id": stub.id,
            "like_count": stub.like_count or full.like_count,
            "retweet_count": stub.retweet_count or full.retweet_count,
            "reply_count": stub.reply_count or full.reply_count,
            "view_count": stub.view_count or full.view_count,
        }
    )


async def resolve_stubs(
    bookmarks: List[Bookmark],
    lookup: BookmarkSource,
    *,
    credentials: Optional[XCredentials] = None,
    progress: Optional[ProgressSink] = None,
) -> List[Bookmark]:
    """
    Return a list of the same length and order with stubs replaced by full content.
    A failed or timed-out lookup keeps the original stub.
    """
    stubs = [b for b in bookmarks if is_stub(b)]
    if not stubs:
        return list(bookmarks)

    progress = progress or NullProgressSink()
    await progress.publish(
        ProgressEvent(stage="stubs", message="Fetching full article content...", processed=0, total=len(stubs))
    )
    logger.info(f"Re-fetching {len(stubs)} stub bookmark(s) for full content")

    resolved: Dict[str, Bookmark] = {}
    for idx, stub in enumerate(stubs, 1):
        try:
            full = await lookup.fetch_by_id(stub.id, credentials)
        except FetchTimeout as e:
            logger.warning(f"Stub lookup timed out, keeping stub: {e}", extra={"bookmark_id": stub.id})
        except FetchError as e:
            logger.warning(f"Stub lookup failed, keeping stub: {e}", extra={"bookmark_id": stub.id})
        else:
            resolved[stub.id] = merge_full_content(stub, full)

        await progress.publish(
            ProgressEvent(stage="stubs", message="Fetching full article content...", processed=idx, total=len(stubs))
        )

    logger.info(f"Resolved {len(resolved)}/{len(stubs)} stub bookmarks")
    return [resolved.get(b.id, b) for b in bookmarks]
