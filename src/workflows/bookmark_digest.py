import logging
from collections import Counter
from typing import Optional

from core.entities import DigestStats
from delivery.packager import build_display_units
from ingestion.base import BookmarkSource, XCredentials
from processing.analyzer import BatchAnalyzer
from processing.fetch_target import DEFAULT_CEILING, fetch_new_bookmarks
from processing.link_enricher import LinkEnricher
from processing.stub_resolver import resolve_stubs
from services.bookmark_store import ProcessedStore
from services.progress import NullProgressSink, ProgressEvent, ProgressSink
from services.usage_store import UsageStore
from workflows.base import DigestPipeline, DigestRun

logger = logging.getLogger(__name__)


class BookmarkDigestPipeline(DigestPipeline):
    """
    Fetch target → stub resolution → link enrichment → batch analysis →
    persistence → packaging.

    Analyses are persisted only after every batch has completed, so a fatal
    error leaves the store untouched.
    """
    name = "bookmark_digest"

    def __init__(
        self,
        *,
        source: BookmarkSource,
        store: ProcessedStore,
        analyzer: BatchAnalyzer,
        enricher: Optional[LinkEnricher] = None,
        credentials: Optional[XCredentials] = None,
        usage: Optional[UsageStore] = None,
        user_id: str = "default",
        model_name: str = "",
        ceiling: int = DEFAULT_CEILING,
        progress: Optional[ProgressSink] = None,
    ):
        self.source = source
        self.store = store
        self.analyzer = analyzer
        self.enricher = enricher
        self.credentials = credentials
        self.usage = usage
        self.user_id = user_id
        self.model_name = model_name
        self.ceiling = ceiling
        self.progress = progress or NullProgressSink()

    async def run(self, target: int) -> DigestRun:
        fetched = await fetch_new_bookmarks(
            self.source,
            self.store,
            target,
            credentials=self.credentials,
            ceiling=self.ceiling,
            progress=self.progress,
        )
        new_bookmarks = fetched.bookmarks

        if not new_bookmarks:
            logger.info("No new bookmarks to analyze", extra={"user_id": self.user_id})
            await self.progress.publish(ProgressEvent(stage="done", message="All bookmarks already analyzed"))
            return DigestRun(units=build_display_units([]))

        logger.info(f"Analyzing {len(new_bookmarks)} new bookmarks", extra={"user_id": self.user_id})

        bookmarks = await resolve_stubs(
            new_bookmarks,
            self.source,
            credentials=self.credentials,
            progress=self.progress,
        )

        link_context = {}
        if self.enricher is not None:
            await self.progress.publish(ProgressEvent(stage="links", message="Fetching link previews..."))
            link_context = await self.enricher.enrich(bookmarks)

        run = await self.analyzer.analyze(bookmarks, link_context)

        await self.store.save_analyses(run.results)

        if self.usage is not None:
            await self.usage.log_usage(
                user_id=self.user_id,
                model=self.model_name,
                input_tokens=run.input_tokens,
                output_tokens=run.output_tokens,
            )

        stats = DigestStats(
            new_count=len(run.results),
            fetched_count=fetched.fetched_count,
            input_tokens=run.input_tokens,
            output_tokens=run.output_tokens,
            category_counts=dict(Counter(r.category for r in run.results)),
        )

        await self.progress.publish(
            ProgressEvent(
                stage="format",
                message=f"Formatting {stats.new_count} bookmarks into digest...",
                processed=stats.new_count,
                total=stats.new_count,
            )
        )
        units = build_display_units(run.results, stats)

        fallbacks = sum(1 for r in run.results if r.fallback)
        logger.info(
            f"Digest built: {stats.new_count} bookmarks, {len(units)} units, "
            f"{stats.total_tokens} tokens, {fallbacks} unanalyzed",
            extra={"user_id": self.user_id},
        )
        return DigestRun(results=run.results, units=units, stats=stats)
