"""
Make Actionable - fetch one bookmark by id or URL and turn it into concrete action ideas.
"""
import logging
import re
from typing import Optional

from core.entities import ActionableInsight
from ingestion.base import BookmarkSource, XCredentials
from processing.actionable import analyze_for_actionable
from processing.link_enricher import LinkEnricher
from services.progress import NullProgressSink, ProgressEvent, ProgressSink
from services.usage_store import UsageStore

logger = logging.getLogger(__name__)

STATUS_ID_PATTERN = re.compile(r"status/(\d+)")


def extract_bookmark_id(reference: str) -> Optional[str]:
    """Accept a raw numeric id or any URL containing `status/<id>`."""
    reference = reference.strip()
    if reference.isdigit():
        return reference
    match = STATUS_ID_PATTERN.search(reference)
    return match.group(1) if match else None


class MakeActionableWorkflow:
    name = "make_actionable"

    def __init__(
        self,
        *,
        source: BookmarkSource,
        llm,
        enricher: Optional[LinkEnricher] = None,
        credentials: Optional[XCredentials] = None,
        usage: Optional[UsageStore] = None,
        user_id: str = "default",
        model_name: str = "",
        progress: Optional[ProgressSink] = None,
    ):
        self.source = source
        self.llm = llm
        self.enricher = enricher
        self.credentials = credentials
        self.usage = usage
        self.user_id = user_id
        self.model_name = model_name
        self.progress = progress or NullProgressSink()

    async def run(self, reference: str) -> ActionableInsight:
        bookmark_id = extract_bookmark_id(reference)
        if bookmark_id is None:
            raise ValueError(f"Invalid bookmark ID or URL: {reference!r}")

        await self.progress.publish(ProgressEvent(stage="fetch", message="Fetching bookmark..."))
        bookmark = await self.source.fetch_by_id(bookmark_id, self.credentials)

        link_context = ""
        if self.enricher is not None:
            await self.progress.publish(ProgressEvent(stage="links", message="Fetching link previews..."))
            link_context = (await self.enricher.enrich([bookmark])).get(bookmark.id, "")

        await self.progress.publish(
            ProgressEvent(stage="analyze", message="Reading full content and generating action ideas...")
        )
        insight = await analyze_for_actionable(self.llm, bookmark, link_context)

        if self.usage is not None:
            await self.usage.log_usage(
                user_id=self.user_id,
                model=self.model_name,
                input_tokens=insight.input_tokens,
                output_tokens=insight.output_tokens,
                operation="make-actionable",
            )

        logger.info(
            f"Actionable analysis ready: {len(insight.action_ideas)} ideas",
            extra={"user_id": self.user_id, "bookmark_id": bookmark_id},
        )
        return insight
