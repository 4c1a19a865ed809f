import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from core.entities import AnalysisResult, AnalysisRun, FALLBACK_CATEGORY
from core.schemas import BookmarkAnalysisSchema
from ingestion.base import Bookmark
from processing.prompts import build_categorization_prompt
from processing.token_budget import OUTPUT_TOKENS_PER_ITEM, TokenWindow, estimate_tokens
from services.config import AnalyzerConfig
from services.llm import OllamaClient, RateLimitedError
from services.progress import NullProgressSink, ProgressEvent, ProgressSink

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]

NOT_ANALYZED_TAKEAWAY = "No analysis was produced for this bookmark; the original post is linked below."
NOT_ANALYZED_ACTION = "Open the original post and review it manually."


class AnalysisError(Exception):
    """Fatal analyzer failure, e.g. the service kept throttling after the retry."""


@dataclass(frozen=True)
class BatchCost:
    input_tokens: int
    output_tokens: int

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


def estimate_batch_cost(prompt: str, batch_size: int, per_item: int = OUTPUT_TOKENS_PER_ITEM) -> BatchCost:
    return BatchCost(input_tokens=estimate_tokens(prompt), output_tokens=batch_size * per_item)


def extract_json(content: str) -> str:
    """
    Strip markdown code fences from an LLM response if present.
    """
    content = content.strip()
    content = re.sub(r"^```(?:json)?\s*", "", content, flags=re.IGNORECASE)
    content = re.sub(r"\s*```$", "", content)
    return content.strip()


def fallback_result(bookmark: Bookmark, reason: str) -> AnalysisResult:
    """
    Synthesized stand-in for a slot the service did not fill. The text says
    plainly that nothing was analyzed.
    """
    preview = " ".join(bookmark.text.split())
    if len(preview) > 100:
        preview = preview[:100] + "..."
    summary = f"Not analyzed ({reason})"
    if preview:
        summary += f": {preview}"

    return to_result(
        bookmark,
        category=FALLBACK_CATEGORY,
        is_actionable=False,
        summary=summary,
        key_takeaway=NOT_ANALYZED_TAKEAWAY,
        actions=[NOT_ANALYZED_ACTION],
        fallback=True,
    )


def to_result(
    bookmark: Bookmark,
    *,
    category: str,
    is_actionable: bool,
    summary: str,
    key_takeaway: str,
    actions: List[str],
    fallback: bool = False,
) -> AnalysisResult:
    return AnalysisResult(
        bookmark_id=bookmark.id,
        category=category,
        is_actionable=is_actionable,
        summary=summary,
        key_takeaway=key_takeaway,
        actions=tuple(actions),
        author=bookmark.author.name,
        author_username=bookmark.author.username,
        text=bookmark.text,
        like_count=bookmark.like_count,
        retweet_count=bookmark.retweet_count,
        created_at=bookmark.created_at,
        fallback=fallback,
    )


def parse_analysis_response(content: str, bookmarks: List[Bookmark]) -> List[AnalysisResult]:
    """
    Turn a raw service response into exactly one result per bookmark, in order.

    Never raises: malformed entries, missing entries and unparseable responses
    are replaced by fallback results.
    """
    try:
        parsed = json.loads(extract_json(content))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse analysis response: {e}")
        logger.debug(f"Raw content: {content}")
        return [fallback_result(b, "unreadable response") for b in bookmarks]

    if isinstance(parsed, list):
        entries = parsed
    elif isinstance(parsed, dict):
        entries = parsed.get("bookmarks") or parsed.get("results") or []
    else:
        entries = []

    if not isinstance(entries, list) or not entries:
        logger.error("Analysis response did not contain a result array")
        logger.debug(f"Raw content: {content}")
        return [fallback_result(b, "unreadable response") for b in bookmarks]

    if len(entries) != len(bookmarks):
        logger.warning(f"Analysis response has {len(entries)} entries for {len(bookmarks)} bookmarks")

    results: List[AnalysisResult] = []
    for idx, bookmark in enumerate(bookmarks):
        if idx >= len(entries):
            results.append(fallback_result(bookmark, "missing from response"))
            continue

        try:
            validated = BookmarkAnalysisSchema.model_validate(entries[idx])
        except ValidationError as e:
            logger.warning(
                f"Validation failed for bookmark {bookmark.id}: {e.error_count()} error(s)",
                extra={"bookmark_id": bookmark.id},
            )
            results.append(fallback_result(bookmark, "invalid analysis"))
            continue

        results.append(
            to_result(
                bookmark,
                category=validated.category,
                is_actionable=validated.is_actionable,
                summary=validated.summary,
                key_takeaway=validated.key_takeaway,
                actions=validated.actions,
            )
        )

    return results


class BatchAnalyzer:
    """
    Sends bookmarks to the summarization service in fixed-size batches,
    strictly one batch at a time, staying under a rolling token quota.
    """

    def __init__(
        self,
        llm: OllamaClient,
        *,
        settings: Optional[AnalyzerConfig] = None,
        progress: Optional[ProgressSink] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self.llm = llm
        self.settings = settings or AnalyzerConfig()
        self.progress = progress or NullProgressSink()
        self.sleep = sleep
        self.clock = clock

    def open_window(self) -> TokenWindow:
        return TokenWindow.open(
            self.clock(),
            limit=self.settings.token_limit,
            length=self.settings.token_window_seconds,
            margin=self.settings.window_margin_seconds,
        )

    async def analyze(
        self,
        bookmarks: List[Bookmark],
        link_context: Optional[Dict[str, str]] = None,
        window: Optional[TokenWindow] = None,
    ) -> AnalysisRun:
        link_context = link_context or {}
        window = window or self.open_window()
        size = self.settings.batch_size
        total = len(bookmarks)
        total_batches = (total + size - 1) // size

        results: List[AnalysisResult] = []
        input_tokens = 0
        output_tokens = 0

        for batch_num, start in enumerate(range(0, total, size), 1):
            batch = bookmarks[start:start + size]
            logger.info(
                f"Processing batch {batch_num}/{total_batches} ({len(batch)} bookmarks)",
                extra={"batch": batch_num},
            )

            prompt = build_categorization_prompt(
                batch,
                link_context,
                max_body_chars=self.settings.max_body_chars,
                max_quote_chars=self.settings.max_quote_chars,
            )
            cost = estimate_batch_cost(prompt, len(batch), self.settings.output_tokens_per_item)

            admission = window.admit(cost.total, self.clock())
            if admission.must_wait:
                secs = admission.wait_seconds
                logger.info(
                    f"Token limit: {window.consumed}/{window.limit} used, waiting {secs:.0f}s",
                    extra={"batch": batch_num},
                )
                await self.progress.publish(
                    ProgressEvent(
                        stage="analyze",
                        message=f"Rate limit reached, resuming in {secs:.0f}s...",
                        processed=len(results),
                        total=total,
                        wait_seconds=secs,
                    )
                )
                await self.sleep(secs)
            window = admission.window

            await self.progress.publish(
                ProgressEvent(
                    stage="analyze",
                    message=f"Analyzing batch {batch_num}/{total_batches}...",
                    processed=len(results),
                    total=total,
                )
            )

            response = await self._call_with_throttle_retry(prompt, batch_num)
            batch_results = parse_analysis_response(response["content"], batch)

            used_in = response.get("input_tokens") or 0
            used_out = response.get("output_tokens") or 0
            input_tokens += used_in
            output_tokens += used_out
            window = window.record((used_in + used_out) or cost.total)

            results.extend(batch_results)
            logger.debug(f"Tokens this window: {window.consumed}/{window.limit}", extra={"batch": batch_num})

            await self.progress.publish(
                ProgressEvent(
                    stage="analyze",
                    message=f"Analyzed batch {batch_num}/{total_batches}",
                    processed=len(results),
                    total=total,
                )
            )

        return AnalysisRun(
            results=results,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            batches=total_batches,
        )

    async def _call_with_throttle_retry(self, prompt: str, batch_num: int) -> Dict[str, Any]:
        try:
            return await self.llm.evaluate(prompt)
        except RateLimitedError as first:
            delay = self.settings.throttle_delay_seconds
            logger.warning(
                f"Rate limit hit on batch {batch_num}, waiting {delay:.0f}s then retrying: {first}",
                extra={"batch": batch_num},
            )
            await self.progress.publish(
                ProgressEvent(
                    stage="analyze",
                    message=f"Rate limit hit, retrying in {delay:.0f}s...",
                    wait_seconds=delay,
                )
            )
            await self.sleep(delay)

        try:
            return await self.llm.evaluate(prompt)
        except RateLimitedError as second:
            raise AnalysisError(
                f"Summarization service still rate limited after retrying batch {batch_num}: {second}"
            ) from second
