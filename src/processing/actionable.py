"""
Deep analysis of a single bookmark into concrete action ideas.
"""
import json
import logging

from pydantic import ValidationError

from core.entities import ActionableInsight
from core.schemas import ActionableAnalysisSchema
from ingestion.base import Bookmark
from processing.analyzer import AnalysisError, extract_json
from processing.prompts import build_actionable_prompt, build_execution_prompt
from services.llm import OllamaClient

logger = logging.getLogger(__name__)


def parse_actionable_response(content: str) -> ActionableAnalysisSchema:
    """Unlike batch parsing there is nothing to fall back to, so a bad response raises."""
    try:
        parsed = json.loads(extract_json(content))
    except json.JSONDecodeError as e:
        logger.debug(f"Raw content: {content}")
        raise AnalysisError(f"Could not parse actionable analysis: {e}") from e

    try:
        return ActionableAnalysisSchema.model_validate(parsed)
    except ValidationError as e:
        logger.debug(f"Raw content: {content}")
        raise AnalysisError(f"Actionable analysis failed validation: {e.error_count()} error(s)") from e


async def analyze_for_actionable(
    llm: OllamaClient,
    bookmark: Bookmark,
    link_context: str = "",
) -> ActionableInsight:
    response = await llm.evaluate(build_actionable_prompt(bookmark, link_context))
    analysis = parse_actionable_response(response["content"])

    logger.info(
        f"Generated {len(analysis.action_ideas)} action ideas ({analysis.category})",
        extra={"bookmark_id": bookmark.id},
    )
    return ActionableInsight(
        bookmark_id=bookmark.id,
        category=analysis.category,
        summary=analysis.summary,
        action_ideas=tuple(analysis.action_ideas),
        execution_prompt=build_execution_prompt(bookmark, analysis.category, analysis.action_ideas),
        author_username=bookmark.author.username,
        text=bookmark.text,
        like_count=bookmark.like_count,
        retweet_count=bookmark.retweet_count,
        input_tokens=response.get("input_tokens") or 0,
        output_tokens=response.get("output_tokens") or 0,
    )
