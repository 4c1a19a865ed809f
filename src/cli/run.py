import argparse
import asyncio
from datetime import date
import logging
import sys
import time
from typing import List, Optional

from core.entities import DisplayUnit
from delivery.base import DeliveryError
from delivery.file_delivery import FileDelivery
from delivery.packager import build_actionable_unit
from ingestion.base import FetchError
from processing.analyzer import AnalysisError
from processing.stats import DEFAULT_PERIOD, PERIOD_LIMITS
from services.config import Config, load_config
from services.llm import LLMError
from services.logging import setup_logging
from services.progress import LoggingProgressSink
from workflows.pipeline_factory import (
    create_actionable_workflow,
    create_deliveries,
    create_pipeline,
    create_source,
    create_stats_report,
    create_store,
    credentials_from_config,
)

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyze new X bookmarks and deliver a digest.")
    parser.add_argument("--count", type=int, default=None, help="Number of new bookmarks to analyze")
    parser.add_argument("--dry-run", action="store_true", help="Build the output without delivering it")
    parser.add_argument("--config", default=None, help="Path to config.yml")
    parser.add_argument("--log-level", default="INFO")

    commands = parser.add_subparsers(dest="command")
    commands.add_parser("digest", help="Analyze new bookmarks (default)")

    stats = commands.add_parser("stats", help="Report on previously analyzed bookmarks")
    stats.add_argument("--period", choices=list(PERIOD_LIMITS), default=DEFAULT_PERIOD)

    actionable = commands.add_parser("actionable", help="Turn one bookmark into concrete action ideas")
    actionable.add_argument("bookmark", help="Bookmark id or status URL")

    commands.add_parser("check-auth", help="Verify the X credentials with bird")

    reset = commands.add_parser("reset", help="Forget all analyses so the next digest starts over")
    reset.add_argument("--yes", action="store_true", help="Confirm clearing the analysis history")

    args = parser.parse_args(argv)
    args.command = args.command or "digest"
    return args


async def deliver_units(config: Config, units: List[DisplayUnit], label: str) -> List[FileDelivery]:
    """Send units through every configured channel; returns the file channels for attachments."""
    today = date.today().isoformat()
    files: List[FileDelivery] = []
    for delivery in create_deliveries(config):
        try:
            report = await delivery.deliver(digest_date=today, units=units, label=label)
            logger.info(f"Delivered {report.sent} units via {delivery.name} ({report.dropped} dropped)")
        except DeliveryError as e:
            logger.error(f"Delivery failed: channel={delivery.name}, error={e}")
            continue
        if isinstance(delivery, FileDelivery):
            files.append(delivery)
    return files


async def run_digest(args: argparse.Namespace, config: Config) -> int:
    target = args.count or config.fetch.default_count
    logger.info(f"Starting bookmark digest run (target={target})", extra={"user_id": config.DIGEST_USER_ID})

    pipeline = create_pipeline(config, progress=LoggingProgressSink())

    if not await pipeline.analyzer.llm.health_check():
        logger.warning(f"Ollama at {config.OLLAMA_BASE_URL} did not pass the health check; continuing")

    try:
        run = await pipeline.run(target)
    except (FetchError, AnalysisError, LLMError) as e:
        logger.exception(f"Digest run failed: {e}", extra={"user_id": config.DIGEST_USER_ID})
        return 1

    if args.dry_run:
        for unit in run.units:
            logger.info(f"[dry-run] {unit.title}: {len(unit.sections)} sections")
        return 0

    await deliver_units(config, run.units, "bookmark_digest")
    logger.info("Digest run completed")
    return 0


async def run_stats(args: argparse.Namespace, config: Config) -> int:
    units = await create_stats_report(config).run(args.period)

    if args.dry_run:
        for section in units[0].sections:
            logger.info(f"[dry-run] {section.name}: {section.value}")
        return 0

    await deliver_units(config, units, "bookmark_stats")
    return 0


async def run_actionable(args: argparse.Namespace, config: Config) -> int:
    workflow = create_actionable_workflow(config, progress=LoggingProgressSink())

    try:
        insight = await workflow.run(args.bookmark)
    except (ValueError, FetchError, AnalysisError, LLMError) as e:
        logger.exception(f"Actionable analysis failed: {e}", extra={"user_id": config.DIGEST_USER_ID})
        return 1

    if args.dry_run:
        logger.info(f"[dry-run] {insight.summary}\n{insight.execution_prompt}")
        return 0

    label = f"actionable_{insight.bookmark_id}"
    for channel in await deliver_units(config, [build_actionable_unit(insight)], label):
        try:
            path = channel.save_attachment(f"followup_prompt_{insight.bookmark_id}.txt", insight.execution_prompt)
            logger.info(f"Full follow-up prompt written to {path}")
        except DeliveryError as e:
            logger.error(f"Delivery failed: channel={channel.name}, error={e}")
    return 0


async def run_check_auth(args: argparse.Namespace, config: Config) -> int:
    credentials = credentials_from_config(config)
    if credentials is None:
        logger.error("AUTH_TOKEN and CT0 must both be set in .env")
        return 1

    try:
        await create_source(config).validate_tokens(credentials)
    except FetchError as e:
        logger.exception(f"X credentials rejected: {e}")
        return 1

    logger.info("X credentials are valid")
    return 0


async def run_reset(args: argparse.Namespace, config: Config) -> int:
    if not args.yes:
        logger.error("Refusing to clear the analysis history without --yes")
        return 1

    count = await create_store(config).clear()
    logger.info(f"Cleared {count} analyses; the next digest re-analyzes them")
    return 0


COMMANDS = {
    "digest": run_digest,
    "stats": run_stats,
    "actionable": run_actionable,
    "check-auth": run_check_auth,
    "reset": run_reset,
}


async def main(argv: Optional[List[str]] = None) -> int:
    start_time = time.perf_counter()
    args = parse_args(argv)
    setup_logging(args.log_level.upper())

    config = load_config(args.config)
    code = await COMMANDS[args.command](args, config)

    end_time = time.perf_counter()
    logger.info(f"Total time: {end_time - start_time}")
    return code


def entrypoint() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    entrypoint()
