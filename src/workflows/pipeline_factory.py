"""
Pipeline Factory - wires the bookmark workflows and their delivery channels from configuration.
"""
import logging
from typing import List, Optional

from delivery.base import DeliveryChannel
from delivery.discord_webhook import DiscordWebhookDelivery
from delivery.file_delivery import FileDelivery
from ingestion.base import BookmarkSource, XCredentials
from ingestion.bird_cli import BirdCliSource
from processing.analyzer import BatchAnalyzer
from processing.link_enricher import LinkEnricher
from services.bookmark_store import SqliteBookmarkStore
from services.config import Config
from services.database import Database
from services.llm import OllamaClient
from services.progress import ProgressSink
from services.usage_store import UsageStore
from workflows.bookmark_digest import BookmarkDigestPipeline
from workflows.bookmark_stats import BookmarkStatsReport
from workflows.make_actionable import MakeActionableWorkflow

logger = logging.getLogger(__name__)


def credentials_from_config(config: Config) -> Optional[XCredentials]:
    if not config.has_x_credentials:
        return None
    return XCredentials(auth_token=config.AUTH_TOKEN, ct0=config.CT0)


def create_source(config: Config) -> BirdCliSource:
    return BirdCliSource(
        config.fetch.bird_binary,
        lookup_timeout=config.fetch.lookup_timeout_seconds,
        list_timeout=config.fetch.list_timeout_seconds,
    )


def create_llm(config: Config) -> OllamaClient:
    return OllamaClient(
        base_url=config.OLLAMA_BASE_URL,
        model=config.OLLAMA_MODEL,
        api_key=config.OLLAMA_API_KEY,
    )


def _create_enricher(
    config: Config,
    source: BookmarkSource,
    credentials: Optional[XCredentials],
) -> Optional[LinkEnricher]:
    if not config.enricher.enabled:
        return None

    status_lookup = None
    if credentials is not None:
        async def status_lookup(status_id: str):
            return await source.fetch_by_id(status_id, credentials)

    return LinkEnricher(
        status_lookup=status_lookup,
        timeout=config.enricher.timeout_seconds,
        max_body_bytes=config.enricher.max_body_bytes,
        max_redirects=config.enricher.max_redirects,
        concurrency=config.enricher.concurrency,
    )


def _require_credentials(config: Config) -> Optional[XCredentials]:
    credentials = credentials_from_config(config)
    if credentials is None:
        logger.warning("AUTH_TOKEN/CT0 not set: bookmark fetching will fail and status links are skipped")
    return credentials


def create_pipeline(
    config: Config,
    *,
    progress: Optional[ProgressSink] = None,
    llm: Optional[OllamaClient] = None,
    source: Optional[BookmarkSource] = None,
) -> BookmarkDigestPipeline:
    """
    Build the digest pipeline with sqlite persistence and the bird CLI source.
    """
    credentials = _require_credentials(config)
    source = source or create_source(config)
    llm = llm or create_llm(config)
    db = Database(config.DATABASE_PATH)

    return BookmarkDigestPipeline(
        source=source,
        store=SqliteBookmarkStore(db, config.DIGEST_USER_ID),
        analyzer=BatchAnalyzer(llm, settings=config.analyzer, progress=progress),
        enricher=_create_enricher(config, source, credentials),
        credentials=credentials,
        usage=UsageStore(db),
        user_id=config.DIGEST_USER_ID,
        model_name=config.OLLAMA_MODEL,
        ceiling=config.fetch.ceiling,
        progress=progress,
    )


def create_actionable_workflow(
    config: Config,
    *,
    progress: Optional[ProgressSink] = None,
    llm: Optional[OllamaClient] = None,
    source: Optional[BookmarkSource] = None,
) -> MakeActionableWorkflow:
    credentials = _require_credentials(config)
    source = source or create_source(config)

    return MakeActionableWorkflow(
        source=source,
        llm=llm or create_llm(config),
        enricher=_create_enricher(config, source, credentials),
        credentials=credentials,
        usage=UsageStore(Database(config.DATABASE_PATH)),
        user_id=config.DIGEST_USER_ID,
        model_name=config.OLLAMA_MODEL,
        progress=progress,
    )


def create_stats_report(config: Config) -> BookmarkStatsReport:
    db = Database(config.DATABASE_PATH)
    return BookmarkStatsReport(
        store=SqliteBookmarkStore(db, config.DIGEST_USER_ID),
        usage=UsageStore(db),
        user_id=config.DIGEST_USER_ID,
    )


def create_store(config: Config) -> SqliteBookmarkStore:
    return SqliteBookmarkStore(Database(config.DATABASE_PATH), config.DIGEST_USER_ID)


def create_deliveries(config: Config) -> List[DeliveryChannel]:
    """
    Factory function to create delivery channels from configuration.
    """
    deliveries: List[DeliveryChannel] = []

    if config.delivery.file_enabled:
        deliveries.append(FileDelivery(config.delivery.output_dir))

    if config.delivery.discord_enabled:
        if config.delivery.discord_webhook_url:
            deliveries.append(
                DiscordWebhookDelivery(
                    config.delivery.discord_webhook_url,
                    max_units=config.delivery.max_units_per_message,
                )
            )
        else:
            logger.error("Discord delivery enabled but DISCORD_WEBHOOK_URL is not set")

    return deliveries
