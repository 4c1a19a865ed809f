"""
Loads and handles config from config.yml
Secrets (AUTH_TOKEN, CT0, OLLAMA_API_KEY, DISCORD_WEBHOOK_URL) are loaded from .env
"""
import logging
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class AnalyzerConfig(BaseModel):
    """Batching and rate-limit settings for the summarization service."""
    batch_size: int = Field(5, ge=1)
    token_limit: int = Field(5600, ge=1)  # provider allows 6000/min; stay below it
    token_window_seconds: float = 62.0
    window_margin_seconds: float = 2.0
    throttle_delay_seconds: float = 65.0
    output_tokens_per_item: int = 150
    max_body_chars: int = 1800
    max_quote_chars: int = 600


class EnricherConfig(BaseModel):
    """Link metadata fetching."""
    enabled: bool = True
    timeout_seconds: float = 5.0
    max_body_bytes: int = 50_000
    max_redirects: int = 5
    concurrency: int = Field(5, ge=1)


class FetchConfig(BaseModel):
    """Bookmark fetching via the bird CLI."""
    bird_binary: str = "bird"
    default_count: int = Field(50, ge=1)
    ceiling: int = Field(200, ge=1)
    lookup_timeout_seconds: float = 15.0
    list_timeout_seconds: float = 120.0


class DeliveryConfig(BaseModel):
    file_enabled: bool = True
    output_dir: str = "output"
    discord_enabled: bool = False
    discord_webhook_url: Optional[str] = None
    max_units_per_message: int = Field(10, ge=1)


class Config(BaseModel):
    # Core
    DATABASE_PATH: str
    DIGEST_USER_ID: str = "default"

    # Ollama
    OLLAMA_BASE_URL: str
    OLLAMA_MODEL: str
    OLLAMA_API_KEY: Optional[str] = None

    # X credentials (from .env)
    AUTH_TOKEN: Optional[str] = None
    CT0: Optional[str] = None

    analyzer: AnalyzerConfig = AnalyzerConfig()
    enricher: EnricherConfig = EnricherConfig()
    fetch: FetchConfig = FetchConfig()
    delivery: DeliveryConfig = DeliveryConfig()

    @property
    def has_x_credentials(self) -> bool:
        return bool(self.AUTH_TOKEN and self.CT0)


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path() -> str:
    """Get the path to config.yml, handling different working directories."""
    override = os.getenv("DIGEST_CONFIG_PATH")
    if override:
        return override

    # Try relative path first
    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    # Try from project root
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    raise FileNotFoundError("Cannot find resources/config.yml")


def _section(data: Dict[str, Any], key: str, model: type) -> BaseModel:
    """Parse one nested section, falling back to defaults if it is malformed."""
    raw = data.get(key) or {}
    try:
        return model(**raw)
    except (TypeError, ValidationError) as e:
        logger.error(f"Invalid '{key}' section in config, using defaults: {e}")
        return model()


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and secrets from .env."""
    # Load .env for sensitive credentials
    load_dotenv()

    config_path = path or _get_config_path()

    with open(config_path, 'r') as file:
        config = yaml.safe_load(file) or {}

    delivery = _section(config, "delivery", DeliveryConfig)
    webhook = os.getenv("DISCORD_WEBHOOK_URL")
    if webhook:
        delivery = delivery.model_copy(update={"discord_webhook_url": webhook})
    if "DISCORD_ENABLED" in config:
        delivery = delivery.model_copy(update={"discord_enabled": _bool(config["DISCORD_ENABLED"])})

    return Config(
        DATABASE_PATH=config.get("DATABASE_PATH", "data/bookmarks.db"),
        DIGEST_USER_ID=os.getenv("DIGEST_USER_ID") or str(config.get("DIGEST_USER_ID", "default")),

        OLLAMA_BASE_URL=config.get("OLLAMA_BASE_URL", "http://localhost:11434"),
        OLLAMA_MODEL=config.get("OLLAMA_MODEL", "llama3.3:70b"),
        OLLAMA_API_KEY=os.getenv("OLLAMA_API_KEY"),

        AUTH_TOKEN=os.getenv("AUTH_TOKEN"),
        CT0=os.getenv("CT0"),

        analyzer=_section(config, "analyzer", AnalyzerConfig),
        enricher=_section(config, "enricher", EnricherConfig),
        fetch=_section(config, "fetch", FetchConfig),
        delivery=delivery,
    )
