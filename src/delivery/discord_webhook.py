import logging
from typing import Any, Dict, List, Optional

import httpx

from core.entities import DisplayUnit
from delivery.base import DeliveryChannel, DeliveryError, DeliveryReport

logger = logging.getLogger(__name__)

TWITTER_BLUE = 0x1DA1F2


def unit_to_embed(unit: DisplayUnit, timestamp: Optional[str] = None) -> Dict[str, Any]:
    embed: Dict[str, Any] = {"title": unit.title, "color": TWITTER_BLUE}
    if unit.description:
        embed["description"] = unit.description
    if unit.sections:
        embed["fields"] = [
            {"name": s.name, "value": s.value, "inline": False} for s in unit.sections
        ]
    if unit.footer:
        embed["footer"] = {"text": unit.footer}
    if timestamp:
        embed["timestamp"] = timestamp
    return embed


class DiscordWebhookDelivery(DeliveryChannel):
    """
    Posts display units as embeds to a Discord webhook.
    Discord accepts at most 10 embeds per message; extra units are dropped.
    """
    name = "discord"

    def __init__(
        self,
        webhook_url: str,
        *,
        max_units: int = 10,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.webhook_url = webhook_url
        self.max_units = max_units
        self._client = client
        self.timeout = timeout

    async def deliver(
        self,
        *,
        digest_date: str,
        units: List[DisplayUnit],
        label: str = "bookmark_digest",
    ) -> DeliveryReport:
        kept = units[:self.max_units]
        dropped = len(units) - len(kept)
        if dropped:
            logger.warning(f"Discord message limit: dropping {dropped} of {len(units)} digest units")

        payload = {
            "content": f"{label.replace('_', ' ').capitalize()} for {digest_date}",
            "embeds": [unit_to_embed(u) for u in kept],
        }

        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            resp = await client.post(self.webhook_url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"Discord webhook failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        return DeliveryReport(channel=self.name, sent=len(kept), dropped=dropped)
