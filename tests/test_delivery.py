import json

import httpx
import pytest

from core.entities import DisplayUnit, Section
from delivery.base import DeliveryError
from delivery.discord_webhook import DiscordWebhookDelivery, unit_to_embed
from delivery.file_delivery import FileDelivery


def _units(n):
    return [
        DisplayUnit(title=f"Unit {i}", sections=[Section(name="[AI]", value=f"value {i}")])
        for i in range(n)
    ]


def test_unit_to_embed():
    unit = DisplayUnit(
        title="📚 Bookmark Digest (3 new)",
        sections=[Section(name="[TOOLS]", value="**x**")],
        footer="3 bookmarks analyzed",
    )

    embed = unit_to_embed(unit)

    assert embed["title"] == "📚 Bookmark Digest (3 new)"
    assert embed["fields"] == [{"name": "[TOOLS]", "value": "**x**", "inline": False}]
    assert embed["footer"] == {"text": "3 bookmarks analyzed"}
    assert "description" not in embed


@pytest.mark.asyncio
async def test_discord_caps_units_per_message():
    posted = []

    def handler(request):
        posted.append(json.loads(request.content))
        return httpx.Response(204)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        delivery = DiscordWebhookDelivery("https://discord.test/hook", client=client)
        report = await delivery.deliver(digest_date="2026-10-19", units=_units(12))

    assert (report.sent, report.dropped) == (10, 2)
    assert len(posted) == 1
    assert posted[0]["content"] == "Bookmark digest for 2026-10-19"
    assert [e["title"] for e in posted[0]["embeds"]] == [f"Unit {i}" for i in range(10)]


@pytest.mark.asyncio
async def test_discord_http_error_becomes_delivery_error():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(400))) as client:
        delivery = DiscordWebhookDelivery("https://discord.test/hook", client=client)

        with pytest.raises(DeliveryError, match="Discord webhook failed"):
            await delivery.deliver(digest_date="2026-10-19", units=_units(1))


@pytest.mark.asyncio
async def test_file_delivery_writes_json_and_markdown(tmp_path):
    units = [
        DisplayUnit(title="Digest", description="intro", sections=[Section(name="[NEWS]", value="item")], footer="1 bookmarks analyzed")
    ]

    report = await FileDelivery(str(tmp_path / "out")).deliver(digest_date="2026-10-19", units=units)

    data = json.loads((tmp_path / "out" / "bookmark_digest_2026-10-19.json").read_text(encoding="utf-8"))
    markdown = (tmp_path / "out" / "bookmark_digest_2026-10-19.md").read_text(encoding="utf-8")
    assert report.sent == 1
    assert data[0]["sections"] == [{"name": "[NEWS]", "value": "item"}]
    assert "# Digest" in markdown
    assert "## [NEWS]\nitem" in markdown
    assert "_1 bookmarks analyzed_" in markdown


@pytest.mark.asyncio
async def test_label_names_files_and_discord_message(tmp_path):
    posted = []

    def handler(request):
        posted.append(json.loads(request.content))
        return httpx.Response(204)

    await FileDelivery(str(tmp_path)).deliver(digest_date="2026-10-19", units=_units(1), label="bookmark_stats")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        delivery = DiscordWebhookDelivery("https://discord.test/hook", client=client)
        await delivery.deliver(digest_date="2026-10-19", units=_units(1), label="bookmark_stats")

    assert (tmp_path / "bookmark_stats_2026-10-19.md").exists()
    assert posted[0]["content"] == "Bookmark stats for 2026-10-19"


def test_file_delivery_saves_attachment(tmp_path):
    path = FileDelivery(str(tmp_path / "out")).save_attachment("followup_prompt_42.txt", "Full prompt ✓")

    assert path == tmp_path / "out" / "followup_prompt_42.txt"
    assert path.read_text(encoding="utf-8") == "Full prompt ✓"
