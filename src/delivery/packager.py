"""
Packs analysis results into size-bounded display units.

Limits follow Discord embeds: a field value may hold 1024 bytes and an embed
6000 in total (we stop at 5800), spread over at most 25 fields. All sizes are measured in UTF-8 bytes.
"""
import math
from typing import Dict, List, Optional, Tuple

from core.entities import CATEGORIES, ActionableInsight, AnalysisResult, DigestStats, DisplayUnit, Section
from processing.stats import BookmarkStats

MAX_SECTION_BYTES = 1024
MAX_UNIT_BYTES = 5800
MAX_SECTIONS_PER_UNIT = 25
MAX_TAKEAWAY_LENGTH = 1200

DIGEST_TITLE = "📚 Bookmark Digest"
CONTINUED_TITLE = f"{DIGEST_TITLE} (continued)"
ITEM_SEPARATOR = "\n\n"


def byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def split_bytes(text: str, limit: int) -> Tuple[str, str]:
    """Split `text` into the longest prefix of at most `limit` bytes and the rest."""
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text, ""
    # Dropping the partial trailing character keeps the split on a character boundary.
    head = encoded[:max(limit, 0)].decode("utf-8", errors="ignore")
    return head, text[len(head):]


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return f"{text[:max(0, max_length - 3)]}..."


def status_url(result: AnalysisResult) -> str:
    return f"https://x.com/{result.author_username or 'i'}/status/{result.bookmark_id}"


def format_item(result: AnalysisResult) -> str:
    """
    Render one result. The "Bookmark ID:" line is a fixed label that
    downstream consumers use to locate the id.
    """
    actions = [a for a in (s.strip() for s in result.actions) if a]
    actions_text = "\n".join(f"- {a}" for a in actions) if actions else "- (none)"
    author = f" - @{result.author_username}" if result.author_username else ""

    return (
        f"**{result.summary}**{author}\n"
        f"\n"
        f"{truncate_text(result.key_takeaway, MAX_TAKEAWAY_LENGTH)}\n"
        f"\n"
        f"Bookmark ID: {result.bookmark_id}\n"
        f"Link: {status_url(result)}\n"
        f"Suggested actions:\n"
        f"{actions_text}"
    )


def split_for_section(text: str, max_bytes: int = MAX_SECTION_BYTES) -> List[str]:
    """
    Split text into chunks of at most `max_bytes`, breaking at line boundaries.
    A single line longer than the cap is hard-split, its first piece filling
    whatever room is left in the current chunk.
    """
    if byte_len(text) <= max_bytes:
        return [text]

    chunks: List[str] = []
    current = ""

    def push() -> None:
        nonlocal current
        if current.strip():
            chunks.append(current.rstrip("\n"))
        current = ""

    for line in text.split("\n"):
        candidate = f"{current}\n{line}" if current else line
        if byte_len(candidate) <= max_bytes:
            current = candidate
            continue

        if byte_len(line) <= max_bytes:
            push()
            current = line
            continue

        remaining = line
        if current:
            room = max_bytes - byte_len(current) - 1
            head, rest = split_bytes(remaining, room)
            if head:
                current = f"{current}\n{head}"
                remaining = rest
            push()

        while byte_len(remaining) > max_bytes:
            head, remaining = split_bytes(remaining, max_bytes)
            chunks.append(head)
        current = remaining

    push()
    return chunks


def group_by_category(results: List[AnalysisResult]) -> List[Tuple[str, List[AnalysisResult]]]:
    """
    Group results by category. Every known category is present, even when
    empty; groups are sorted by descending size, ties in canonical order.
    """
    grouped: Dict[str, List[AnalysisResult]] = {category: [] for category in CATEGORIES}
    for result in results:
        grouped.setdefault(result.category, []).append(result)

    return sorted(grouped.items(), key=lambda kv: len(kv[1]), reverse=True)


def format_footer(stats: DigestStats) -> str:
    footer = f"{stats.new_count} bookmarks analyzed"
    if stats.total_tokens:
        footer += f" | {stats.total_tokens} tokens"
    return footer


def unit_size(unit: DisplayUnit) -> int:
    size = byte_len(unit.title)
    size += byte_len(unit.description or "")
    size += byte_len(unit.footer or "")
    for section in unit.sections:
        size += byte_len(section.name) + byte_len(section.value)
    return size


class _UnitBuilder:
    def __init__(self, first_title: str, reserved: int):
        self.reserved = reserved
        self.units: List[DisplayUnit] = [DisplayUnit(title=first_title)]
        self.size = byte_len(first_title) + reserved

    def add(self, name: str, value: str) -> None:
        cost = byte_len(name) + byte_len(value)
        current = self.units[-1].sections
        full = self.size + cost > MAX_UNIT_BYTES or len(current) >= MAX_SECTIONS_PER_UNIT
        if full and current:
            self.units.append(DisplayUnit(title=CONTINUED_TITLE))
            self.size = byte_len(CONTINUED_TITLE) + self.reserved
        self.units[-1].sections.append(Section(name=name, value=value))
        self.size += cost


def build_display_units(
    results: List[AnalysisResult],
    stats: Optional[DigestStats] = None,
) -> List[DisplayUnit]:
    """
    Package results into display units, most populated category first.

    Units are returned in priority order so a transport that keeps only the
    first N drops the least-populated categories.
    """
    stats = stats or DigestStats(new_count=len(results))

    if not results:
        return [
            DisplayUnit(
                title=DIGEST_TITLE,
                description="✨ All caught up! No new bookmarks since last digest.",
            )
        ]

    footer = format_footer(stats)
    builder = _UnitBuilder(f"{DIGEST_TITLE} ({stats.new_count} new)", reserved=byte_len(footer))

    for category, items in group_by_category(results):
        if not items:
            continue

        name = f"[{category.upper()}]"
        chunks = [chunk for item in items for chunk in split_for_section(format_item(item))]

        value = ""
        for chunk in chunks:
            candidate = f"{value}{ITEM_SEPARATOR}{chunk}" if value else chunk
            if byte_len(candidate) <= MAX_SECTION_BYTES:
                value = candidate
                continue
            builder.add(name, value)
            value = chunk
        if value:
            builder.add(name, value)

    builder.units[-1].footer = footer
    return builder.units


MAX_TITLE_LENGTH = 256
STATS_BAR_WIDTH = 20
PREVIEW_CHARS = 500
PROMPT_PREVIEW_CHARS = 800


def fit_bytes(text: str, max_bytes: int = MAX_SECTION_BYTES) -> str:
    """Cut `text` to at most `max_bytes`, marking the cut with an ellipsis."""
    if byte_len(text) <= max_bytes:
        return text
    head, _ = split_bytes(text, max_bytes - byte_len("..."))
    return f"{head}..."


def _code_block(text: str, max_bytes: int = MAX_SECTION_BYTES) -> str:
    fence = "```\n{}\n```"
    return fence.format(fit_bytes(text, max_bytes - byte_len(fence.format(""))))


def category_chart(stats: BookmarkStats) -> str:
    if not stats.categories:
        return "(none)"
    peak = max(count for _, count in stats.categories)
    return "\n".join(
        f"{category:<15} {'█' * math.ceil(count / peak * STATS_BAR_WIDTH)} {count} ({stats.percent(count)}%)"
        for category, count in stats.categories
    )


def build_stats_unit(stats: BookmarkStats) -> DisplayUnit:
    title = f"📊 Bookmark Stats ({stats.period})"
    if not stats.total:
        return DisplayUnit(title=title, description="📊 No bookmarks analyzed yet. Run the digest first!")

    authors = "\n".join(f"@{author} ({count})" for author, count in stats.top_authors) or "(none)"
    sections = [
        Section("📈 Total Analyzed", f"{stats.total} bookmarks"),
        Section("🎯 Actionable", f"{stats.actionable} ({stats.percent(stats.actionable)}%)"),
        Section("📚 Reference-Only", str(stats.reference_only)),
        Section("🏆 Top Categories", _code_block(category_chart(stats))),
        Section("👥 Top Authors", fit_bytes(authors)),
        Section(
            "🤖 Token Usage (Today)",
            f"Input: {stats.today_input_tokens} | Output: {stats.today_output_tokens} tokens",
        ),
        Section("📅 Tokens This Month", f"{stats.monthly_tokens} tokens"),
    ]
    return DisplayUnit(title=title, sections=sections)


def build_actionable_unit(insight: ActionableInsight) -> DisplayUnit:
    preview = truncate_text(insight.text, PREVIEW_CHARS)
    ideas = "\n".join(f"- {idea}" for idea in insight.action_ideas) or "No specific actions identified."
    prompt_preview = insight.execution_prompt[:PROMPT_PREVIEW_CHARS]
    if len(insight.execution_prompt) > PROMPT_PREVIEW_CHARS:
        prompt_preview += "\n..."

    return DisplayUnit(
        title=truncate_text(f"🎯 {insight.summary}", MAX_TITLE_LENGTH),
        description=(
            f"**@{insight.author_username}** | **{insight.category}** | "
            f"❤️ {insight.like_count} 🔁 {insight.retweet_count}\n\n{preview}"
        ),
        sections=[
            Section("🎯 Action Ideas", fit_bytes(ideas)),
            Section("🚀 Follow-up Prompt (preview)", _code_block(prompt_preview)),
        ],
        footer="Full prompt saved with the delivered files",
    )
