"""
Prompt templates for bookmark categorization
"""
from typing import Dict, List

from ingestion.base import Bookmark

MAX_BODY_CHARS = 1800
MAX_QUOTE_CHARS = 600

SYSTEM_INSTRUCTION = """You are analyzing Twitter/X bookmarks for a personal digest. Your goal: help the user understand EXACTLY what each bookmark is about and what they should do with it.

For each bookmark, produce:
{
  "category": "AI" | "crypto" | "marketing" | "tools" | "personal" | "news" | "content-ideas" | "other",
  "isActionable": boolean,
  "summary": "A specific, descriptive title (8-15 words) that captures the ACTUAL topic",
  "keyTakeaway": "3-5 sentence breakdown: what specific claim, insight or resource is shared, why it is valuable, and what makes it worth keeping. Include names, numbers, tools or frameworks mentioned.",
  "actions": ["1-3 concrete next steps, each starting with a verb such as Read, Try, Research, Apply, Watch"]
}

Category guidelines (use "other" ONLY as an absolute last resort):
- AI: machine learning, AI tools, LLMs, AI research, prompting, automation
- crypto: cryptocurrency, blockchain, web3, DeFi, trading, tokenomics
- marketing: marketing strategy, growth, advertising, audience building, SEO
- tools: software, apps, GitHub repos, developer tools, browser extensions, utilities
- personal: health, fitness, self-improvement, productivity, psychology, relationships, lifestyle
- news: breaking events, announcements, industry trends, geopolitics, current affairs
- content-ideas: writing frameworks, content strategy, creator tips, viral formats, media analysis

Rules:
1. Never answer with generic phrases like "Shared link", "Unknown content" or "Shared article". Use every piece of context (text, quoted post, link context, author, engagement) to work out the topic.
2. If a post is mostly a URL, rely on its "Link context". If there is none, infer from the author and any text clues.
3. keyTakeaway must contain specific details. No filler such as "it might be worth exploring".
4. A quoted post is part of the bookmark. Analyze both together.
5. High engagement (1000+ likes) means the content resonated; work out why.
6. Actions must be specific to the bookmark: "Read the thread on X" rather than "investigate further"."""


def _truncate_body(bookmark: Bookmark, max_chars: int) -> str:
    text = bookmark.text
    if bookmark.article:
        if len(text) > max_chars:
            text = text[:max_chars] + f"\n[...article continues, {len(bookmark.text)} chars total]"
        return f'X Article: "{bookmark.article.title}"\nContent:\n{text}'

    if len(text) > max_chars:
        text = text[:max_chars] + f"... [truncated, {len(bookmark.text)} chars total]"
    return f"Text: {text}"


def _quoted_context(bookmark: Bookmark, max_chars: int) -> str:
    quoted = bookmark.quoted_tweet
    if quoted is None:
        return ""
    text = quoted.text if len(quoted.text) <= max_chars else quoted.text[:max_chars] + "..."
    context = f'\nQuoted tweet by @{quoted.author.username}: "{text}"'
    if quoted.like_count > 0:
        context += f" [{quoted.like_count} likes]"
    return context


def format_bookmark(
    idx: int,
    bookmark: Bookmark,
    link_context: Dict[str, str],
    *,
    max_body_chars: int = MAX_BODY_CHARS,
    max_quote_chars: int = MAX_QUOTE_CHARS,
) -> str:
    enrichment = link_context.get(bookmark.id)
    link_block = f"\nLink context:\n{enrichment}" if enrichment else ""
    views = f", {bookmark.view_count} views" if bookmark.view_count else ""

    return (
        f"[{idx}] Author: @{bookmark.author.username} ({bookmark.author.name})\n"
        f"{_truncate_body(bookmark, max_body_chars)}"
        f"{_quoted_context(bookmark, max_quote_chars)}"
        f"{link_block}\n"
        f"Engagement: {bookmark.like_count} likes, {bookmark.retweet_count} RTs{views}\n"
        f"---"
    )


def build_categorization_prompt(
    bookmarks: List[Bookmark],
    link_context: Dict[str, str],
    *,
    max_body_chars: int = MAX_BODY_CHARS,
    max_quote_chars: int = MAX_QUOTE_CHARS,
) -> str:
    items = "\n".join(
        format_bookmark(
            idx,
            b,
            link_context,
            max_body_chars=max_body_chars,
            max_quote_chars=max_quote_chars,
        )
        for idx, b in enumerate(bookmarks)
    )
    placeholders = ", ".join(f"{{...bookmark {i}...}}" for i in range(len(bookmarks)))

    return f"""{SYSTEM_INSTRUCTION}

Bookmarks to analyze:
{items}

Respond with JSON: {{"bookmarks": [{placeholders}]}}
The array must have exactly {len(bookmarks)} objects, in the same order as the bookmarks above."""


ACTIONABLE_INSTRUCTION = """You are helping someone act on a single Twitter/X bookmark. Read the full content below and decide what they could actually do with it.

Respond with JSON:
{
  "category": "AI" | "crypto" | "marketing" | "tools" | "personal" | "news" | "content-ideas" | "other",
  "summary": "A specific, descriptive title (8-15 words) for what the bookmark is about",
  "actionIdeas": ["3-5 concrete, tactical actions, each naming the specific resource, tool or technique involved"]
}

Each action idea must be doable within a week and specific to this bookmark. No generic advice such as "learn more about this"."""


def build_actionable_prompt(bookmark: Bookmark, link_context: str = "") -> str:
    """Single-bookmark prompt; the full text is sent without truncation."""
    quoted = _quoted_context(bookmark, len(bookmark.quoted_tweet.text)) if bookmark.quoted_tweet else ""
    title = f'X Article: "{bookmark.article.title}"\n' if bookmark.article else ""
    link_block = f"\nLink context:\n{link_context}" if link_context else ""

    return f"""{ACTIONABLE_INSTRUCTION}

Author: @{bookmark.author.username} ({bookmark.author.name})
{title}Content:
{bookmark.text}{quoted}{link_block}
Engagement: {bookmark.like_count} likes, {bookmark.retweet_count} RTs"""


def build_execution_prompt(bookmark: Bookmark, category: str, action_ideas: List[str]) -> str:
    """
    A ready-to-paste prompt for a stronger assistant, carrying the full content
    and the suggested actions so it can help carry one of them out.
    """
    ideas = "\n".join(f"- {idea}" for idea in action_ideas)

    return f"""I bookmarked this content and want to take action on it.

Author: @{bookmark.author.username} ({bookmark.author.name})
Category: {category}
Engagement: {bookmark.like_count} likes, {bookmark.retweet_count} retweets

Content:
{bookmark.text}

Suggested actions:
{ideas}

Pick the most valuable action above and help me actually execute it. Be specific and tactical: give me concrete next steps, commands, or a plan. Don't just summarize."""
