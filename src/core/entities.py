from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple

Category = Literal[
    "AI",
    "crypto",
    "marketing",
    "tools",
    "personal",
    "news",
    "content-ideas",
    "other",
]

# Canonical order, used as the tie-breaker when grouping.
CATEGORIES: Tuple[str, ...] = (
    "AI",
    "crypto",
    "marketing",
    "tools",
    "personal",
    "news",
    "content-ideas",
    "other",
)

FALLBACK_CATEGORY = "other"


@dataclass(frozen=True)
class AnalysisResult:
    """
    Structured analysis of a single bookmark.
    """
    bookmark_id: str
    category: str
    is_actionable: bool
    summary: str
    key_takeaway: str
    actions: Tuple[str, ...]
    author: str = ""
    author_username: str = ""
    text: str = ""
    like_count: int = 0
    retweet_count: int = 0
    created_at: str = ""
    fallback: bool = False


@dataclass(frozen=True)
class AnalysisRun:
    """
    Output of one analyzer invocation: results in input order plus token totals.
    """
    results: List[AnalysisResult]
    input_tokens: int = 0
    output_tokens: int = 0
    batches: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class Section:
    name: str
    value: str


@dataclass
class DisplayUnit:
    """
    One size-bounded container of digest content, ready for a transport.
    """
    title: str
    sections: List[Section] = field(default_factory=list)
    description: Optional[str] = None
    footer: Optional[str] = None


@dataclass(frozen=True)
class DigestStats:
    new_count: int
    fetched_count: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    category_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class ActionableInsight:
    """
    Deep single-bookmark analysis with a follow-up prompt for executing one of the ideas.
    """
    bookmark_id: str
    category: str
    summary: str
    action_ideas: Tuple[str, ...]
    execution_prompt: str
    author_username: str = ""
    text: str = ""
    like_count: int = 0
    retweet_count: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
