"""
Aggregate statistics over previously analyzed bookmarks.
"""
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Tuple

from core.entities import CATEGORIES, AnalysisResult

# How many recent analyses each reporting period looks at.
PERIOD_LIMITS = {"week": 50, "month": 200, "all": 10000}
DEFAULT_PERIOD = "month"
TOP_AUTHORS = 5


@dataclass(frozen=True)
class BookmarkStats:
    period: str
    total: int
    actionable: int
    categories: List[Tuple[str, int]] = field(default_factory=list)
    top_authors: List[Tuple[str, int]] = field(default_factory=list)
    today_input_tokens: int = 0
    today_output_tokens: int = 0
    monthly_tokens: int = 0

    @property
    def reference_only(self) -> int:
        return self.total - self.actionable

    def percent(self, count: int) -> int:
        return round(count / self.total * 100) if self.total else 0


def period_limit(period: str) -> int:
    if period not in PERIOD_LIMITS:
        raise ValueError(f"Unknown stats period {period!r}; expected one of {', '.join(PERIOD_LIMITS)}")
    return PERIOD_LIMITS[period]


def summarize_analyses(
    analyses: List[AnalysisResult],
    *,
    period: str = DEFAULT_PERIOD,
    today_tokens: Tuple[int, int] = (0, 0),
    monthly_tokens: int = 0,
) -> BookmarkStats:
    """
    Category breakdown (largest first, ties in canonical order), the actionable
    split, and the most frequent authors among `analyses`.
    """
    order = {category: i for i, category in enumerate(CATEGORIES)}
    categories = sorted(
        Counter(a.category for a in analyses).items(),
        key=lambda kv: (-kv[1], order.get(kv[0], len(order))),
    )
    authors = Counter(a.author_username for a in analyses if a.author_username)

    return BookmarkStats(
        period=period,
        total=len(analyses),
        actionable=sum(1 for a in analyses if a.is_actionable),
        categories=categories,
        top_authors=authors.most_common(TOP_AUTHORS),
        today_input_tokens=today_tokens[0],
        today_output_tokens=today_tokens[1],
        monthly_tokens=monthly_tokens,
    )
