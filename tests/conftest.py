"""Shared fakes for the bookmark digest test-suite."""
import json
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

import pytest

from core.entities import AnalysisResult
from ingestion.base import Article, Bookmark, BookmarkAuthor, BookmarkSource, FetchError, UrlEntity
from services.bookmark_store import ProcessedStore


def make_bookmark(
    bookmark_id: str,
    text: str = "Interesting post about building tools",
    *,
    username: str = "alice",
    name: str = "Alice",
    likes: int = 0,
    retweets: int = 0,
    urls: Optional[List[str]] = None,
    article: Optional[Article] = None,
    quoted: Optional[Bookmark] = None,
) -> Bookmark:
    return Bookmark(
        id=bookmark_id,
        text=text,
        created_at="Mon Oct 19 10:00:00 +0000 2026",
        like_count=likes,
        retweet_count=retweets,
        author=BookmarkAuthor(username=username, name=name),
        urls=[UrlEntity(url=u, expanded_url=u) for u in urls] if urls else None,
        article=article,
        quoted_tweet=quoted,
    )


def make_result(
    bookmark_id: str,
    category: str = "tools",
    *,
    summary: Optional[str] = None,
    takeaway: str = "A concrete takeaway with names and numbers.",
    actions: Iterable[str] = ("Try the tool on a side project",),
    username: str = "alice",
) -> AnalysisResult:
    return AnalysisResult(
        bookmark_id=bookmark_id,
        category=category,
        is_actionable=True,
        summary=summary or f"Summary for {bookmark_id}",
        key_takeaway=takeaway,
        actions=tuple(actions),
        author="Alice",
        author_username=username,
    )


def analysis_entry(
    category: str = "tools",
    summary: str = "Open-source CLI for tracking bookmarks",
    takeaway: str = "The repo ships a Rust CLI with 2k stars that exports bookmarks to JSON.",
    actions: Iterable[str] = ("Try the CLI on your own bookmarks",),
    actionable: bool = True,
) -> Dict[str, Any]:
    return {
        "category": category,
        "isActionable": actionable,
        "summary": summary,
        "keyTakeaway": takeaway,
        "actions": list(actions),
    }


def llm_response(entries: List[Dict[str, Any]], input_tokens: int = 0, output_tokens: int = 0) -> Dict[str, Any]:
    return {
        "content": json.dumps({"bookmarks": entries}),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
    }


class FakeSource(BookmarkSource):
    """Serves a fixed, newest-first universe of bookmarks."""

    def __init__(
        self,
        universe: List[Bookmark],
        *,
        full: Optional[Dict[str, Bookmark]] = None,
        lookup_errors: Optional[Dict[str, Exception]] = None,
        list_error: Optional[Exception] = None,
    ):
        self.universe = universe
        self.full = full or {}
        self.lookup_errors = lookup_errors or {}
        self.list_error = list_error
        self.list_calls: List[int] = []
        self.lookup_calls: List[str] = []

    async def fetch_latest(self, count, credentials=None, since_id=None):
        self.list_calls.append(count)
        if self.list_error is not None:
            raise self.list_error
        return self.universe[:count]

    async def fetch_by_id(self, bookmark_id, credentials=None):
        self.lookup_calls.append(bookmark_id)
        if bookmark_id in self.lookup_errors:
            raise self.lookup_errors[bookmark_id]
        if bookmark_id not in self.full:
            raise FetchError(f"Bird CLI failed to fetch tweet {bookmark_id}: not found")
        return self.full[bookmark_id]


class InMemoryStore(ProcessedStore):
    def __init__(self, processed: Optional[Iterable[str]] = None):
        self.processed: Set[str] = set(processed or ())
        self.saved: List[AnalysisResult] = []
        self.save_calls = 0

    async def processed_ids(self, bookmark_ids):
        return {i for i in bookmark_ids if i in self.processed}

    async def save_analyses(self, results):
        self.save_calls += 1
        self.saved.extend(results)
        self.processed.update(r.bookmark_id for r in results)


Response = Union[Dict[str, Any], Exception]


class FakeLLM:
    """
    Stands in for OllamaClient.evaluate. Either replays queued responses
    (exceptions are raised) or answers every prompt through `responder`.
    """

    def __init__(
        self,
        responses: Optional[List[Response]] = None,
        responder: Optional[Callable[[str], Dict[str, Any]]] = None,
    ):
        self.responses = list(responses or [])
        self.responder = responder
        self.prompts: List[str] = []

    async def evaluate(self, prompt: str) -> Dict[str, Any]:
        self.prompts.append(prompt)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        if self.responder is not None:
            return self.responder(prompt)
        raise AssertionError("FakeLLM has no response left")


def count_prompt_items(prompt: str) -> int:
    return len(re.findall(r"^\[\d+\] Author: ", prompt, flags=re.MULTILINE))


def echo_responder(prompt: str) -> Dict[str, Any]:
    """Answer with one valid entry per bookmark in the prompt."""
    return llm_response([analysis_entry() for _ in range(count_prompt_items(prompt))], 400, 100)


class FakeClock:
    """Monotonic clock whose sleep only advances time."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
