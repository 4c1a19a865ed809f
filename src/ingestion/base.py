"""
Base classes for bookmark ingestion
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FetchError(Exception):
    """Raised when the upstream fetch process fails. Carries its diagnostic text."""


class FetchTimeout(FetchError):
    """Raised when a single-item lookup exceeds its time bound."""


@dataclass(frozen=True)
class XCredentials:
    auth_token: str
    ct0: str


class BookmarkAuthor(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    username: str = ""
    name: str = ""


class UrlEntity(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    url: str = ""
    expanded_url: str = Field("", alias="expandedUrl")
    display_url: str = Field("", alias="displayUrl")


class Article(BaseModel):
    """Long-form X Article attached to a bookmark."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    title: str = ""
    preview_text: str = Field("", alias="previewText")


class Bookmark(BaseModel):
    """
    One bookmark record as emitted by the bird CLI (camelCase JSON).
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    text: str = ""
    created_at: str = Field("", alias="createdAt")
    reply_count: int = Field(0, alias="replyCount")
    retweet_count: int = Field(0, alias="retweetCount")
    like_count: int = Field(0, alias="likeCount")
    view_count: Optional[int] = Field(None, alias="viewCount")
    author: BookmarkAuthor = Field(default_factory=BookmarkAuthor)
    quoted_tweet: Optional[Bookmark] = Field(None, alias="quotedTweet")
    urls: Optional[List[UrlEntity]] = None
    article: Optional[Article] = None

    @property
    def numeric_id(self) -> int:
        """Snowflake ids: numerically larger means newer."""
        return int(self.id)


def newer_than(bookmarks: List[Bookmark], since_id: Optional[str]) -> List[Bookmark]:
    """Keep bookmarks strictly newer than `since_id`; all of them when it is unset."""
    if not since_id:
        return list(bookmarks)
    floor = int(since_id)
    return [b for b in bookmarks if b.numeric_id > floor]


class BookmarkSource(ABC):
    """
    Interface to the process that turns bookmark ids into parsed records.
    """

    @abstractmethod
    async def fetch_latest(
        self,
        count: int,
        credentials: Optional[XCredentials] = None,
        since_id: Optional[str] = None,
    ) -> List[Bookmark]:
        """
        Fetch the most recent `count` bookmarks, newest first, optionally
        only those newer than `since_id`.
        Raises FetchError on failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def fetch_by_id(
        self,
        bookmark_id: str,
        credentials: Optional[XCredentials] = None,
    ) -> Bookmark:
        """
        Fetch one post with full content.
        Raises FetchTimeout if the lookup exceeds its bound, FetchError otherwise.
        """
        raise NotImplementedError
