"""Shared ingestion data types.

Each content type has its own record: articles, social posts and videos
are persisted to different tables keyed by their natural identifier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(IntEnum):
    OPEN_SOURCE = 1
    SERVICE = 2
    RESEARCH = 3
    BUSINESS = 4
    OTHER = 5

    @property
    def label(self) -> str:
        return _CATEGORY_TEXT[self][0]

    @property
    def description(self) -> str:
        return _CATEGORY_TEXT[self][1]

    @classmethod
    def from_model_output(cls, text: Optional[str]) -> "Category":
        """First digit 1-5 in the model's answer; OTHER when there is none."""
        for ch in text or "":
            if ch in "12345":
                return cls(int(ch))
        return cls.OTHER


_CATEGORY_TEXT = {
    Category.OPEN_SOURCE: ("Open source", "models or tools developers can actually use, such as lightweight or open-weight model releases"),
    Category.SERVICE: ("Service", "commercial AI services the general public can use, such as new features in a consumer assistant"),
    Category.RESEARCH: ("Research", "work that stays at the research stage in universities or company labs"),
    Category.BUSINESS: ("Business / industry", "government investment, AI law and policy, big tech deals, contracts, markets"),
    Category.OTHER: ("Other", "anything that does not clearly fit 1-4"),
}


class ContentKind(str, Enum):
    ARTICLE = "article"
    TWEET = "tweet"
    VIDEO = "video"


@dataclass(frozen=True)
class CandidateItem:
    """One listed identifier (URL or platform id) plus whatever the lister saw."""

    source_key: str
    raw_payload: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ArticleDetail:
    url: str
    title: str
    body: str
    image_urls: Tuple[str, ...] = ()
    published_at: Optional[datetime] = None


@dataclass(frozen=True)
class TweetAuthor:
    name: str
    username: str
    profile_image_url: Optional[str] = None


@dataclass(frozen=True)
class TweetDetail:
    id: str
    text: str
    author: TweetAuthor
    url: str
    created_at: datetime
    media: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VideoDetail:
    id: str
    title: str
    channel_name: str
    published_at: datetime
    thumbnail_url: Optional[str] = None
    duration: Optional[str] = None
    view_count: Optional[int] = None


@dataclass(frozen=True)
class EnrichedArticle:
    kind = ContentKind.ARTICLE

    source_key: str
    title: str
    body: str
    media: Tuple[str, ...]
    summary_lines: Tuple[str, ...]
    details: Tuple[str, ...]
    category: Category
    published_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if len(self.summary_lines) != len(self.details):
            raise ValueError(
                f"summary_lines ({len(self.summary_lines)}) and details ({len(self.details)}) must align by position"
            )


@dataclass(frozen=True)
class EnrichedTweet:
    kind = ContentKind.TWEET

    source_key: str
    text: str
    author: TweetAuthor
    url: str
    category: Category
    published_at: datetime
    text_translated: Optional[str] = None
    translation_model: Optional[str] = None
    media: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class VideoRecord:
    kind = ContentKind.VIDEO

    source_key: str
    title: str
    channel_name: str
    published_at: datetime
    thumbnail_url: Optional[str] = None
    duration: Optional[str] = None
    view_count: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class SourceRunResult:
    source_name: str
    success: bool
    items_ingested: int
    errors: Tuple[str, ...] = ()
    duration_ms: float = 0.0
    candidates_found: int = 0
    new_candidates: int = 0
    final_state: str = "done"


@dataclass(frozen=True)
class FleetReport:
    results: Tuple[SourceRunResult, ...]
    duration_ms: float
    completed: bool = True

    @property
    def items_ingested(self) -> int:
        return sum(r.items_ingested for r in self.results)

    @property
    def errors(self) -> List[str]:
        return [f"{r.source_name}: {err}" for r in self.results for err in r.errors]

    @property
    def succeeded(self) -> List[SourceRunResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[SourceRunResult]:
        return [r for r in self.results if not r.success]

    @property
    def success_rate(self) -> float:
        if not self.results:
            return 0.0
        return len(self.succeeded) / len(self.results)
