"""Listers/fetchers for each kind of content source.

A source answers two questions: which items exist right now
(`list_candidates`) and what one of them contains (`fetch_detail`). Site- or
platform-specific parsing stays behind this boundary; the orchestrator never
sees it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

import feedparser
import requests

from pulsewire.errors import ListingError
from pulsewire.extraction.fulltext import USER_AGENT, fetch_article
from pulsewire.ingestion.content_types import ArticleDetail, CandidateItem, ContentKind, VideoDetail
from pulsewire.ingestion.url_utils import canonicalize_url, extract_video_id

logger = logging.getLogger(__name__)

YOUTUBE_FEED_URL = "https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"


def _entry_datetime(entry: Any) -> Optional[datetime]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime(*parsed[:6], tzinfo=timezone.utc)


def _download_feed(feed_url: str, timeout: float) -> Any:
    resp = requests.get(feed_url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
    resp.raise_for_status()
    parsed = feedparser.parse(resp.content)
    if parsed.get("bozo") and not parsed.entries:
        raise ListingError(f"unreadable feed {feed_url}: {parsed.get('bozo_exception')}")
    return parsed


class SourceAdapter:
    name: str
    kind: ContentKind

    def list_candidates(self) -> List[CandidateItem]:
        raise NotImplementedError

    def fetch_detail(self, candidate: CandidateItem) -> Optional[Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class RSSArticleSource(SourceAdapter):
    """Article links from one or more RSS/Atom feeds, bodies via trafilatura."""

    name: str
    feeds: Sequence[Tuple[str, str]]  # (feed_name, feed_url)
    limit: int = 30
    timeout: float = 30.0
    kind: ContentKind = ContentKind.ARTICLE

    def list_candidates(self) -> List[CandidateItem]:
        out: List[CandidateItem] = []
        seen = set()
        failures = []
        for feed_name, feed_url in self.feeds:
            try:
                parsed = _download_feed(feed_url, self.timeout)
            except (requests.RequestException, ListingError) as e:
                logger.warning(f"[{self.name}] feed {feed_name} failed: {e}")
                failures.append(f"{feed_name}: {e}")
                continue
            for entry in parsed.entries:
                link = entry.get("link")
                if not link:
                    continue
                key = canonicalize_url(link)
                if key in seen:
                    continue
                seen.add(key)
                out.append(
                    CandidateItem(
                        source_key=key,
                        raw_payload={
                            "title": (entry.get("title") or "").strip(),
                            "published_at": _entry_datetime(entry),
                            "feed": feed_name,
                        },
                    )
                )
                if len(out) >= self.limit:
                    return out
        if failures and len(failures) == len(self.feeds):
            raise ListingError("; ".join(failures))
        return out

    def fetch_detail(self, candidate: CandidateItem) -> Optional[ArticleDetail]:
        result = fetch_article(candidate.source_key, timeout=self.timeout)
        if not result.ok:
            logger.warning(f"[{self.name}] skipping {candidate.source_key}: {result.status}")
            return None
        detail = result.detail
        listed_at = (candidate.raw_payload or {}).get("published_at")
        if detail.published_at is None and listed_at is not None:
            detail = ArticleDetail(
                url=detail.url,
                title=detail.title,
                body=detail.body,
                image_urls=detail.image_urls,
                published_at=listed_at,
            )
        return detail


@dataclass(frozen=True)
class YouTubeChannelSource(SourceAdapter):
    """Recent uploads from channels' public Atom feeds; no enrichment needed."""

    name: str
    channel_ids: Sequence[str]
    limit: int = 15
    timeout: float = 30.0
    kind: ContentKind = ContentKind.VIDEO

    def list_candidates(self) -> List[CandidateItem]:
        out: List[CandidateItem] = []
        failures = []
        for channel_id in self.channel_ids:
            feed_url = YOUTUBE_FEED_URL.format(channel_id=channel_id)
            try:
                parsed = _download_feed(feed_url, self.timeout)
            except (requests.RequestException, ListingError) as e:
                logger.warning(f"[{self.name}] channel {channel_id} failed: {e}")
                failures.append(f"{channel_id}: {e}")
                continue
            channel_name = parsed.feed.get("title") or channel_id
            for entry in parsed.entries[: self.limit]:
                video_id = entry.get("yt_videoid") or extract_video_id(entry.get("link") or "")
                if not video_id:
                    continue
                thumbs = entry.get("media_thumbnail") or []
                stats = entry.get("media_statistics") or {}
                views = stats.get("views")
                out.append(
                    CandidateItem(
                        source_key=video_id,
                        raw_payload={
                            "title": (entry.get("title") or "").strip(),
                            "channel_name": entry.get("author") or channel_name,
                            "published_at": _entry_datetime(entry),
                            "thumbnail_url": thumbs[0].get("url") if thumbs else None,
                            "view_count": int(views) if views and str(views).isdigit() else None,
                        },
                    )
                )
        if failures and len(failures) == len(self.channel_ids):
            raise ListingError("; ".join(failures))
        return out

    def fetch_detail(self, candidate: CandidateItem) -> Optional[VideoDetail]:
        raw = candidate.raw_payload or {}
        if not raw.get("title") or raw.get("published_at") is None:
            logger.warning(f"[{self.name}] video {candidate.source_key} is missing title or date")
            return None
        return VideoDetail(
            id=candidate.source_key,
            title=raw["title"],
            channel_name=raw.get("channel_name") or "",
            published_at=raw["published_at"],
            thumbnail_url=raw.get("thumbnail_url") or f"https://i.ytimg.com/vi/{candidate.source_key}/hqdefault.jpg",
            view_count=raw.get("view_count"),
        )


@dataclass(frozen=True)
class CallableSource(SourceAdapter):
    """Wraps plain functions as a source.

    `lister` may return identifiers or CandidateItems. Used for platforms
    whose access code lives outside this package (e.g. a social feed export).
    """

    name: str
    lister: Callable[[], Iterable[Any]]
    fetcher: Callable[[CandidateItem], Optional[Any]]
    kind: ContentKind = ContentKind.ARTICLE

    def list_candidates(self) -> List[CandidateItem]:
        out: List[CandidateItem] = []
        for item in self.lister() or []:
            out.append(item if isinstance(item, CandidateItem) else CandidateItem(source_key=str(item)))
        return out

    def fetch_detail(self, candidate: CandidateItem) -> Optional[Any]:
        return self.fetcher(candidate)


def default_article_feeds() -> List[Tuple[str, str, str]]:
    """(source_name, feed_name, feed_url) for the AI/tech news outlets we follow."""
    return [
        ("techcrunch", "TechCrunch AI", "https://techcrunch.com/category/artificial-intelligence/feed/"),
        ("theverge", "The Verge AI", "https://www.theverge.com/rss/ai-artificial-intelligence/index.xml"),
        ("venturebeat", "VentureBeat AI", "https://venturebeat.com/category/ai/feed/"),
        ("arstechnica", "Ars Technica", "https://feeds.arstechnica.com/arstechnica/technology-lab"),
        ("bbc", "BBC Technology", "https://feeds.bbci.co.uk/news/technology/rss.xml"),
        ("aitimes", "AI Times", "https://www.aitimes.com/rss/allArticle.xml"),
    ]


def default_youtube_channels() -> List[str]:
    return [
        "UCbfYPyITQ-7l4upoX8nvctg",  # Two Minute Papers
        "UCXZCJLdBC09xxGZ6gcdrc6A",  # OpenAI
    ]


def default_sources(*, article_limit: int = 30, timeout: float = 30.0) -> List[SourceAdapter]:
    sources: List[SourceAdapter] = [
        RSSArticleSource(name=name, feeds=[(feed_name, url)], limit=article_limit, timeout=timeout)
        for name, feed_name, url in default_article_feeds()
    ]
    sources.append(YouTubeChannelSource(name="youtube", channel_ids=default_youtube_channels(), timeout=timeout))
    return sources
