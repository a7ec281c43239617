"""Per-content-type enrichment and row mapping.

The orchestrator drives every source through the same states; what happens in
ENRICHING and DECOMPOSING, and which table a record lands in, depends on the
content type and lives here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pulsewire.enrichment.enricher import Enricher
from pulsewire.ingestion.content_types import (
    ArticleDetail,
    CandidateItem,
    Category,
    ContentKind,
    EnrichedArticle,
    EnrichedTweet,
    TweetDetail,
    VideoDetail,
    VideoRecord,
    utcnow,
)
from pulsewire.ingestion.text_utils import split_summary_lines

logger = logging.getLogger(__name__)


class ContentPipeline:
    kind: ContentKind
    table: str
    conflict_key: str

    def enrich(self, detail: Any) -> Optional[Any]:
        """Raw enrichment output for one item; None drops the item."""
        raise NotImplementedError

    def decompose(self, candidate: CandidateItem, detail: Any, draft: Any) -> Any:
        raise NotImplementedError

    def to_row(self, record: Any) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class ArticleDraft:
    title_summary: str
    summary_text: str
    category: Category


class ArticlePipeline(ContentPipeline):
    kind = ContentKind.ARTICLE
    table = "articles"
    conflict_key = "url"

    def __init__(self, enricher: Enricher):
        self.enricher = enricher

    def enrich(self, detail: ArticleDetail) -> ArticleDraft:
        title_summary = self.enricher.summarize_title(detail.title)
        summary_text = self.enricher.summarize_content(detail.body)
        category = self.enricher.categorize(title_summary, summary_text)
        return ArticleDraft(title_summary=title_summary, summary_text=summary_text, category=category)

    def decompose(self, candidate: CandidateItem, detail: ArticleDetail, draft: ArticleDraft) -> EnrichedArticle:
        lines = split_summary_lines(draft.summary_text)
        if not lines:
            logger.warning(f"No numbered summary lines for {candidate.source_key}")
        details = [self.enricher.elaborate(line, detail.body) for line in lines]
        return EnrichedArticle(
            source_key=candidate.source_key,
            title=draft.title_summary,
            body=detail.body,
            media=tuple(detail.image_urls),
            summary_lines=tuple(lines),
            details=tuple(details),
            category=draft.category,
            published_at=detail.published_at,
        )

    def to_row(self, record: EnrichedArticle) -> Dict[str, Any]:
        return {
            "url": record.source_key,
            "title_summary": record.title,
            "body": record.body,
            "image_urls": list(record.media),
            "summary_lines": list(record.summary_lines),
            "details": list(record.details),
            "category": int(record.category),
            "published_at": record.published_at,
            "created_at": record.created_at,
        }


@dataclass(frozen=True)
class TweetDraft:
    text_translated: Optional[str]
    category: Category


class TweetPipeline(ContentPipeline):
    """Relevance gate, then translation and category tag."""

    kind = ContentKind.TWEET
    table = "tweets"
    conflict_key = "id"

    def __init__(self, enricher: Enricher, *, require_relevance: bool = True):
        self.enricher = enricher
        self.require_relevance = require_relevance

    def enrich(self, detail: TweetDetail) -> Optional[TweetDraft]:
        if self.require_relevance and not self.enricher.is_relevant(detail.text):
            logger.info(f"Post {detail.id} is off-topic, skipping")
            return None
        translated = self.enricher.translate(detail.text)
        category = self.enricher.categorize_post(detail.text)
        return TweetDraft(text_translated=translated, category=category)

    def decompose(self, candidate: CandidateItem, detail: TweetDetail, draft: TweetDraft) -> EnrichedTweet:
        return EnrichedTweet(
            source_key=candidate.source_key,
            text=detail.text,
            author=detail.author,
            url=detail.url,
            category=draft.category,
            published_at=detail.created_at,
            text_translated=draft.text_translated,
            translation_model=self.enricher.translation_model_name if draft.text_translated else None,
            media=tuple(detail.media),
        )

    def to_row(self, record: EnrichedTweet) -> Dict[str, Any]:
        translated = record.text_translated is not None
        return {
            "id": record.source_key,
            "text": record.text,
            "text_ko": record.text_translated,
            "is_translated": translated,
            "translation_model": record.translation_model,
            "translated_at": record.created_at if translated else None,
            "author_name": record.author.name,
            "author_username": record.author.username,
            "author_profile_image_url": record.author.profile_image_url,
            "url": record.url,
            "media": list(record.media) if record.media else None,
            "category": int(record.category),
            "created_at": record.published_at,
            "scraped_at": utcnow(),
            "is_active": True,
        }


class VideoPipeline(ContentPipeline):
    """Videos are stored as listed."""

    kind = ContentKind.VIDEO
    table = "youtube_videos"
    conflict_key = "id"

    def enrich(self, detail: VideoDetail) -> VideoDetail:
        return detail

    def decompose(self, candidate: CandidateItem, detail: VideoDetail, draft: VideoDetail) -> VideoRecord:
        return VideoRecord(
            source_key=candidate.source_key,
            title=detail.title,
            channel_name=detail.channel_name,
            published_at=detail.published_at,
            thumbnail_url=detail.thumbnail_url,
            duration=detail.duration,
            view_count=detail.view_count,
        )

    def to_row(self, record: VideoRecord) -> Dict[str, Any]:
        return {
            "id": record.source_key,
            "title": record.title,
            "thumbnail_url": record.thumbnail_url,
            "channel_name": record.channel_name,
            "published_at": record.published_at,
            "duration": record.duration,
            "view_count": record.view_count,
            "created_at": record.created_at,
        }


def pipeline_for(kind: ContentKind, enricher: Optional[Enricher]) -> ContentPipeline:
    if kind is ContentKind.VIDEO:
        return VideoPipeline()
    if enricher is None:
        raise ValueError(f"{kind.value} sources need an enricher")
    if kind is ContentKind.TWEET:
        return TweetPipeline(enricher)
    return ArticlePipeline(enricher)
