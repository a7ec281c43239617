"""Enrichment steps, each one a scheduled call to the language model.

Priorities follow the order a reader sees the result: headline (2), summary
(3), category (4), per-line details (5). Every step has its own fallback so a
failed call degrades the item instead of dropping it.
"""

from __future__ import annotations

import logging
from typing import Optional

from pulsewire.enrichment import prompts
from pulsewire.enrichment.client import EnrichmentClient, completion_tokens_used
from pulsewire.enrichment.cost import CharRatioEstimator, CostEstimator
from pulsewire.enrichment.scheduler import RequestScheduler
from pulsewire.errors import SchedulerClosed
from pulsewire.ingestion.content_types import Category
from pulsewire.ingestion.text_utils import detail_failed, detect_language, mask_links, unmask_links

logger = logging.getLogger(__name__)

PRIORITY_TITLE = 2
PRIORITY_SUMMARY = 3
PRIORITY_CATEGORY = 4
PRIORITY_DETAIL = 5
PRIORITY_RELEVANCE = 3
PRIORITY_TRANSLATION = 4

SUMMARY_FAILED = "Summary generation failed"


class Enricher:
    def __init__(
        self,
        scheduler: RequestScheduler,
        client: EnrichmentClient,
        *,
        estimator: Optional[CostEstimator] = None,
        translation_model: Optional[str] = None,
        max_content_chars: int = 6000,
    ):
        self.scheduler = scheduler
        self.client = client
        self.estimator = estimator or CharRatioEstimator()
        self.translation_model = translation_model
        self.max_content_chars = max_content_chars

    def ask(
        self,
        prompt: str,
        *,
        max_tokens: int,
        priority: int,
        temperature: float = 0.3,
        model: Optional[str] = None,
    ) -> str:
        """Run one completion through the shared scheduler and return its text.

        Errors propagate; the step methods below decide the fallback.
        """
        cost = self.estimator(prompt, max_tokens)
        result = self.scheduler.submit(
            lambda: self.client.complete(prompt, max_tokens=max_tokens, temperature=temperature, model=model),
            cost,
            priority,
            actual_cost=completion_tokens_used,
        )
        return result.text

    def _clip(self, content: str) -> str:
        content = content or ""
        if len(content) > self.max_content_chars:
            return content[: self.max_content_chars]
        return content

    def summarize_title(self, title: str) -> str:
        try:
            text = self.ask(prompts.title_summary_prompt(title), max_tokens=300, priority=PRIORITY_TITLE)
        except SchedulerClosed:
            raise
        except Exception as e:
            logger.warning(f"Title summary failed, keeping original headline: {e}")
            return title
        return text or title

    def summarize_content(self, content: str) -> str:
        try:
            return self.ask(prompts.content_summary_prompt(self._clip(content)), max_tokens=800, priority=PRIORITY_SUMMARY)
        except SchedulerClosed:
            raise
        except Exception as e:
            logger.warning(f"Content summary failed: {e}")
            return SUMMARY_FAILED

    def categorize(self, title: str, summary: str) -> Category:
        try:
            answer = self.ask(
                prompts.category_prompt(title, summary),
                max_tokens=50,
                priority=PRIORITY_CATEGORY,
                temperature=0.1,
            )
        except SchedulerClosed:
            raise
        except Exception as e:
            logger.warning(f"Category tagging failed, using {Category.OTHER.name}: {e}")
            return Category.OTHER
        return Category.from_model_output(answer)

    def categorize_post(self, text: str) -> Category:
        try:
            answer = self.ask(
                prompts.post_category_prompt(text),
                max_tokens=50,
                priority=PRIORITY_CATEGORY,
                temperature=0.1,
            )
        except SchedulerClosed:
            raise
        except Exception as e:
            logger.warning(f"Post category tagging failed, using {Category.OTHER.name}: {e}")
            return Category.OTHER
        return Category.from_model_output(answer)

    def elaborate(self, summary_line: str, content: str) -> str:
        """Detail for one summary line, or the failure sentinel for that line."""
        try:
            text = self.ask(prompts.detail_prompt(summary_line, self._clip(content)), max_tokens=200, priority=PRIORITY_DETAIL)
        except SchedulerClosed:
            raise
        except Exception as e:
            logger.warning(f"Detail generation failed for '{summary_line[:40]}': {e}")
            return detail_failed(summary_line)
        return text or detail_failed(summary_line)

    def is_relevant(self, text: str) -> bool:
        """YES/NO topic gate. An unanswerable call counts as relevant."""
        try:
            answer = self.ask(prompts.relevance_prompt(text), max_tokens=10, priority=PRIORITY_RELEVANCE, temperature=0.1)
        except SchedulerClosed:
            raise
        except Exception as e:
            logger.warning(f"Relevance check failed, keeping post: {e}")
            return True
        return answer.strip().upper().startswith("YES")

    def translate(self, text: str) -> Optional[str]:
        """Korean translation of an English post; None when not translated."""
        if detect_language(text) != "en":
            return None
        masked, links = mask_links(text)
        try:
            translated = self.ask(
                prompts.translation_prompt(masked),
                max_tokens=1000,
                priority=PRIORITY_TRANSLATION,
                model=self.translation_model,
            )
        except SchedulerClosed:
            raise
        except Exception as e:
            logger.warning(f"Translation failed: {e}")
            return None
        if not translated:
            return None
        return unmask_links(translated, links)

    @property
    def translation_model_name(self) -> str:
        return self.translation_model or self.client.model
