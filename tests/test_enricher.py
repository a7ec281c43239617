import unittest
from unittest import mock

import httpx
import openai

from fakes import ScriptedClient

from pulsewire.enrichment.client import EnrichmentClient, is_quota_exhausted, parse_retry_after
from pulsewire.enrichment.enricher import (
    PRIORITY_CATEGORY,
    PRIORITY_DETAIL,
    PRIORITY_SUMMARY,
    PRIORITY_TITLE,
    SUMMARY_FAILED,
    Enricher,
)
from pulsewire.enrichment.scheduler import RequestScheduler
from pulsewire.errors import EnrichmentTimeout, QuotaExceeded, QuotaExhausted
from pulsewire.ingestion.content_types import Category


def _passthrough_scheduler():
    scheduler = mock.Mock()
    scheduler.submit.side_effect = lambda invoke, cost, priority, actual_cost=None: invoke()
    return scheduler


class TestEnricherSteps(unittest.TestCase):
    def setUp(self):
        self.scheduler = RequestScheduler(min_interval=0, call_timeout=None)

    def tearDown(self):
        self.scheduler.close()

    def test_title_summary_and_fallback(self):
        client = ScriptedClient(answers={"<- headline": "Short headline"})
        enricher = Enricher(self.scheduler, client)
        self.assertEqual(enricher.summarize_title("A long original headline"), "Short headline")

        failing = Enricher(self.scheduler, ScriptedClient(fail_on=["<- headline"]))
        self.assertEqual(failing.summarize_title("Original"), "Original")

    def test_content_summary_fallback(self):
        enricher = Enricher(self.scheduler, ScriptedClient(fail_on=["exactly 3 lines"]))
        self.assertEqual(enricher.summarize_content("body"), SUMMARY_FAILED)

    def test_category_parsing(self):
        enricher = Enricher(self.scheduler, ScriptedClient(answers={"Category number": "3"}))
        self.assertIs(enricher.categorize("t", "s"), Category.RESEARCH)

        chatty = Enricher(self.scheduler, ScriptedClient(answers={"Category number": "The answer is 2."}))
        self.assertIs(chatty.categorize("t", "s"), Category.SERVICE)

        unclear = Enricher(self.scheduler, ScriptedClient(answers={"Category number": "none"}))
        self.assertIs(unclear.categorize("t", "s"), Category.OTHER)

        failing = Enricher(self.scheduler, ScriptedClient(fail_on=["Category number"]))
        self.assertIs(failing.categorize("t", "s"), Category.OTHER)

    def test_failed_detail_becomes_sentinel(self):
        enricher = Enricher(self.scheduler, ScriptedClient(fail_on=["[Summary sentence]"]))
        self.assertEqual(enricher.elaborate("2. B", "body"), "Detail generation failed: 2. B")

    def test_relevance_gate(self):
        yes = Enricher(self.scheduler, ScriptedClient(answers={"YES or NO": "YES"}))
        no = Enricher(self.scheduler, ScriptedClient(answers={"YES or NO": "no."}))
        self.assertTrue(yes.is_relevant("new model"))
        self.assertFalse(no.is_relevant("football score"))

    def test_translation_keeps_links_and_uses_translation_model(self):
        client = ScriptedClient(answers={"Original:": "새 모델 출시 __LINK_0__"})
        enricher = Enricher(self.scheduler, client, translation_model="translator")
        out = enricher.translate("New model released today https://example.com/post")
        self.assertEqual(out, "새 모델 출시 https://example.com/post")
        self.assertEqual(client.models[-1], "translator")
        self.assertIn("__LINK_0__", client.prompts[-1])
        self.assertEqual(enricher.translation_model_name, "translator")

    def test_non_english_is_not_translated(self):
        client = ScriptedClient()
        enricher = Enricher(self.scheduler, client)
        self.assertIsNone(enricher.translate("이미 한국어로 작성된 글입니다"))
        self.assertEqual(client.prompts, [])

    def test_usage_reconciled_with_reported_tokens(self):
        enricher = Enricher(self.scheduler, ScriptedClient(answers={"<- headline": "x"}))
        enricher.summarize_title("headline")
        self.assertEqual(self.scheduler.status().tokens_used, 25)


class TestEnricherScheduling(unittest.TestCase):
    def test_priorities_follow_reading_order(self):
        scheduler = _passthrough_scheduler()
        enricher = Enricher(scheduler, ScriptedClient())
        enricher.summarize_title("t")
        enricher.summarize_content("c")
        enricher.categorize("t", "s")
        enricher.elaborate("1. a", "c")
        priorities = [c.args[2] for c in scheduler.submit.call_args_list]
        self.assertEqual(priorities, [PRIORITY_TITLE, PRIORITY_SUMMARY, PRIORITY_CATEGORY, PRIORITY_DETAIL])
        self.assertEqual(priorities, sorted(priorities))

    def test_cost_estimate_includes_output_budget(self):
        scheduler = _passthrough_scheduler()
        Enricher(scheduler, ScriptedClient()).summarize_content("x" * 300)
        cost = scheduler.submit.call_args.args[1]
        self.assertGreater(cost, 800 + 100)

    def test_long_content_is_clipped(self):
        client = ScriptedClient()
        enricher = Enricher(_passthrough_scheduler(), client, max_content_chars=500)
        enricher.summarize_content("a" * 5000 + "TAIL")
        self.assertNotIn("TAIL", client.prompts[0])


class TestEnrichmentClient(unittest.TestCase):
    def _request(self):
        return httpx.Request("POST", "https://api.openai.com/v1/chat/completions")

    def test_rate_limit_maps_to_quota_exceeded(self):
        response = httpx.Response(429, headers={"retry-after": "3"}, request=self._request())
        sdk = mock.Mock()
        sdk.chat.completions.create.side_effect = openai.RateLimitError("Rate limit reached", response=response, body=None)
        client = EnrichmentClient("sk-test", client=sdk)
        with self.assertRaises(QuotaExceeded) as ctx:
            client.complete("hi", max_tokens=5)
        self.assertEqual(ctx.exception.retry_after, 3.0)

    def test_exhausted_account_is_terminal(self):
        response = httpx.Response(429, request=self._request())
        sdk = mock.Mock()
        sdk.chat.completions.create.side_effect = openai.RateLimitError(
            "You exceeded your current quota", response=response, body={"code": "insufficient_quota"}
        )
        client = EnrichmentClient("sk-test", client=sdk)
        with self.assertRaises(QuotaExhausted):
            client.complete("hi", max_tokens=5)

        sched = RequestScheduler(min_interval=0, call_timeout=None)
        try:
            with self.assertRaises(QuotaExhausted):
                sched.submit(lambda: client.complete("hi", max_tokens=5), 10)
        finally:
            sched.close()
        self.assertEqual(sdk.chat.completions.create.call_count, 2)

    def test_nested_error_body_is_recognised(self):
        error = mock.Mock(code=None, body={"error": {"code": "insufficient_quota"}})
        self.assertTrue(is_quota_exhausted(error))
        self.assertFalse(is_quota_exhausted(mock.Mock(code="rate_limit_exceeded", body=None)))

    def test_timeout_maps_to_enrichment_timeout(self):
        sdk = mock.Mock()
        sdk.chat.completions.create.side_effect = openai.APITimeoutError(request=self._request())
        with self.assertRaises(EnrichmentTimeout):
            EnrichmentClient("sk-test", client=sdk).complete("hi", max_tokens=5)

    def test_completion_text_and_usage(self):
        sdk = mock.Mock()
        sdk.chat.completions.create.return_value = mock.Mock(
            choices=[mock.Mock(message=mock.Mock(content="  1. A  "))],
            usage=mock.Mock(prompt_tokens=10, completion_tokens=4, total_tokens=14),
        )
        result = EnrichmentClient("sk-test", model="m", client=sdk).complete("hi", max_tokens=5)
        self.assertEqual(result.text, "1. A")
        self.assertEqual(result.total_tokens, 14)
        kwargs = sdk.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "m")
        self.assertEqual(kwargs["max_tokens"], 5)

    def test_parse_retry_after(self):
        self.assertEqual(parse_retry_after("Please try again in 1.5s."), 1.5)
        self.assertEqual(parse_retry_after("Please try again in 250ms."), 0.25)
        self.assertEqual(parse_retry_after("whatever", "4"), 4.0)
        self.assertIsNone(parse_retry_after("no hint here"))
        self.assertIsNone(parse_retry_after(None))


if __name__ == "__main__":
    unittest.main()
