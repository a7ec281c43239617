import threading
import unittest
from datetime import datetime, timezone
from unittest import mock

from fakes import MemoryStore

from pulsewire.ingestion.content_types import ContentKind, FleetReport, SourceRunResult, VideoDetail
from pulsewire.ingestion.sources import CallableSource
from pulsewire.pipeline.content_pipelines import VideoPipeline
from pulsewire.pipeline.fleet import FleetRunner, format_report
from pulsewire.pipeline.orchestrator import SourceOrchestrator

PUBLISHED = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _source(name, keys, lister=None):
    return CallableSource(
        name=name,
        lister=lister or (lambda: [f"{name}-{k}" for k in keys]),
        fetcher=lambda c: VideoDetail(id=c.source_key, title="t", channel_name=name, published_at=PUBLISHED),
        kind=ContentKind.VIDEO,
    )


def _orchestrator(source, store):
    return SourceOrchestrator(source, VideoPipeline(), store, sleep=lambda s: None)


class TestFleetRunner(unittest.TestCase):
    def test_one_failing_listing_does_not_affect_others(self):
        def broken():
            raise RuntimeError("login required")

        store = MemoryStore()
        runner = FleetRunner([
            _orchestrator(_source("A", [1, 2]), store),
            _orchestrator(_source("B", [], lister=broken), store),
            _orchestrator(_source("C", [1]), store),
        ])
        report = runner.run()

        self.assertTrue(report.completed)
        by_name = {r.source_name: r for r in report.results}
        self.assertFalse(by_name["B"].success)
        self.assertEqual(by_name["B"].items_ingested, 0)
        self.assertTrue(by_name["A"].success)
        self.assertEqual(by_name["A"].items_ingested, 2)
        self.assertTrue(by_name["C"].success)
        self.assertEqual(by_name["C"].items_ingested, 1)
        self.assertEqual(report.items_ingested, 3)
        self.assertAlmostEqual(report.success_rate, 2 / 3)
        self.assertEqual(report.errors, ["B: listing failed: login required"])
        self.assertEqual([r.source_name for r in report.results], ["A", "B", "C"])

    def test_sources_run_concurrently(self):
        barrier = threading.Barrier(2, timeout=5)

        def waiting_lister(name):
            def lister():
                barrier.wait()
                return [f"{name}-1"]
            return lister

        store = MemoryStore()
        runner = FleetRunner([
            _orchestrator(_source("A", [], lister=waiting_lister("A")), store),
            _orchestrator(_source("B", [], lister=waiting_lister("B")), store),
        ])
        report = runner.run()
        self.assertEqual(len(report.succeeded), 2)

    def test_crashing_orchestrator_is_isolated(self):
        store = MemoryStore()
        bad = _orchestrator(_source("bad", [1]), store)
        bad.run = mock.Mock(side_effect=RuntimeError("boom"))
        runner = FleetRunner([bad, _orchestrator(_source("good", [1]), store)])
        report = runner.run()
        self.assertEqual([r.success for r in report.results], [False, True])
        self.assertIn("boom", report.results[0].errors[0])

    def test_shutdown_propagates_to_orchestrators_and_scheduler(self):
        scheduler = mock.Mock()
        orchestrator = _orchestrator(_source("A", [1, 2]), MemoryStore())
        runner = FleetRunner([orchestrator], scheduler=scheduler)
        runner.shutdown()
        self.assertTrue(orchestrator.shutdown_event.is_set())
        scheduler.close.assert_called_once_with(cancel_pending=True, wait=False)

        report = runner.run()
        self.assertFalse(report.completed)
        self.assertEqual(report.items_ingested, 0)

    def test_empty_fleet(self):
        report = FleetRunner([]).run()
        self.assertEqual(report.results, ())
        self.assertEqual(report.success_rate, 0.0)


class TestReportFormatting(unittest.TestCase):
    def test_report_lists_sources_and_errors(self):
        report = FleetReport(
            results=(
                SourceRunResult("techcrunch", True, 4, (), 1200.0, 10, 4),
                SourceRunResult("bbc", False, 0, ("listing failed: 503",), 300.0),
            ),
            duration_ms=1500.0,
        )
        text = format_report(report)
        self.assertIn("techcrunch", text)
        self.assertIn("FAILED", text)
        self.assertIn("total items: 4", text)
        self.assertIn("success rate: 50% (1/2)", text)
        self.assertIn("bbc: listing failed: 503", text)


if __name__ == "__main__":
    unittest.main()
