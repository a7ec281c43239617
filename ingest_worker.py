#!/usr/bin/env python3
"""Multi-source ingestion worker.

Runs one ingestion cycle (or scheduled cycles) over every configured source:
- AI/tech news RSS feeds (articles: summary, details, category)
- YouTube channel feeds (videos, stored as listed)

All enrichment calls from all sources share one rate-limited scheduler.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional, Sequence

import schedule

from pulsewire.config import PipelineConfig
from pulsewire.enrichment.client import EnrichmentClient
from pulsewire.enrichment.cost import CharRatioEstimator
from pulsewire.enrichment.enricher import Enricher
from pulsewire.enrichment.scheduler import RequestScheduler
from pulsewire.ingestion.content_types import FleetReport
from pulsewire.ingestion.sources import SourceAdapter, default_sources
from pulsewire.pipeline.content_pipelines import pipeline_for
from pulsewire.pipeline.fleet import FleetRunner, format_report
from pulsewire.pipeline.orchestrator import SourceOrchestrator
from pulsewire.storage.postgres_repo import PostgresRepo
from pulsewire.storage.postgres_schema import ensure_postgres_schema

logger = logging.getLogger("ingest_worker")

_stop = threading.Event()
_active_runner: Optional[FleetRunner] = None


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('ingest.log'),
            logging.StreamHandler(sys.stdout)
        ]
    )


def select_sources(sources: Sequence[SourceAdapter], names: Optional[Sequence[str]]) -> List[SourceAdapter]:
    if not names:
        return list(sources)
    wanted = {n.strip().lower() for n in names}
    unknown = wanted - {s.name for s in sources}
    if unknown:
        raise ValueError(f"Unknown source(s): {', '.join(sorted(unknown))}")
    return [s for s in sources if s.name in wanted]


def build_fleet(config: PipelineConfig, repo: PostgresRepo, sources: Sequence[SourceAdapter]) -> FleetRunner:
    scheduler = RequestScheduler(**config.scheduler_kwargs)
    client = EnrichmentClient(config.openai_api_key, model=config.openai_model, timeout=config.enrichment_timeout)
    enricher = Enricher(
        scheduler,
        client,
        estimator=CharRatioEstimator(config.chars_per_token),
        translation_model=config.translation_model,
        max_content_chars=config.max_content_chars,
    )
    orchestrators = [
        SourceOrchestrator(
            source,
            pipeline_for(source.kind, enricher),
            repo,
            duplicate_policy=config.duplicate_policy,
            courtesy_delay=(config.courtesy_delay_min, config.courtesy_delay_max),
            max_items=config.max_items_per_source,
        )
        for source in sources
    ]
    return FleetRunner(orchestrators, scheduler=scheduler)


def run_once(config: PipelineConfig, source_names: Optional[Sequence[str]] = None) -> FleetReport:
    global _active_runner
    sources = select_sources(
        default_sources(article_limit=config.max_items_per_source, timeout=config.request_timeout),
        source_names,
    )
    ensure_postgres_schema(config.pg_dsn)
    repo = PostgresRepo(config.pg_dsn)

    runner = build_fleet(config, repo, sources)
    _active_runner = runner
    try:
        report = runner.run()
    finally:
        _active_runner = None
        if runner.scheduler is not None:
            runner.scheduler.close(cancel_pending=True)
    print(format_report(report))
    return report


def run_scheduled(config: PipelineConfig, source_names: Optional[Sequence[str]] = None) -> None:
    schedule.every(config.ingest_interval_minutes).minutes.do(run_once, config, source_names)
    run_once(config, source_names)
    while not _stop.is_set():
        schedule.run_pending()
        _stop.wait(5)
    schedule.clear()


def _handle_signal(signum, frame) -> None:
    logger.warning(f"Received signal {signum}, shutting down")
    _stop.set()
    runner = _active_runner
    if runner is not None:
        runner.shutdown()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Ingest, enrich and store AI news content")
    parser.add_argument("--source", action="append", dest="sources", metavar="NAME",
                        help="Run only this source (repeatable)")
    parser.add_argument("--mode", choices=["once", "scheduled"], default=None,
                        help="Override INGEST_MODE")
    parser.add_argument("--list-sources", action="store_true", help="Print source names and exit")
    args = parser.parse_args(argv)

    if args.list_sources:
        for source in default_sources():
            print(f"{source.name}\t{source.kind.value}")
        return 0

    config = PipelineConfig.from_env()
    configure_logging(config.log_level)
    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    mode = args.mode or config.ingest_mode
    if mode == "scheduled":
        run_scheduled(config, args.sources)
        return 0
    report = run_once(config, args.sources)
    return 0 if report.completed else 1


if __name__ == "__main__":
    sys.exit(main())
