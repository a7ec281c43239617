"""Run every source concurrently and aggregate one report.

Sources share nothing but the RequestScheduler behind their enrichers; that
scheduler is the only backpressure between them.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence

from pulsewire.enrichment.scheduler import RequestScheduler
from pulsewire.ingestion.content_types import FleetReport, SourceRunResult
from pulsewire.pipeline.orchestrator import SourceOrchestrator

logger = logging.getLogger(__name__)


class FleetRunner:
    def __init__(
        self,
        orchestrators: Sequence[SourceOrchestrator],
        *,
        scheduler: Optional[RequestScheduler] = None,
        max_workers: Optional[int] = None,
    ):
        self.orchestrators = list(orchestrators)
        self.scheduler = scheduler
        self.max_workers = max_workers
        self._shutdown = threading.Event()
        for orchestrator in self.orchestrators:
            orchestrator.bind_shutdown(self._shutdown)

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def shutdown(self) -> None:
        """Stop starting new items and fail queued enrichment calls.

        Calls already running finish or time out.
        """
        if self._shutdown.is_set():
            return
        logger.warning("Shutdown requested; finishing in-flight work")
        self._shutdown.set()
        if self.scheduler is not None:
            self.scheduler.close(cancel_pending=True, wait=False)

    def run(self) -> FleetReport:
        started = time.monotonic()
        if not self.orchestrators:
            return FleetReport(results=(), duration_ms=0.0, completed=True)

        workers = self.max_workers or len(self.orchestrators)
        logger.info(f"Starting {len(self.orchestrators)} source(s) with {workers} worker(s)")
        results: Dict[int, SourceRunResult] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="source") as pool:
            futures = {pool.submit(o.run): idx for idx, o in enumerate(self.orchestrators)}
            for future in as_completed(futures):
                idx = futures[future]
                orchestrator = self.orchestrators[idx]
                try:
                    results[idx] = future.result()
                except Exception as e:
                    logger.error(f"[{orchestrator.name}] crashed: {e}", exc_info=True)
                    results[idx] = SourceRunResult(
                        source_name=orchestrator.name,
                        success=False,
                        items_ingested=0,
                        errors=(f"source crashed: {e}",),
                        final_state="aborted",
                    )
                else:
                    r = results[idx]
                    logger.info(f"[{r.source_name}] {'ok' if r.success else 'FAILED'}: {r.items_ingested} item(s) in {r.duration_ms / 1000:.1f}s")

        report = FleetReport(
            results=tuple(results[i] for i in range(len(self.orchestrators))),
            duration_ms=(time.monotonic() - started) * 1000.0,
            completed=not self._shutdown.is_set(),
        )
        logger.info(
            f"Run finished: {report.items_ingested} item(s), {len(report.succeeded)}/{len(report.results)} source(s) ok, "
            f"{len(report.errors)} error(s)"
        )
        return report


def format_report(report: FleetReport) -> str:
    """Human-readable run summary: one row per source, then totals and errors."""
    lines: List[str] = []
    width = max([len(r.source_name) for r in report.results] + [6])
    lines.append(f"{'source'.ljust(width)}  status  items  new/found  seconds")
    lines.append("-" * (width + 36))
    for r in report.results:
        status = "ok" if r.success else "FAILED"
        lines.append(
            f"{r.source_name.ljust(width)}  {status:<6}  {r.items_ingested:>5}  "
            f"{f'{r.new_candidates}/{r.candidates_found}':>9}  {r.duration_ms / 1000:>7.1f}"
        )
    lines.append("-" * (width + 36))
    lines.append(f"total items: {report.items_ingested}")
    lines.append(f"success rate: {report.success_rate:.0%} ({len(report.succeeded)}/{len(report.results)})")
    lines.append(f"elapsed: {report.duration_ms / 1000:.1f}s")
    if not report.completed:
        lines.append("run interrupted before all sources finished")
    if report.failed:
        lines.append("failed sources: " + ", ".join(r.source_name for r in report.failed))
    if report.errors:
        lines.append(f"errors ({len(report.errors)}):")
        lines.extend(f"  - {err}" for err in report.errors)
    return "\n".join(lines)
