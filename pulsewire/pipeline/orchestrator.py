"""Per-source ingestion loop.

LISTING -> FILTERING -> per item (FETCHING -> ENRICHING -> DECOMPOSING ->
PERSISTING) -> DONE, or ABORTED when listing fails or the run is cancelled.

Items are processed one at a time with a randomized courtesy delay between
them. Item failures are logged and recorded, and the loop moves on; only a
failed listing fails the source.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from pulsewire.ingestion.content_types import CandidateItem, SourceRunResult
from pulsewire.ingestion.dedup import DuplicateFilter, DuplicatePolicy, FilterStats
from pulsewire.ingestion.sources import SourceAdapter
from pulsewire.pipeline.content_pipelines import ContentPipeline

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    LISTING = "listing"
    FILTERING = "filtering"
    FETCHING = "fetching"
    ENRICHING = "enriching"
    DECOMPOSING = "decomposing"
    PERSISTING = "persisting"
    DONE = "done"
    ABORTED = "aborted"


class ItemStore(Protocol):
    def upsert(self, table: str, rows: Sequence[Dict[str, Any]], conflict_key: str) -> int:
        ...

    def select_existing(self, table: str, column: str, values: Sequence[str]) -> List[str]:
        ...


class SourceOrchestrator:
    def __init__(
        self,
        source: SourceAdapter,
        pipeline: ContentPipeline,
        store: ItemStore,
        *,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.FAIL_OPEN,
        courtesy_delay: Tuple[float, float] = (2.0, 5.0),
        max_items: Optional[int] = None,
        shutdown_event: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.source = source
        self.pipeline = pipeline
        self.store = store
        self.duplicate_filter = DuplicateFilter(store, pipeline.table, pipeline.conflict_key, policy=duplicate_policy)
        self.courtesy_delay = courtesy_delay
        self.max_items = max_items
        self.shutdown_event = shutdown_event or threading.Event()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.state = OrchestratorState.IDLE
        self.last_filter_stats: Optional[FilterStats] = None

    @property
    def name(self) -> str:
        return self.source.name

    def bind_shutdown(self, event: threading.Event) -> None:
        self.shutdown_event = event

    def run(self) -> SourceRunResult:
        started = time.monotonic()
        errors: List[str] = []
        self._set_state(OrchestratorState.LISTING)
        try:
            candidates = list(self.source.list_candidates())
        except Exception as e:
            logger.error(f"[{self.name}] listing failed: {e}")
            self._set_state(OrchestratorState.ABORTED)
            return self._result(started, False, 0, [f"listing failed: {e}"])
        logger.info(f"[{self.name}] {len(candidates)} candidate(s) listed")

        self._set_state(OrchestratorState.FILTERING)
        by_key: Dict[str, CandidateItem] = {}
        for candidate in candidates:
            by_key.setdefault(candidate.source_key, candidate)
        new_keys, stats = self.duplicate_filter.check(list(by_key))
        self.last_filter_stats = stats
        if stats.store_error:
            errors.append(f"duplicate check failed ({self.duplicate_filter.policy.name}): {stats.store_error}")
        if self.max_items is not None:
            new_keys = new_keys[: self.max_items]

        persisted = 0
        cancelled = False
        for idx, key in enumerate(new_keys):
            if self.shutdown_event.is_set():
                cancelled = True
                break
            if self._process(by_key[key], errors):
                persisted += 1
            if idx < len(new_keys) - 1:
                self._courtesy_pause()

        if cancelled:
            errors.append(f"run cancelled after {persisted} item(s)")
            logger.warning(f"[{self.name}] cancelled, {persisted}/{len(new_keys)} item(s) stored")
            self._set_state(OrchestratorState.ABORTED)
        else:
            self._set_state(OrchestratorState.DONE)
        success = persisted > 0 or (not new_keys and not cancelled)
        logger.info(f"[{self.name}] finished: {persisted}/{len(new_keys)} new item(s) stored, {len(errors)} error(s)")
        return self._result(started, success, persisted, errors, len(candidates), len(new_keys))

    def _process(self, candidate: CandidateItem, errors: List[str]) -> bool:
        key = candidate.source_key
        self._set_state(OrchestratorState.FETCHING)
        try:
            detail = self.source.fetch_detail(candidate)
        except Exception as e:
            logger.warning(f"[{self.name}] fetch failed for {key}: {e}")
            errors.append(f"{key}: fetch failed: {e}")
            return False
        if detail is None:
            logger.warning(f"[{self.name}] no usable detail for {key}, skipping")
            errors.append(f"{key}: missing required fields, skipped")
            return False

        self._set_state(OrchestratorState.ENRICHING)
        try:
            draft = self.pipeline.enrich(detail)
        except Exception as e:
            logger.error(f"[{self.name}] enrichment failed for {key}: {e}")
            errors.append(f"{key}: enrichment failed: {e}")
            return False
        if draft is None:
            return False

        self._set_state(OrchestratorState.DECOMPOSING)
        try:
            record = self.pipeline.decompose(candidate, detail, draft)
        except Exception as e:
            logger.error(f"[{self.name}] could not build record for {key}: {e}")
            errors.append(f"{key}: decomposition failed: {e}")
            return False

        self._set_state(OrchestratorState.PERSISTING)
        try:
            self.store.upsert(self.pipeline.table, [self.pipeline.to_row(record)], self.pipeline.conflict_key)
        except Exception as e:
            logger.error(f"[{self.name}] persist failed for {key}: {e}")
            errors.append(f"{key}: persist failed: {e}")
            return False
        logger.info(f"[{self.name}] stored {key}")
        return True

    def _courtesy_pause(self) -> None:
        low, high = self.courtesy_delay
        if high <= 0:
            return
        delay = self._rng.uniform(low, high)
        if self._sleep is not None:
            self._sleep(delay)
        else:
            # Returns early on shutdown.
            self.shutdown_event.wait(delay)

    def _set_state(self, state: OrchestratorState) -> None:
        self.state = state
        logger.debug(f"[{self.name}] -> {state.value}")

    def _result(
        self,
        started: float,
        success: bool,
        items: int,
        errors: List[str],
        found: int = 0,
        new: int = 0,
    ) -> SourceRunResult:
        return SourceRunResult(
            source_name=self.name,
            success=success,
            items_ingested=items,
            errors=tuple(errors),
            duration_ms=(time.monotonic() - started) * 1000.0,
            candidates_found=found,
            new_candidates=new,
            final_state=self.state.value,
        )
