"""Batch duplicate filtering against already-persisted items.

One `select_existing` round trip per batch, never one per item.

When the store cannot be read, the default policy is FAIL_OPEN: every
candidate is treated as new. That costs extra fetch/enrichment work for items
we already have, and the upsert on the natural key keeps storage free of
duplicates. FAIL_CLOSED skips the batch instead and trades that work for a
run with no new items.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)


class ExistingKeyStore(Protocol):
    def select_existing(self, table: str, column: str, values: Sequence[str]) -> List[str]:
        ...


class DuplicatePolicy(str, Enum):
    FAIL_OPEN = "open"
    FAIL_CLOSED = "closed"


@dataclass(frozen=True)
class FilterStats:
    total_checked: int
    new_count: int
    duplicate_count: int
    store_error: Optional[str] = None

    @property
    def efficiency_pct(self) -> int:
        if self.total_checked <= 0:
            return 0
        return round(self.duplicate_count / self.total_checked * 100)

    def seconds_saved(self, per_item: float = 3.0) -> float:
        return self.duplicate_count * per_item

    def cost_saved(self, per_item: float = 0.03) -> float:
        return round(self.duplicate_count * per_item, 3)


class DuplicateFilter:
    def __init__(
        self,
        store: ExistingKeyStore,
        table: str,
        column: str,
        *,
        policy: DuplicatePolicy = DuplicatePolicy.FAIL_OPEN,
    ):
        self.store = store
        self.table = table
        self.column = column
        self.policy = DuplicatePolicy(policy)
        self.last_stats: Optional[FilterStats] = None

    def filter_new(self, ids: Sequence[str]) -> List[str]:
        """Return the ids not yet stored, preserving input order."""
        new_ids, stats = self.check(ids)
        self.last_stats = stats
        return new_ids

    def check(self, ids: Sequence[str]) -> Tuple[List[str], FilterStats]:
        ids = list(ids)
        if not ids:
            return [], FilterStats(total_checked=0, new_count=0, duplicate_count=0)

        logger.info(f"Duplicate check: {len(ids)} {self.table}.{self.column} value(s)")
        try:
            existing = set(self.store.select_existing(self.table, self.column, ids))
        except Exception as e:
            if self.policy is DuplicatePolicy.FAIL_CLOSED:
                logger.error(f"Duplicate check failed on {self.table}; failing closed, skipping {len(ids)} candidate(s): {e}")
                return [], FilterStats(total_checked=len(ids), new_count=0, duplicate_count=0, store_error=str(e))
            logger.error(f"Duplicate check failed on {self.table}; failing open, treating all {len(ids)} as new: {e}")
            return ids, FilterStats(total_checked=len(ids), new_count=len(ids), duplicate_count=0, store_error=str(e))

        new_ids = [i for i in ids if i not in existing]
        stats = FilterStats(
            total_checked=len(ids),
            new_count=len(new_ids),
            duplicate_count=len(ids) - len(new_ids),
        )
        logger.info(f"Duplicate check done: {stats.new_count} new of {stats.total_checked} ({stats.duplicate_count} already stored)")
        if stats.duplicate_count:
            logger.info(
                f"Skipped work: {stats.efficiency_pct}% of candidates, ~{stats.seconds_saved():.0f}s and ${stats.cost_saved():.3f}"
            )
        return new_ids, stats
