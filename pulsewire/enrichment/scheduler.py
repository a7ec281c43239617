"""Rate-limited request scheduler for the enrichment API.

Every enrichment call in the process goes through one RequestScheduler. A
single worker thread owns the priority queue and the usage window; callers
hand it a closure and wait on a future. That worker:

- admits the head of the queue only while the trailing-window usage plus the
  call's estimated cost stays under `quota * safety_margin`
- runs one call at a time, with a minimum spacing between calls
- requeues a call at the front of its priority band when the provider itself
  reports a rate limit, then backs off
- records usage only for calls that succeed
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from pulsewire.enrichment.usage import UsageTracker
from pulsewire.errors import EnrichmentTimeout, QuotaExceeded, SchedulerClosed

logger = logging.getLogger(__name__)

MIN_QUOTA_BACKOFF_SECONDS = 2.0
# Floor for quota waits so float rounding at the window edge cannot spin.
_MIN_WAIT_SECONDS = 0.01


@dataclass
class QueuedCall:
    id: str
    invoke: Callable[[], Any]
    estimated_cost: int
    priority: int
    created_at: float
    future: Future = field(default_factory=Future, repr=False)
    actual_cost: Optional[Callable[[Any], Optional[int]]] = field(default=None, repr=False)
    attempts: int = 0


@dataclass(frozen=True)
class SchedulerStatus:
    """Point-in-time view of the scheduler, for logs and dashboards only."""

    queue_depth: int
    in_flight: bool
    tokens_used: int
    token_headroom: int
    requests_used: int
    request_headroom: int
    seconds_until_reset: float


class RequestScheduler:
    def __init__(
        self,
        *,
        token_quota: int = 30000,
        request_quota: int = 500,
        safety_margin: float = 0.9,
        window_seconds: float = 60.0,
        min_interval: float = 0.1,
        default_backoff: float = MIN_QUOTA_BACKOFF_SECONDS,
        call_timeout: Optional[float] = 120.0,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
        autostart: bool = True,
        name: str = "enrichment",
    ):
        errors = []
        if token_quota <= 0:
            errors.append("token_quota must be positive")
        if request_quota <= 0:
            errors.append("request_quota must be positive")
        if not 0 < safety_margin <= 1:
            errors.append("safety_margin must be in (0, 1]")
        if min_interval < 0:
            errors.append("min_interval must be >= 0")
        if default_backoff < MIN_QUOTA_BACKOFF_SECONDS:
            errors.append(f"default_backoff must be >= {MIN_QUOTA_BACKOFF_SECONDS}s")
        if call_timeout is not None and call_timeout <= 0:
            errors.append("call_timeout must be positive when set")
        if errors:
            raise ValueError("Invalid scheduler configuration: " + "; ".join(errors))

        self.name = name
        self.token_quota = int(token_quota)
        self.request_quota = int(request_quota)
        self.safety_margin = float(safety_margin)
        self.min_interval = float(min_interval)
        self.default_backoff = float(default_backoff)
        self.call_timeout = call_timeout

        self._clock = clock or time.monotonic
        self._sleep = sleep
        self._cond = threading.Condition()
        self._heap: List[Tuple[int, int, QueuedCall]] = []
        self._seq = itertools.count()
        self._front_seq = 0
        self._ids = itertools.count(1)
        self._usage = UsageTracker(window_seconds, clock=self._clock)
        self._not_before = float("-inf")
        self._in_flight = False
        self._closed = False
        self._cancel_pending = False
        self._worker: Optional[threading.Thread] = None

        if autostart:
            self.start()

    @property
    def token_budget(self) -> float:
        return self.token_quota * self.safety_margin

    @property
    def request_budget(self) -> int:
        return max(1, math.floor(self.request_quota * self.safety_margin))

    def start(self) -> None:
        with self._cond:
            if self._worker is not None:
                return
            self._worker = threading.Thread(target=self._run, name=f"{self.name}-scheduler", daemon=True)
            self._worker.start()
        logger.debug(f"Scheduler '{self.name}' started (budget {self.token_budget:.0f} tokens / {self.request_budget} requests per window)")

    def submit_async(
        self,
        invoke: Callable[[], Any],
        estimated_cost: int,
        priority: int = 5,
        *,
        actual_cost: Optional[Callable[[Any], Optional[int]]] = None,
    ) -> Future:
        """Queue a call and return the future that will hold its outcome."""
        cost = int(estimated_cost)
        if cost < 0:
            raise ValueError("estimated_cost must be >= 0")
        if cost > self.token_budget:
            raise ValueError(
                f"estimated_cost {cost} exceeds the usable window budget of {self.token_budget:.0f} tokens"
            )
        call = QueuedCall(
            id=f"req_{next(self._ids)}",
            invoke=invoke,
            estimated_cost=cost,
            priority=int(priority),
            created_at=self._clock(),
            actual_cost=actual_cost,
        )
        with self._cond:
            if self._closed:
                raise SchedulerClosed(f"Scheduler '{self.name}' is closed")
            heapq.heappush(self._heap, (call.priority, next(self._seq), call))
            depth = len(self._heap)
            self._cond.notify_all()
        logger.debug(f"Queued {call.id} (priority {call.priority}, ~{cost} tokens, queue depth {depth})")
        return call.future

    def submit(
        self,
        invoke: Callable[[], Any],
        estimated_cost: int,
        priority: int = 5,
        *,
        actual_cost: Optional[Callable[[Any], Optional[int]]] = None,
    ) -> Any:
        """Block until the call has run; return its result or raise its error."""
        return self.submit_async(invoke, estimated_cost, priority, actual_cost=actual_cost).result()

    def status(self) -> SchedulerStatus:
        with self._cond:
            tokens = self._usage.tokens_used()
            requests_used = self._usage.requests_used()
            return SchedulerStatus(
                queue_depth=len(self._heap),
                in_flight=self._in_flight,
                tokens_used=tokens,
                token_headroom=max(0, int(self.token_budget - tokens)),
                requests_used=requests_used,
                request_headroom=max(0, self.request_budget - requests_used),
                seconds_until_reset=self._usage.seconds_until_reset(),
            )

    def close(self, *, cancel_pending: bool = True, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop accepting calls.

        With `cancel_pending`, queued calls fail with SchedulerClosed; otherwise
        the worker drains the queue before exiting. The in-flight call always
        runs to completion or timeout.
        """
        with self._cond:
            self._closed = True
            self._cancel_pending = self._cancel_pending or cancel_pending
            pending: List[QueuedCall] = []
            if cancel_pending:
                pending = [entry[2] for entry in self._heap]
                self._heap.clear()
            self._cond.notify_all()
            worker = self._worker
        for call in pending:
            if not call.future.done():
                call.future.set_exception(SchedulerClosed(f"{call.id} cancelled: scheduler closed"))
        if pending:
            logger.info(f"Scheduler '{self.name}' closed, cancelled {len(pending)} queued call(s)")
        if wait and worker is not None and worker is not threading.current_thread():
            worker.join(timeout)

    def __enter__(self) -> "RequestScheduler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._heap and not self._closed:
                    self._cond.wait()
                if not self._heap:
                    return
                call = self._heap[0][2]
                delay = self._admission_delay(call)
                if delay <= 0:
                    heapq.heappop(self._heap)
                    self._in_flight = True
            if delay > 0:
                if delay >= 1.0:
                    logger.info(f"Rate limit wait: {math.ceil(delay)}s before {call.id}")
                self._pause(delay)
                continue
            self._execute(call)

    def _admission_delay(self, call: QueuedCall) -> float:
        now = self._clock()
        if now < self._not_before:
            return self._not_before - now
        tokens = self._usage.tokens_used()
        requests_used = self._usage.requests_used()
        if tokens + call.estimated_cost <= self.token_budget and requests_used + 1 <= self.request_budget:
            return 0.0
        return max(self._usage.seconds_until_reset(), _MIN_WAIT_SECONDS)

    def _pause(self, seconds: float) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
            return
        # Woken early by submit/close; the loop re-checks admission.
        with self._cond:
            self._cond.wait(timeout=seconds)

    def _execute(self, call: QueuedCall) -> None:
        if call.attempts == 0 and not call.future.set_running_or_notify_cancel():
            with self._cond:
                self._in_flight = False
            logger.debug(f"Skipped {call.id}: cancelled by caller")
            return
        call.attempts += 1
        logger.debug(f"Running {call.id} (attempt {call.attempts})")
        try:
            result = self._invoke(call)
        except QuotaExceeded as exc:
            backoff = exc.retry_after if exc.retry_after is not None else self.default_backoff
            with self._cond:
                if self._cancel_pending:
                    self._in_flight = False
                    cancelled = True
                else:
                    cancelled = False
                    self._front_seq -= 1
                    heapq.heappush(self._heap, (call.priority, self._front_seq, call))
                    self._in_flight = False
                    self._not_before = self._clock() + backoff
            if cancelled:
                logger.info(f"Provider rate limit on {call.id} after close; not requeued")
                call.future.set_exception(SchedulerClosed(f"{call.id} cancelled: scheduler closed"))
                return
            logger.warning(f"Provider rate limit on {call.id}; requeued at front, backing off {backoff:.1f}s")
            return
        except Exception as exc:
            with self._cond:
                self._in_flight = False
                self._not_before = self._clock() + self.min_interval
            logger.debug(f"{call.id} failed: {exc}")
            call.future.set_exception(exc)
            return

        cost = call.estimated_cost
        if call.actual_cost is not None:
            try:
                reported = call.actual_cost(result)
            except Exception as e:
                logger.debug(f"Could not read actual usage for {call.id}: {e}")
                reported = None
            if reported is not None:
                cost = int(reported)
        with self._cond:
            self._usage.record(cost)
            self._in_flight = False
            self._not_before = self._clock() + self.min_interval
            remaining = len(self._heap)
        logger.debug(f"Completed {call.id} ({cost} tokens, {remaining} queued)")
        call.future.set_result(result)

    def _invoke(self, call: QueuedCall) -> Any:
        if self.call_timeout is None:
            return call.invoke()
        outcome: Future = Future()

        def target() -> None:
            try:
                outcome.set_result(call.invoke())
            except Exception as exc:
                outcome.set_exception(exc)

        threading.Thread(target=target, name=f"{self.name}-{call.id}", daemon=True).start()
        try:
            return outcome.result(timeout=self.call_timeout)
        except FutureTimeout:
            raise EnrichmentTimeout(f"{call.id} did not complete within {self.call_timeout:.0f}s")
