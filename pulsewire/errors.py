"""Exception types shared across the ingestion pipeline."""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for ingestion pipeline failures"""
    pass


class QuotaExceeded(PipelineError):
    """The enrichment provider rejected a call for rate/quota reasons.

    `retry_after` is the provider-suggested wait in seconds, when it sent one.
    """

    def __init__(self, message: str = "rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class EnrichmentTimeout(PipelineError):
    """An enrichment call did not finish within its deadline"""
    pass


class SchedulerClosed(PipelineError):
    """The request scheduler was closed before the call could run"""
    pass


class ListingError(PipelineError):
    """A source could not enumerate its candidates (source-level fatal)"""
    pass


class PersistenceError(PipelineError):
    """The backing store rejected a read or write"""
    pass


class QuotaExhausted(PipelineError):
    """The account has no quota left; retrying cannot succeed"""
    pass
