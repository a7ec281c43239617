"""Runtime configuration for the ingestion worker."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from pulsewire.enrichment.scheduler import MIN_QUOTA_BACKOFF_SECONDS
from pulsewire.ingestion.dedup import DuplicatePolicy

logger = logging.getLogger(__name__)

DEFAULT_PG_DSN = "dbname=pulsewire user=pulsewire password=pulsewire host=localhost port=5432"


@dataclass
class PipelineConfig:
    """Configuration with validation"""
    openai_api_key: str
    pg_dsn: str = DEFAULT_PG_DSN

    # Enrichment API
    openai_model: str = "gpt-4.1"
    translation_model: str = "gpt-4.1-mini"
    tokens_per_minute: int = 30000
    requests_per_minute: int = 500
    quota_safety_margin: float = 0.9
    min_call_interval: float = 0.1      # seconds between calls
    quota_backoff_seconds: float = 2.0
    enrichment_timeout: float = 120.0
    chars_per_token: float = 3.0
    max_content_chars: int = 6000

    # Sources
    request_timeout: float = 30.0
    courtesy_delay_min: float = 2.0
    courtesy_delay_max: float = 5.0
    max_items_per_source: int = 30
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.FAIL_OPEN

    # Worker
    ingest_mode: str = "once"
    ingest_interval_minutes: int = 60
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'PipelineConfig':
        """Load and validate configuration from environment variables"""
        load_dotenv(env_file)
        try:
            config = cls(
                openai_api_key=os.getenv('OPENAI_API_KEY', '').strip(),
                pg_dsn=os.getenv('PG_DSN', DEFAULT_PG_DSN),
                openai_model=os.getenv('OPENAI_MODEL', 'gpt-4.1'),
                translation_model=os.getenv('TRANSLATION_MODEL', 'gpt-4.1-mini'),
                tokens_per_minute=int(os.getenv('TOKENS_PER_MINUTE', '30000')),
                requests_per_minute=int(os.getenv('REQUESTS_PER_MINUTE', '500')),
                quota_safety_margin=float(os.getenv('QUOTA_SAFETY_MARGIN', '0.9')),
                min_call_interval=float(os.getenv('MIN_CALL_INTERVAL', '0.1')),
                quota_backoff_seconds=float(os.getenv('QUOTA_BACKOFF_SECONDS', '2.0')),
                enrichment_timeout=float(os.getenv('ENRICHMENT_TIMEOUT', '120')),
                chars_per_token=float(os.getenv('CHARS_PER_TOKEN', '3.0')),
                max_content_chars=int(os.getenv('MAX_CONTENT_CHARS', '6000')),
                request_timeout=float(os.getenv('REQUEST_TIMEOUT', '30')),
                courtesy_delay_min=float(os.getenv('COURTESY_DELAY_MIN', '2.0')),
                courtesy_delay_max=float(os.getenv('COURTESY_DELAY_MAX', '5.0')),
                max_items_per_source=int(os.getenv('MAX_ITEMS_PER_SOURCE', '30')),
                duplicate_policy=DuplicatePolicy(os.getenv('DUPLICATE_POLICY', 'open').strip().lower()),
                ingest_mode=os.getenv('INGEST_MODE', 'once').strip().lower(),
                ingest_interval_minutes=int(os.getenv('INGEST_INTERVAL_MINUTES', '60')),
                log_level=os.getenv('LOG_LEVEL', 'INFO').strip().upper(),
            )
        except ValueError as e:
            raise ValueError(f"Configuration validation failed:\n  - {e}") from e

        config._validate()
        return config

    def _validate(self):
        """Validate configuration values"""
        errors = []

        if not self.openai_api_key:
            errors.append("OPENAI_API_KEY is required")
        elif not self.openai_api_key.startswith('sk-'):
            errors.append("OPENAI_API_KEY appears to be invalid (wrong format)")

        if not self.pg_dsn:
            errors.append("PG_DSN is required")

        if self.tokens_per_minute <= 0:
            errors.append("TOKENS_PER_MINUTE must be positive")
        if self.requests_per_minute <= 0:
            errors.append("REQUESTS_PER_MINUTE must be positive")
        if not 0 < self.quota_safety_margin <= 1:
            errors.append("QUOTA_SAFETY_MARGIN should be in (0, 1]")
        if self.min_call_interval < 0:
            errors.append("MIN_CALL_INTERVAL cannot be negative")
        if self.quota_backoff_seconds < MIN_QUOTA_BACKOFF_SECONDS:
            errors.append(f"QUOTA_BACKOFF_SECONDS should be at least {MIN_QUOTA_BACKOFF_SECONDS:g}")
        if self.enrichment_timeout <= 0:
            errors.append("ENRICHMENT_TIMEOUT must be positive")
        if self.chars_per_token <= 0:
            errors.append("CHARS_PER_TOKEN must be positive")
        if self.max_content_chars < 500:
            errors.append("MAX_CONTENT_CHARS should be at least 500")

        if self.request_timeout < 5 or self.request_timeout > 300:
            errors.append("REQUEST_TIMEOUT should be between 5 and 300 seconds")
        if self.courtesy_delay_min < 0 or self.courtesy_delay_max < self.courtesy_delay_min:
            errors.append("COURTESY_DELAY_MIN/MAX must satisfy 0 <= min <= max")
        if self.max_items_per_source < 1:
            errors.append("MAX_ITEMS_PER_SOURCE must be at least 1")

        if self.ingest_mode not in ('once', 'scheduled'):
            errors.append("INGEST_MODE should be 'once' or 'scheduled'")
        if self.ingest_interval_minutes < 1:
            errors.append("INGEST_INTERVAL_MINUTES must be at least 1")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ValueError(error_msg)

        logger.info(
            f"Configuration validated successfully. Model: {self.openai_model}, "
            f"quota {self.tokens_per_minute} TPM / {self.requests_per_minute} RPM at {self.quota_safety_margin:.0%}"
        )

    @property
    def scheduler_kwargs(self) -> dict:
        return {
            "token_quota": self.tokens_per_minute,
            "request_quota": self.requests_per_minute,
            "safety_margin": self.quota_safety_margin,
            "min_interval": self.min_call_interval,
            "default_backoff": self.quota_backoff_seconds,
            "call_timeout": self.enrichment_timeout,
        }
