"""OpenAI chat-completions client used for enrichment.

The only contract the scheduler relies on: a provider rate-limit rejection
surfaces as QuotaExceeded, everything else (an exhausted account included) as
some other exception.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import openai

from pulsewire.errors import EnrichmentTimeout, QuotaExceeded, QuotaExhausted

logger = logging.getLogger(__name__)

_RETRY_IN_RE = re.compile(r"try again in (\d+(?:\.\d+)?)\s*(ms|s)\b", re.IGNORECASE)


@dataclass(frozen=True)
class Completion:
    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


def completion_tokens_used(result: Any) -> Optional[int]:
    """Actual usage reported by the provider, for scheduler reconciliation."""
    total = getattr(result, "total_tokens", None)
    if isinstance(total, int) and total > 0:
        return total
    return None


def parse_retry_after(message: Optional[str], header_value: Optional[str] = None) -> Optional[float]:
    """Seconds to wait, from a `retry-after` header or a "try again in Ns" message."""
    if header_value:
        try:
            return max(0.0, float(header_value))
        except (TypeError, ValueError):
            pass
    if not message:
        return None
    m = _RETRY_IN_RE.search(message)
    if not m:
        return None
    value = float(m.group(1))
    return value / 1000.0 if m.group(2).lower() == "ms" else value


def is_quota_exhausted(error: Any) -> bool:
    """True for the billing rejection ("insufficient_quota"), which shares HTTP 429 with throttling."""
    code = getattr(error, "code", None)
    body = getattr(error, "body", None)
    if code is None and isinstance(body, dict):
        code = body.get("code")
        if code is None and isinstance(body.get("error"), dict):
            code = body["error"].get("code")
    return code == "insufficient_quota"


class EnrichmentClient:
    def __init__(self, api_key: str, *, model: str = "gpt-4.1", timeout: float = 60.0, client: Any = None):
        self.model = model
        self.timeout = timeout
        # SDK retries are off: rate limits are the scheduler's job.
        self._client = client or openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def complete(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float = 0.3,
        model: Optional[str] = None,
    ) -> Completion:
        use_model = model or self.model
        try:
            response = self._client.chat.completions.create(
                model=use_model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.RateLimitError as e:
            if is_quota_exhausted(e):
                raise QuotaExhausted(f"{use_model}: account quota exhausted: {e}") from e
            header = None
            resp = getattr(e, "response", None)
            if resp is not None:
                header = resp.headers.get("retry-after")
            raise QuotaExceeded(str(e), retry_after=parse_retry_after(str(e), header)) from e
        except openai.APITimeoutError as e:
            raise EnrichmentTimeout(f"{use_model} request timed out after {self.timeout:.0f}s") from e

        text = ""
        if response.choices:
            text = (response.choices[0].message.content or "").strip()
        usage = getattr(response, "usage", None)
        return Completion(
            text=text,
            model=use_model,
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
            total_tokens=int(getattr(usage, "total_tokens", 0) or 0),
        )
