"""Token cost estimation for enrichment calls.

The scheduler admits calls on estimates, so an estimator should err high.
Estimators are plain callables `(prompt, max_tokens) -> int`; any object
implementing `CostEstimator` can be swapped in.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol


class CostEstimator(Protocol):
    def __call__(self, prompt: str, max_tokens: int) -> int:
        ...


@dataclass(frozen=True)
class CharRatioEstimator:
    """Input tokens approximated as characters / ratio, plus the output budget.

    English runs ~4 chars per token and Korean ~2, so 3 is a conservative mix.
    """

    chars_per_token: float = 3.0

    def __call__(self, prompt: str, max_tokens: int) -> int:
        ratio = self.chars_per_token if self.chars_per_token > 0 else 1.0
        input_tokens = math.ceil(len(prompt or "") / ratio)
        return input_tokens + max(0, int(max_tokens))
