"""Token-approximation cost estimates per provider."""

from __future__ import annotations

import math
from typing import Dict, Optional

from .policies import PricingRule, RoutingPolicy
from .provider_registry import Provider

CHARS_PER_TOKEN = 4
DEFAULT_OUTPUT_RATIO = 0.5


def estimate_tokens(chars: int) -> int:
    """Roughly one token per four characters."""
    return math.ceil(max(chars, 0) / CHARS_PER_TOKEN)


class CostEstimator:
    """Pure cost function over a pricing table.

    A provider without a pricing entry is treated as free.
    """

    def __init__(self, pricing: Optional[Dict[Provider, PricingRule]] = None) -> None:
        self._pricing = dict(pricing) if pricing is not None else RoutingPolicy().pricing

    @classmethod
    def from_policy(cls, policy: RoutingPolicy) -> "CostEstimator":
        return cls(policy.pricing)

    def estimate(self, provider: Provider, input_length: int, output_length: Optional[int] = None) -> float:
        rule = self._pricing.get(provider)
        if rule is None or rule.is_free:
            return 0.0

        input_tokens = estimate_tokens(input_length)
        if output_length is None:
            output_tokens = input_tokens * DEFAULT_OUTPUT_RATIO
        else:
            output_tokens = estimate_tokens(output_length)

        total_tokens = input_tokens + output_tokens
        if total_tokens < rule.free_token_threshold:
            return 0.0
        return (total_tokens / 1000) * rule.rate_per_1k_tokens
