"""Routing policy loader (budget gates, heuristics, pricing)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .provider_registry import Provider

_POLICY_FILE = Path(__file__).resolve().parent.parent.parent / "config" / "llm_policies.yaml"

MAX_HISTORY_WINDOW = 10


class PolicyError(ValueError):
    """Raised when a policy file contains invalid values."""


@dataclass
class PricingRule:
    """Per-provider pricing: free below ``free_token_threshold``, metered above it."""

    rate_per_1k_tokens: float = 0.0
    free_token_threshold: int = 0

    @property
    def is_free(self) -> bool:
        return self.rate_per_1k_tokens <= 0


def _default_pricing() -> Dict[Provider, PricingRule]:
    return {
        Provider.GEMINI: PricingRule(rate_per_1k_tokens=0.00025, free_token_threshold=1000),
        Provider.HUGGINGFACE: PricingRule(),
        Provider.OLLAMA: PricingRule(),
    }


def _default_keywords() -> List[str]:
    return [
        "מתמטיקה", "מתמטי", "אלגברה", "גיאומטריה", "חשבון דיפרנציאלי",
        "פיזיקה", "פיזיקלי", "כימיה", "ביולוגיה",
        "calculus", "derivative", "integral", "quantum", "relativity",
        "תוכנה", "קוד", "programming", "code", "algorithm",
    ]


@dataclass
class RoutingPolicy:
    """Declarative knobs consumed by the router, estimator and adapters."""

    daily_cost_threshold: float = 0.10
    free_query_cap: int = 50
    history_window: int = MAX_HISTORY_WINDOW
    complex_length: int = 200
    simple_length: int = 50
    complex_keywords: List[str] = field(default_factory=_default_keywords)
    default_order: List[Provider] = field(
        default_factory=lambda: [Provider.GEMINI, Provider.HUGGINGFACE, Provider.OLLAMA]
    )
    pricing: Dict[Provider, PricingRule] = field(default_factory=_default_pricing)

    def __post_init__(self) -> None:
        if self.daily_cost_threshold < 0:
            raise PolicyError("daily_cost_threshold cannot be negative")
        if self.free_query_cap < 0:
            raise PolicyError("free_query_cap cannot be negative")
        if not 0 <= self.history_window <= MAX_HISTORY_WINDOW:
            raise PolicyError(f"history_window must be between 0 and {MAX_HISTORY_WINDOW}")
        for provider, rule in self.pricing.items():
            if rule.rate_per_1k_tokens < 0 or rule.free_token_threshold < 0:
                raise PolicyError(f"pricing for {provider.value} cannot be negative")

    def pricing_for(self, provider: Provider) -> PricingRule:
        return self.pricing.get(provider) or PricingRule()


def _parse_pricing(data: Dict[str, Any]) -> Dict[Provider, PricingRule]:
    pricing = _default_pricing()
    for name, item in (data or {}).items():
        pricing[Provider.parse(name)] = PricingRule(
            rate_per_1k_tokens=float(item.get("rate_per_1k_tokens", 0.0)),
            free_token_threshold=int(item.get("free_token_threshold", 0)),
        )
    return pricing


def _load_policy_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}

    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    return data.get("routing", {}) or {}


def load_policy(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> RoutingPolicy:
    """Build a policy from code defaults, the YAML file, then explicit overrides.

    ``overrides`` entries whose value is ``None`` are ignored so callers can
    pass optional settings straight through.
    """
    data = _load_policy_file(Path(path) if path else _POLICY_FILE)
    data.update({key: value for key, value in (overrides or {}).items() if value is not None})

    base = RoutingPolicy()
    return RoutingPolicy(
        daily_cost_threshold=float(data.get("daily_cost_threshold", base.daily_cost_threshold)),
        free_query_cap=int(data.get("free_query_cap", base.free_query_cap)),
        history_window=int(data.get("history_window", base.history_window)),
        complex_length=int(data.get("complex_length", base.complex_length)),
        simple_length=int(data.get("simple_length", base.simple_length)),
        complex_keywords=list(data.get("complex_keywords", base.complex_keywords)),
        default_order=[Provider.parse(name) for name in data["default_order"]]
        if "default_order" in data
        else base.default_order,
        pricing=_parse_pricing(data.get("pricing", {})),
    )
