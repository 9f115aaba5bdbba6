"""Static provider registry used by the routing layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable


class ProviderNotFoundError(KeyError):
    """Raised when a requested provider is not present in the registry."""


class Provider(str, Enum):
    """Generation backends the router can dispatch to."""

    GEMINI = "gemini"
    HUGGINGFACE = "huggingface"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, value: str) -> "Provider":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ProviderNotFoundError(value) from None


class CostClass(str, Enum):
    FREE = "free"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Provider roles referenced by the selection policy and fallback coordinator.
FLAGSHIP_PROVIDER = Provider.GEMINI
FREE_TIER_PROVIDER = Provider.HUGGINGFACE
LOCAL_PROVIDER = Provider.OLLAMA


@dataclass
class LLMProvider:
    """Capability metadata for a single provider."""

    provider: Provider
    cost_class: CostClass
    latency_estimate_ms: int
    requires_credential: bool
    is_local: bool
    description: str

    def copy(self) -> "LLMProvider":
        """Return a copy suitable for safe mutation by callers."""
        return LLMProvider(
            provider=self.provider,
            cost_class=self.cost_class,
            latency_estimate_ms=self.latency_estimate_ms,
            requires_credential=self.requires_credential,
            is_local=self.is_local,
            description=self.description,
        )


_BASE_REGISTRY: Dict[Provider, LLMProvider] = {
    Provider.GEMINI: LLMProvider(
        provider=Provider.GEMINI,
        cost_class=CostClass.LOW,
        latency_estimate_ms=500,
        requires_credential=True,
        is_local=False,
        description="Google Gemini - strong Hebrew support, free tier up to 60 requests/minute",
    ),
    Provider.HUGGINGFACE: LLMProvider(
        provider=Provider.HUGGINGFACE,
        cost_class=CostClass.FREE,
        latency_estimate_ms=1000,
        requires_credential=False,
        is_local=False,
        description="Hugging Face - open-source models, completely free",
    ),
    Provider.OLLAMA: LLMProvider(
        provider=Provider.OLLAMA,
        cost_class=CostClass.FREE,
        latency_estimate_ms=2000,
        requires_credential=False,
        is_local=True,
        description="Ollama - local model, completely free, requires a local install",
    ),
}


def _clone_registry(providers: Iterable[LLMProvider]) -> Dict[Provider, LLMProvider]:
    """Create a fresh mapping of provider to a safe copy."""
    return {entry.provider: entry.copy() for entry in providers}


def load_provider_registry() -> Dict[Provider, LLMProvider]:
    """Return a fully cloned provider registry."""
    return _clone_registry(_BASE_REGISTRY.values())


def get_provider(provider: Provider) -> LLMProvider:
    """Return a copy of the requested provider's metadata."""
    entry = _BASE_REGISTRY.get(provider)
    if entry is None:
        raise ProviderNotFoundError(provider)
    return entry.copy()
