"""Per-provider availability probing."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import httpx

from .provider_registry import CostClass, Provider, load_provider_registry

logger = logging.getLogger(__name__)

OLLAMA_HEALTH_PATH = "/api/tags"
DEFAULT_PROBE_TIMEOUT = 2.0


@dataclass
class ProviderStatus:
    """Snapshot produced by a single probe; never persisted."""

    provider: str
    available: bool
    cost_class: CostClass
    latency_estimate_ms: int
    description: str


class AvailabilityProbe:
    """Answers "can this provider be called right now?" without raising.

    Credentialed providers are checked locally. The local model service is
    checked with a GET against its health path, bounded by ``timeout``.
    """

    def __init__(
        self,
        credentials: Optional[Dict[Provider, Optional[str]]] = None,
        ollama_host: str = "http://localhost:11434",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        cache_ttl: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._credentials = dict(credentials or {})
        self._ollama_host = ollama_host.rstrip("/")
        self._client = http_client or httpx.AsyncClient()
        self._timeout = timeout
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._cache: Dict[Provider, Tuple[float, bool]] = {}
        self._registry = load_provider_registry()

    async def check(self, provider: Provider) -> bool:
        cached = self._cached(provider)
        if cached is not None:
            return cached

        entry = self._registry[provider]
        if entry.is_local:
            available = await self._check_local()
        elif entry.requires_credential:
            available = bool(self._credentials.get(provider))
        else:
            available = True

        if self._cache_ttl > 0:
            self._cache[provider] = (self._clock() + self._cache_ttl, available)
        return available

    def _cached(self, provider: Provider) -> Optional[bool]:
        if self._cache_ttl <= 0:
            return None
        hit = self._cache.get(provider)
        if hit is None:
            return None
        expires_at, available = hit
        if self._clock() >= expires_at:
            del self._cache[provider]
            return None
        return available

    async def _check_local(self) -> bool:
        url = f"{self._ollama_host}{OLLAMA_HEALTH_PATH}"
        try:
            response = await self._client.get(url, timeout=self._timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Local model probe failed: %s", exc)
            return False
        return response.is_success

    async def status_all(self) -> Dict[Provider, ProviderStatus]:
        """Probe every registered provider concurrently."""
        providers = list(self._registry.keys())
        results = await asyncio.gather(*(self.check(provider) for provider in providers))

        statuses: Dict[Provider, ProviderStatus] = {}
        for provider, available in zip(providers, results):
            entry = self._registry[provider]
            statuses[provider] = ProviderStatus(
                provider=provider.value,
                available=available,
                cost_class=entry.cost_class,
                latency_estimate_ms=entry.latency_estimate_ms,
                description=entry.description,
            )
        return statuses

    async def close(self) -> None:
        await self._client.aclose()
