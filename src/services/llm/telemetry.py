"""Per-provider call telemetry.

Counters live in one Redis hash per provider and are bumped with
HINCRBY/HINCRBYFLOAT, so several workers can report into the same keys.
Without Redis the store keeps process-local aggregates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ProviderMetrics:
    """Aggregate metrics for a single provider."""

    provider: str
    total_calls: int = 0
    successes: int = 0
    failures: int = 0
    total_latency_ms: float = 0.0
    total_cost: float = 0.0
    last_error: Optional[str] = None
    last_updated: Optional[str] = None

    @property
    def success_rate(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.successes / self.total_calls

    @property
    def average_latency_ms(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.total_latency_ms / self.total_calls

    @classmethod
    def from_hash(cls, provider: str, data: Dict[Any, Any]) -> "ProviderMetrics":
        values = {
            (key.decode("utf-8") if isinstance(key, bytes) else key): (
                value.decode("utf-8") if isinstance(value, bytes) else value
            )
            for key, value in data.items()
        }
        return cls(
            provider=provider,
            total_calls=int(values.get("total_calls", 0)),
            successes=int(values.get("successes", 0)),
            failures=int(values.get("failures", 0)),
            total_latency_ms=float(values.get("total_latency_ms", 0.0)),
            total_cost=float(values.get("total_cost", 0.0)),
            last_error=values.get("last_error") or None,
            last_updated=values.get("last_updated") or None,
        )


class TelemetryStore:
    """Best-effort telemetry: Redis errors are logged and never reach dispatch."""

    def __init__(self, redis_client=None, namespace: str = "llm:telemetry") -> None:
        self.redis_client = redis_client
        self.namespace = namespace
        self._local: Dict[str, ProviderMetrics] = {}

    def _key(self, provider: str) -> str:
        return f"{self.namespace}:{provider}"

    async def record_success(self, provider: str, latency_ms: float, cost: float = 0.0) -> ProviderMetrics:
        return await self._record(provider, latency_ms, cost, error=None)

    async def record_failure(self, provider: str, latency_ms: float, error: str, cost: float = 0.0) -> ProviderMetrics:
        return await self._record(provider, latency_ms, cost, error=error)

    async def _record(self, provider: str, latency_ms: float, cost: float, error: Optional[str]) -> ProviderMetrics:
        now = datetime.now(timezone.utc).isoformat()

        local = self._local.setdefault(provider, ProviderMetrics(provider=provider))
        local.total_calls += 1
        if error is None:
            local.successes += 1
        else:
            local.failures += 1
        local.total_latency_ms += latency_ms
        local.total_cost += cost
        local.last_error = error
        local.last_updated = now

        if self.redis_client is None:
            return local

        key = self._key(provider)
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.hincrby(key, "total_calls", 1)
                pipe.hincrby(key, "successes" if error is None else "failures", 1)
                pipe.hincrbyfloat(key, "total_latency_ms", latency_ms)
                pipe.hincrbyfloat(key, "total_cost", cost)
                pipe.hset(key, mapping={"last_error": error or "", "last_updated": now})
                pipe.hgetall(key)
                results = await pipe.execute()
        except Exception as exc:
            logger.warning("Failed to persist telemetry for %s: %s", provider, exc)
            return local
        return ProviderMetrics.from_hash(provider, results[-1])

    async def get_metrics(self, provider: str) -> ProviderMetrics:
        if self.redis_client is not None:
            try:
                data = await self.redis_client.hgetall(self._key(provider))
                if data:
                    return ProviderMetrics.from_hash(provider, data)
            except Exception as exc:
                logger.warning("Failed to load telemetry for %s: %s", provider, exc)
        return self._local.get(provider) or ProviderMetrics(provider=provider)

    async def get_all_metrics(self) -> Dict[str, ProviderMetrics]:
        if self.redis_client is None:
            return dict(self._local)

        metrics = dict(self._local)
        prefix = f"{self.namespace}:"
        try:
            async for key in self.redis_client.scan_iter(match=f"{prefix}*"):
                if isinstance(key, bytes):
                    key = key.decode("utf-8")
                provider = key[len(prefix):]
                metrics[provider] = ProviderMetrics.from_hash(provider, await self.redis_client.hgetall(key))
        except Exception as exc:
            logger.warning("Failed to enumerate telemetry keys: %s", exc)
        return metrics


__all__ = [
    "ProviderMetrics",
    "TelemetryStore",
]
