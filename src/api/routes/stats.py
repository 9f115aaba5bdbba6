"""Stats endpoints: provider telemetry and per-user daily usage."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from src.api.dependencies import get_chat_service
from src.services.chat_service import ChatService
from src.services.llm import ProviderMetrics, load_provider_registry

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/llm/providers")
async def get_llm_provider_metrics(service: ChatService = Depends(get_chat_service)) -> Dict[str, Any]:
    """Expose provider telemetry for dashboards and tooling."""

    registry = load_provider_registry()
    metrics_map = await service.provider_metrics()

    providers: List[Dict[str, Any]] = []
    for provider, entry in registry.items():
        metrics: ProviderMetrics = metrics_map.get(provider.value, ProviderMetrics(provider=provider.value))
        providers.append({
            "provider": provider.value,
            "cost_class": entry.cost_class.value,
            "latency_estimate_ms": entry.latency_estimate_ms,
            "total_calls": metrics.total_calls,
            "successes": metrics.successes,
            "failures": metrics.failures,
            "success_rate": metrics.success_rate,
            "average_latency_ms": metrics.average_latency_ms,
            "total_cost": metrics.total_cost,
            "last_error": metrics.last_error,
            "last_updated": metrics.last_updated,
        })

    return {
        "providers": providers,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/usage/{user_id}")
async def get_user_usage(user_id: str, service: ChatService = Depends(get_chat_service)) -> Dict[str, Any]:
    """Today's question count, spend and per-provider counters for one user."""
    usage = await service.daily_usage(user_id)
    return usage.to_dict()
