"""Executes the selected provider with at most one fallback hop.

States: SELECTED -> ATTEMPTING -> SUCCEEDED, or
ATTEMPTING -> ATTEMPTING_FALLBACK -> SUCCEEDED | FAILED. The fallback
target is always the flagship provider, so a request makes at most two
provider calls.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .adapters import GenerationOptions, GenerationResult, ProviderAdapter
from .availability import AvailabilityProbe
from .errors import DispatchError, ProviderError
from .history import ChatTurn
from .provider_registry import FLAGSHIP_PROVIDER, Provider

logger = logging.getLogger(__name__)


class DispatchState(str, Enum):
    SELECTED = "selected"
    ATTEMPTING = "attempting"
    ATTEMPTING_FALLBACK = "attempting_fallback"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class DispatchResult:
    """What the caller gets back; nothing here is retained by the router."""

    provider: Provider
    selected_provider: Provider
    text: str
    cost: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    fallback_provider: Optional[Provider] = None
    states: List[DispatchState] = field(default_factory=list)

    @property
    def fallback_used(self) -> bool:
        return self.fallback_provider is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "selected_provider": self.selected_provider.value,
            "text": self.text,
            "cost": self.cost,
            "metadata": self.metadata,
            "fallback_provider": self.fallback_provider.value if self.fallback_provider else None,
            "fallback_used": self.fallback_used,
        }


class FallbackCoordinator:
    def __init__(
        self,
        adapters: Mapping[Provider, ProviderAdapter],
        probe: AvailabilityProbe,
        telemetry=None,
        fallback_provider: Provider = FLAGSHIP_PROVIDER,
    ) -> None:
        self.adapters = dict(adapters)
        self.probe = probe
        self.telemetry = telemetry
        self.fallback_provider = fallback_provider

    @staticmethod
    def _enter(trail: List[DispatchState], state: DispatchState, provider: Provider) -> None:
        trail.append(state)
        logger.debug("Dispatch state %s (%s)", state.value, provider.value)

    async def execute(
        self,
        selected: Provider,
        message: str,
        history: Optional[Sequence[ChatTurn]] = None,
        options: Optional[GenerationOptions] = None,
    ) -> DispatchResult:
        trail: List[DispatchState] = []
        self._enter(trail, DispatchState.SELECTED, selected)

        self._enter(trail, DispatchState.ATTEMPTING, selected)
        try:
            result = await self._attempt(selected, message, history, options)
        except ProviderError as error:
            return await self._fall_back(trail, selected, error, message, history, options)

        self._enter(trail, DispatchState.SUCCEEDED, selected)
        return DispatchResult(
            provider=selected,
            selected_provider=selected,
            text=result.text,
            cost=result.cost,
            metadata=result.metadata,
            states=trail,
        )

    async def _fall_back(
        self,
        trail: List[DispatchState],
        selected: Provider,
        error: ProviderError,
        message: str,
        history: Optional[Sequence[ChatTurn]],
        options: Optional[GenerationOptions],
    ) -> DispatchResult:
        target = self.fallback_provider
        if selected == target:
            self._enter(trail, DispatchState.FAILED, selected)
            raise DispatchError(selected, error) from error

        if not await self.probe.check(target):
            logger.error("%s failed and fallback %s is unavailable: %s", selected.value, target.value, error)
            self._enter(trail, DispatchState.FAILED, selected)
            raise DispatchError(selected, error) from error

        logger.warning("%s failed (%s), falling back to %s", selected.value, error, target.value)
        self._enter(trail, DispatchState.ATTEMPTING_FALLBACK, target)
        try:
            result = await self._attempt(target, message, history, options)
        except ProviderError as fallback_error:
            logger.error("Fallback %s also failed: %s", target.value, fallback_error)
            self._enter(trail, DispatchState.FAILED, target)
            raise DispatchError(selected, error, target, fallback_error) from fallback_error

        self._enter(trail, DispatchState.SUCCEEDED, target)
        metadata = dict(result.metadata)
        metadata["fallback_reason"] = str(error)
        return DispatchResult(
            provider=target,
            selected_provider=selected,
            text=result.text,
            cost=result.cost,
            metadata=metadata,
            fallback_provider=target,
            states=trail,
        )

    async def _attempt(
        self,
        provider: Provider,
        message: str,
        history: Optional[Sequence[ChatTurn]],
        options: Optional[GenerationOptions],
    ) -> GenerationResult:
        adapter = self.adapters[provider]
        start = time.perf_counter()
        try:
            result = await adapter.generate(message, history, options)
        except ProviderError as error:
            await self._record_failure(provider, (time.perf_counter() - start) * 1000, error)
            raise

        await self._record_success(provider, result.metadata.get("latency_ms", 0.0), result.cost)
        return result

    async def _record_success(self, provider: Provider, latency_ms: float, cost: float) -> None:
        if self.telemetry is not None:
            await self.telemetry.record_success(provider.value, latency_ms, cost)

    async def _record_failure(self, provider: Provider, latency_ms: float, error: ProviderError) -> None:
        if self.telemetry is not None:
            await self.telemetry.record_failure(provider.value, latency_ms, str(error), error.cost)
