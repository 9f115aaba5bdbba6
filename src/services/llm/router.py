"""Provider selection policy.

Budget and quota gates run before content heuristics; the heuristics only
refine quality of service. Decisions are deterministic for a given ledger
state and set of probe results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from .availability import AvailabilityProbe
from .ledger import DailyUsage, UsageLedger
from .policies import RoutingPolicy, load_policy
from .profile import MessageProfile, analyze_message
from .provider_registry import FLAGSHIP_PROVIDER, FREE_TIER_PROVIDER, LOCAL_PROVIDER, Provider

logger = logging.getLogger(__name__)

AUTO = "auto"


@dataclass(frozen=True)
class SelectionContext:
    """Validated request input for a single dispatch."""

    user_id: str
    message: str
    preferred_provider: Optional[Union[Provider, str]] = None
    cost_threshold: Optional[float] = None

    @property
    def explicit_provider(self) -> Optional[Provider]:
        if self.preferred_provider is None:
            return None
        if isinstance(self.preferred_provider, Provider):
            return self.preferred_provider
        if self.preferred_provider.strip().lower() == AUTO:
            return None
        return Provider.parse(self.preferred_provider)


@dataclass
class ProviderSelection:
    """Result of choosing a provider for a request."""

    provider: Provider
    reason: str
    attempted_providers: Dict[str, str] = field(default_factory=dict)
    usage: Optional[DailyUsage] = None
    profile: Optional[MessageProfile] = None


class ProviderRouter:
    """Determines which provider answers a request."""

    def __init__(
        self,
        ledger: UsageLedger,
        probe: AvailabilityProbe,
        policy: Optional[RoutingPolicy] = None,
    ) -> None:
        self.ledger = ledger
        self.probe = probe
        self._policy = policy or load_policy()

    @property
    def policy(self) -> RoutingPolicy:
        return self._policy

    async def select_provider(self, ctx: SelectionContext) -> Provider:
        selection = await self.select(ctx)
        return selection.provider

    async def select(self, ctx: SelectionContext) -> ProviderSelection:
        attempted: Dict[str, str] = {}

        async def available(provider: Provider) -> bool:
            if provider.value not in attempted:
                attempted[provider.value] = "available" if await self.probe.check(provider) else "unavailable"
            return attempted[provider.value] == "available"

        def chosen(provider: Provider, reason: str, **extra) -> ProviderSelection:
            attempted[provider.value] = "selected"
            logger.info("Selected %s for user %s (%s)", provider.value, ctx.user_id, reason)
            return ProviderSelection(provider=provider, reason=reason, attempted_providers=attempted, **extra)

        preferred = ctx.explicit_provider
        if preferred is not None:
            if await available(preferred):
                return chosen(preferred, "preferred")
            logger.info("Preferred provider %s unavailable for user %s", preferred.value, ctx.user_id)

        usage = await self._read_usage(ctx.user_id)
        threshold = ctx.cost_threshold if ctx.cost_threshold is not None else self._policy.daily_cost_threshold

        if usage.cost_total >= threshold:
            logger.info(
                "User %s reached cost threshold (%.4f >= %.4f)", ctx.user_id, usage.cost_total, threshold
            )
            if await available(LOCAL_PROVIDER):
                return chosen(LOCAL_PROVIDER, "budget", usage=usage)
            return await self._default_order(available, chosen, usage=usage)

        if usage.questions_asked >= self._policy.free_query_cap and await available(LOCAL_PROVIDER):
            return chosen(LOCAL_PROVIDER, "quota", usage=usage)

        profile = analyze_message(ctx.message, self._policy)

        if profile.is_hebrew and profile.is_complex and await available(FLAGSHIP_PROVIDER):
            return chosen(FLAGSHIP_PROVIDER, "complex_hebrew", usage=usage, profile=profile)

        if profile.is_simple:
            for provider in (FREE_TIER_PROVIDER, FLAGSHIP_PROVIDER):
                if await available(provider):
                    return chosen(provider, "simple", usage=usage, profile=profile)

        return await self._default_order(available, chosen, usage=usage, profile=profile)

    async def _default_order(self, available, chosen, **extra) -> ProviderSelection:
        for provider in self._policy.default_order:
            if await available(provider):
                return chosen(provider, "default_order", **extra)

        logger.warning("No provider probed available, returning %s", FLAGSHIP_PROVIDER.value)
        return chosen(FLAGSHIP_PROVIDER, "last_resort", **extra)

    async def _read_usage(self, user_id: str) -> DailyUsage:
        try:
            return await self.ledger.get_daily_usage(user_id)
        except Exception as exc:
            logger.error("Failed to read daily usage for %s, assuming none: %s", user_id, exc)
            return DailyUsage(user_id=user_id, day=self.ledger.today())

    def refresh(self, policy: Optional[RoutingPolicy] = None) -> None:
        """Reload the policy from disk, or swap in an explicit one."""
        self._policy = policy or load_policy()

