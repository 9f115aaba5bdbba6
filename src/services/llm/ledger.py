"""Per-user daily usage accounting.

The store owns atomicity: ``increment_usage`` must be a single upsert-
increment at the storage layer, never read-modify-write in application
code. Budget checks read before the increment lands, so concurrent
requests from one user can overshoot the daily threshold; the threshold
is a soft limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

from .provider_registry import Provider

logger = logging.getLogger(__name__)


@dataclass
class DailyUsage:
    """Usage counters for one ``(user_id, day)`` row."""

    user_id: str
    day: date
    questions_asked: int = 0
    cost_total: float = 0.0
    provider_queries: Dict[Provider, int] = field(default_factory=lambda: {p: 0 for p in Provider})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "date": self.day.isoformat(),
            "questions_asked": self.questions_asked,
            "cost_total": self.cost_total,
            "provider_queries": {p.value: count for p, count in self.provider_queries.items()},
        }


@runtime_checkable
class UsageStore(Protocol):
    """Storage contract for the ledger."""

    async def get_daily_usage(self, user_id: str, day: date) -> Optional[DailyUsage]:  # pragma: no cover - interface
        ...

    async def increment_usage(self, user_id: str, day: date, provider: Provider, cost: float) -> DailyUsage:  # pragma: no cover - interface
        ...


class InMemoryUsageStore:
    """Process-local store for development and tests.

    Increments never await between read and write, so they are atomic on
    the event loop.
    """

    def __init__(self) -> None:
        self._rows: Dict[Tuple[str, date], DailyUsage] = {}

    async def get_daily_usage(self, user_id: str, day: date) -> Optional[DailyUsage]:
        row = self._rows.get((user_id, day))
        if row is None:
            return None
        return DailyUsage(
            user_id=row.user_id,
            day=row.day,
            questions_asked=row.questions_asked,
            cost_total=row.cost_total,
            provider_queries=dict(row.provider_queries),
        )

    async def increment_usage(self, user_id: str, day: date, provider: Provider, cost: float) -> DailyUsage:
        row = self._rows.setdefault((user_id, day), DailyUsage(user_id=user_id, day=day))
        row.questions_asked += 1
        row.cost_total += cost
        row.provider_queries[provider] = row.provider_queries.get(provider, 0) + 1
        return await self.get_daily_usage(user_id, day)


class RedisUsageStore:
    """One Redis hash per ``(user_id, day)`` updated inside a MULTI block."""

    QUESTIONS_FIELD = "questions_asked"
    COST_FIELD = "cost_total"
    PROVIDER_FIELD_PREFIX = "queries:"

    def __init__(self, redis_client, namespace: str = "usage", ttl_seconds: Optional[int] = None) -> None:
        self.redis_client = redis_client
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds

    def _key(self, user_id: str, day: date) -> str:
        return f"{self.namespace}:{user_id}:{day.isoformat()}"

    def _row_from_hash(self, user_id: str, day: date, data: Dict[Any, Any]) -> DailyUsage:
        values = {
            (key.decode("utf-8") if isinstance(key, bytes) else key): value
            for key, value in data.items()
        }
        usage = DailyUsage(
            user_id=user_id,
            day=day,
            questions_asked=int(values.get(self.QUESTIONS_FIELD, 0)),
            cost_total=float(values.get(self.COST_FIELD, 0.0)),
        )
        for provider in Provider:
            usage.provider_queries[provider] = int(values.get(self.PROVIDER_FIELD_PREFIX + provider.value, 0))
        return usage

    async def get_daily_usage(self, user_id: str, day: date) -> Optional[DailyUsage]:
        data = await self.redis_client.hgetall(self._key(user_id, day))
        if not data:
            return None
        return self._row_from_hash(user_id, day, data)

    async def increment_usage(self, user_id: str, day: date, provider: Provider, cost: float) -> DailyUsage:
        key = self._key(user_id, day)
        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, self.QUESTIONS_FIELD, 1)
            pipe.hincrbyfloat(key, self.COST_FIELD, cost)
            pipe.hincrby(key, self.PROVIDER_FIELD_PREFIX + provider.value, 1)
            if self.ttl_seconds:
                pipe.expire(key, self.ttl_seconds)
            pipe.hgetall(key)
            results = await pipe.execute()
        return self._row_from_hash(user_id, day, results[-1])


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class UsageLedger:
    """Client over a :class:`UsageStore` with day bucketing."""

    def __init__(self, store: UsageStore, today: Callable[[], date] = utc_today) -> None:
        self.store = store
        self._today = today

    def today(self) -> date:
        return self._today()

    async def get_daily_usage(self, user_id: str, day: Optional[date] = None) -> DailyUsage:
        day = day or self.today()
        usage = await self.store.get_daily_usage(user_id, day)
        return usage or DailyUsage(user_id=user_id, day=day)

    async def record_usage(
        self,
        user_id: str,
        day: Optional[date],
        provider: Provider,
        cost: float,
    ) -> DailyUsage:
        if cost < 0:
            raise ValueError("cost cannot be negative")
        usage = await self.store.increment_usage(user_id, day or self.today(), provider, cost)
        logger.debug(
            "Recorded usage for %s: provider=%s cost=%.6f total=%.6f questions=%d",
            user_id,
            provider.value,
            cost,
            usage.cost_total,
            usage.questions_asked,
        )
        return usage
