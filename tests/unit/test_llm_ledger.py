import asyncio
import sys
from datetime import date
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "src"))

from services.llm.ledger import (  # noqa: E402
    DailyUsage,
    InMemoryUsageStore,
    RedisUsageStore,
    UsageLedger,
    UsageStore,
)
from services.llm.provider_registry import Provider  # noqa: E402

DAY = date(2025, 3, 1)


class FakePipeline:
    """Queues hash commands and applies them on execute, like MULTI/EXEC."""

    def __init__(self, redis):
        self.redis = redis
        self.transaction = None
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def hincrby(self, key, field, amount):
        self.commands.append(("hincrby", key, field, amount))

    def hincrbyfloat(self, key, field, amount):
        self.commands.append(("hincrbyfloat", key, field, amount))

    def expire(self, key, seconds):
        self.commands.append(("expire", key, seconds))

    def hgetall(self, key):
        self.commands.append(("hgetall", key))

    async def execute(self):
        results = []
        for command in self.commands:
            name, key = command[0], command[1]
            row = self.redis.hashes.setdefault(key, {})
            if name == "hincrby":
                row[command[2]] = str(int(row.get(command[2], 0)) + command[3])
                results.append(int(row[command[2]]))
            elif name == "hincrbyfloat":
                row[command[2]] = str(float(row.get(command[2], 0.0)) + command[3])
                results.append(float(row[command[2]]))
            elif name == "expire":
                self.redis.expiries[key] = command[2]
                results.append(True)
            else:
                results.append(dict(row))
        self.redis.executed.append(self.commands)
        return results


class FakeRedis:
    def __init__(self):
        self.hashes = {}
        self.expiries = {}
        self.executed = []
        self.pipelines = []

    def pipeline(self, transaction=True):
        pipe = FakePipeline(self)
        pipe.transaction = transaction
        self.pipelines.append(pipe)
        return pipe

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))


def test_stores_satisfy_protocol():
    assert isinstance(InMemoryUsageStore(), UsageStore)
    assert isinstance(RedisUsageStore(FakeRedis()), UsageStore)


@pytest.mark.asyncio
async def test_missing_row_reads_as_zero():
    ledger = UsageLedger(InMemoryUsageStore(), today=lambda: DAY)

    usage = await ledger.get_daily_usage("u1")

    assert usage.questions_asked == 0
    assert usage.cost_total == 0.0
    assert usage.day == DAY
    assert all(count == 0 for count in usage.provider_queries.values())


@pytest.mark.asyncio
async def test_record_usage_increments_counters():
    ledger = UsageLedger(InMemoryUsageStore(), today=lambda: DAY)

    await ledger.record_usage("u1", None, Provider.GEMINI, 0.002)
    usage = await ledger.record_usage("u1", None, Provider.OLLAMA, 0.0)

    assert usage.questions_asked == 2
    assert usage.cost_total == pytest.approx(0.002)
    assert usage.provider_queries[Provider.GEMINI] == 1
    assert usage.provider_queries[Provider.OLLAMA] == 1
    assert usage.provider_queries[Provider.HUGGINGFACE] == 0


@pytest.mark.asyncio
async def test_days_are_bucketed_separately():
    ledger = UsageLedger(InMemoryUsageStore(), today=lambda: DAY)
    await ledger.record_usage("u1", date(2025, 2, 28), Provider.GEMINI, 0.5)

    assert (await ledger.get_daily_usage("u1")).cost_total == 0.0
    assert (await ledger.get_daily_usage("u1", date(2025, 2, 28))).cost_total == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_negative_cost_rejected():
    ledger = UsageLedger(InMemoryUsageStore(), today=lambda: DAY)
    with pytest.raises(ValueError):
        await ledger.record_usage("u1", DAY, Provider.GEMINI, -0.01)


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost():
    ledger = UsageLedger(InMemoryUsageStore(), today=lambda: DAY)

    await asyncio.gather(*(ledger.record_usage("u1", DAY, Provider.GEMINI, 0.001) for _ in range(100)))

    usage = await ledger.get_daily_usage("u1")
    assert usage.questions_asked == 100
    assert usage.cost_total == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_redis_store_increments_in_one_transaction():
    redis = FakeRedis()
    store = RedisUsageStore(redis, namespace="usage", ttl_seconds=3600)

    usage = await store.increment_usage("u1", DAY, Provider.HUGGINGFACE, 0.25)

    assert len(redis.pipelines) == 1
    assert redis.pipelines[0].transaction is True
    names = [command[0] for command in redis.executed[0]]
    assert names == ["hincrby", "hincrbyfloat", "hincrby", "expire", "hgetall"]
    assert redis.expiries["usage:u1:2025-03-01"] == 3600

    assert usage.questions_asked == 1
    assert usage.cost_total == pytest.approx(0.25)
    assert usage.provider_queries[Provider.HUGGINGFACE] == 1


@pytest.mark.asyncio
async def test_redis_store_reads_hash_fields():
    redis = FakeRedis()
    redis.hashes["usage:u1:2025-03-01"] = {
        b"questions_asked": b"7",
        b"cost_total": b"0.0425",
        b"queries:gemini": b"5",
        b"queries:ollama": b"2",
    }
    store = RedisUsageStore(redis)

    usage = await store.get_daily_usage("u1", DAY)

    assert usage.questions_asked == 7
    assert usage.cost_total == pytest.approx(0.0425)
    assert usage.provider_queries[Provider.GEMINI] == 5
    assert usage.provider_queries[Provider.HUGGINGFACE] == 0
    assert await store.get_daily_usage("someone-else", DAY) is None


def test_usage_to_dict_uses_plain_values():
    usage = DailyUsage(user_id="u1", day=DAY, questions_asked=1, cost_total=0.1)
    payload = usage.to_dict()

    assert payload["date"] == "2025-03-01"
    assert payload["provider_queries"] == {"gemini": 0, "huggingface": 0, "ollama": 0}
