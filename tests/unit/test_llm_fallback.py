import sys
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "src"))

from services.llm.adapters import GenerationResult, HuggingFaceAdapter  # noqa: E402
from services.llm.clients import HuggingFaceClient  # noqa: E402
from services.llm.errors import (  # noqa: E402
    DispatchError,
    ProviderResponseMalformed,
    ProviderTimeout,
    ProviderTransportError,
)
from services.llm.fallback import DispatchState, FallbackCoordinator  # noqa: E402
from services.llm.provider_registry import Provider  # noqa: E402
from services.llm.telemetry import TelemetryStore  # noqa: E402


class StubAdapter:
    def __init__(self, provider, text="ok", cost=0.0, error=None):
        self.provider = provider
        self.text = text
        self.cost = cost
        self.error = error
        self.calls = 0

    async def generate(self, message, history=None, options=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return GenerationResult(text=self.text, cost=self.cost, metadata={"latency_ms": 5.0})


class StubProbe:
    def __init__(self, available=True):
        self.available = available
        self.calls = []

    async def check(self, provider):
        self.calls.append(provider)
        return self.available


def make_adapters():
    adapters = {provider: StubAdapter(provider, text=f"from {provider.value}") for provider in Provider}
    return adapters


@pytest.mark.asyncio
async def test_success_without_fallback():
    adapters = make_adapters()
    coordinator = FallbackCoordinator(adapters, StubProbe())

    result = await coordinator.execute(Provider.HUGGINGFACE, "hi")

    assert result.provider is Provider.HUGGINGFACE
    assert result.text == "from huggingface"
    assert not result.fallback_used
    assert result.states == [DispatchState.SELECTED, DispatchState.ATTEMPTING, DispatchState.SUCCEEDED]
    assert adapters[Provider.GEMINI].calls == 0


@pytest.mark.asyncio
async def test_failure_falls_back_to_flagship_once():
    failing = StubAdapter(Provider.HUGGINGFACE, error=ProviderTransportError(Provider.HUGGINGFACE, "503"))
    flagship = StubAdapter(Provider.GEMINI, text="from gemini", cost=0.0015)
    adapters = make_adapters()
    adapters.update({Provider.HUGGINGFACE: failing, Provider.GEMINI: flagship})
    coordinator = FallbackCoordinator(adapters, StubProbe())

    result = await coordinator.execute(Provider.HUGGINGFACE, "hi")

    assert result.provider is Provider.GEMINI
    assert result.selected_provider is Provider.HUGGINGFACE
    assert result.fallback_provider is Provider.GEMINI
    assert result.cost == pytest.approx(0.0015)
    assert "503" in result.metadata["fallback_reason"]
    assert result.states[-2:] == [DispatchState.ATTEMPTING_FALLBACK, DispatchState.SUCCEEDED]
    assert failing.calls == 1
    assert flagship.calls == 1


@pytest.mark.asyncio
async def test_both_failing_makes_exactly_two_calls():
    failing = StubAdapter(Provider.OLLAMA, error=ProviderResponseMalformed(Provider.OLLAMA, "garbage"))
    flagship = StubAdapter(Provider.GEMINI, error=ProviderTimeout(Provider.GEMINI, "slow"))
    adapters = make_adapters()
    adapters.update({Provider.OLLAMA: failing, Provider.GEMINI: flagship})
    coordinator = FallbackCoordinator(adapters, StubProbe())

    with pytest.raises(DispatchError) as info:
        await coordinator.execute(Provider.OLLAMA, "hi")

    error = info.value
    assert error.provider is Provider.OLLAMA
    assert error.fallback_provider is Provider.GEMINI
    assert isinstance(error.fallback_error, ProviderTimeout)
    assert failing.calls + flagship.calls == 2


@pytest.mark.asyncio
async def test_flagship_failure_is_terminal():
    flagship = StubAdapter(Provider.GEMINI, error=ProviderTimeout(Provider.GEMINI, "slow"))
    adapters = make_adapters()
    adapters[Provider.GEMINI] = flagship
    probe = StubProbe()
    coordinator = FallbackCoordinator(adapters, probe)

    with pytest.raises(DispatchError) as info:
        await coordinator.execute(Provider.GEMINI, "hi")

    assert info.value.fallback_provider is None
    assert flagship.calls == 1
    assert probe.calls == []


@pytest.mark.asyncio
async def test_no_fallback_when_flagship_unavailable():
    failing = StubAdapter(Provider.HUGGINGFACE, error=ProviderTransportError(Provider.HUGGINGFACE, "down"))
    adapters = make_adapters()
    adapters[Provider.HUGGINGFACE] = failing
    coordinator = FallbackCoordinator(adapters, StubProbe(available=False))

    with pytest.raises(DispatchError) as info:
        await coordinator.execute(Provider.HUGGINGFACE, "hi")

    assert info.value.fallback_provider is None
    assert adapters[Provider.GEMINI].calls == 0


@pytest.mark.asyncio
async def test_degraded_local_answer_is_not_a_failure():
    degraded = StubAdapter(Provider.OLLAMA, text="sorry")
    adapters = make_adapters()
    adapters[Provider.OLLAMA] = degraded
    coordinator = FallbackCoordinator(adapters, StubProbe())

    result = await coordinator.execute(Provider.OLLAMA, "hi")

    assert result.provider is Provider.OLLAMA
    assert adapters[Provider.GEMINI].calls == 0


@pytest.mark.asyncio
async def test_null_free_tier_reply_falls_back_to_flagship():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[{"generated_text": None}]))
    adapters = make_adapters()
    adapters[Provider.HUGGINGFACE] = HuggingFaceAdapter(HuggingFaceClient(http_client=httpx.AsyncClient(transport=transport)))
    coordinator = FallbackCoordinator(adapters, StubProbe())

    result = await coordinator.execute(Provider.HUGGINGFACE, "hi")

    assert result.fallback_used
    assert result.provider is Provider.GEMINI
    assert result.text == "from gemini"
    assert adapters[Provider.GEMINI].calls == 1


@pytest.mark.asyncio
async def test_attempts_are_reported_to_telemetry():
    telemetry = TelemetryStore(redis_client=None, namespace="test:telemetry")
    adapters = make_adapters()
    adapters[Provider.HUGGINGFACE] = StubAdapter(
        Provider.HUGGINGFACE, error=ProviderTransportError(Provider.HUGGINGFACE, "503")
    )
    coordinator = FallbackCoordinator(adapters, StubProbe(), telemetry=telemetry)

    await coordinator.execute(Provider.HUGGINGFACE, "hi")

    metrics = await telemetry.get_all_metrics()
    assert metrics["huggingface"].failures == 1
    assert metrics["gemini"].successes == 1


def test_dispatch_result_serialises_provider_names():
    from services.llm.fallback import DispatchResult

    result = DispatchResult(
        provider=Provider.GEMINI,
        selected_provider=Provider.OLLAMA,
        text="x",
        cost=0.0,
        fallback_provider=Provider.GEMINI,
    )
    payload = result.to_dict()
    assert payload["provider"] == "gemini"
    assert payload["selected_provider"] == "ollama"
    assert payload["fallback_used"] is True
