import sys
from pathlib import Path

from fastapi.testclient import TestClient
import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "src"))

from src.app_factory import create_app  # noqa: E402
from src.config.settings import Settings  # noqa: E402
from src.services.llm import (  # noqa: E402
    CostClass,
    DispatchError,
    DispatchResult,
    Provider,
    ProviderStatus,
    ProviderTransportError,
)


class StubService:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.contexts = []
        self.closed = False

    async def chat(self, ctx, conversation_id=None):
        self.contexts.append(ctx)
        if self.error is not None:
            raise self.error
        return self.result, conversation_id or "generated-id"

    async def provider_status(self):
        return {
            Provider.GEMINI: ProviderStatus("gemini", True, CostClass.LOW, 500, "flagship"),
            Provider.OLLAMA: ProviderStatus("ollama", False, CostClass.FREE, 2000, "local"),
        }

    async def storage_ready(self):
        return True

    async def close(self):
        self.closed = True


def make_client(service):
    app = create_app(config=Settings(USE_REDIS=False), service=service)
    return TestClient(app)


def test_chat_returns_dispatch_result():
    result = DispatchResult(
        provider=Provider.GEMINI,
        selected_provider=Provider.HUGGINGFACE,
        text="תשובה",
        cost=0.001,
        metadata={"selection_reason": "simple"},
        fallback_provider=Provider.GEMINI,
    )
    service = StubService(result=result)

    with make_client(service) as client:
        response = client.post(
            "/api/chat",
            json={"user_id": "u1", "message": "  hi  ", "preferred_provider": "auto"},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["text"] == "תשובה"
    assert payload["provider"] == "gemini"
    assert payload["selected_provider"] == "huggingface"
    assert payload["fallback_provider"] == "gemini"
    assert payload["conversation_id"] == "generated-id"
    assert service.contexts[0].message == "hi"
    assert service.contexts[0].explicit_provider is None
    assert service.closed


def test_chat_dispatch_failure_maps_to_bad_gateway():
    error = DispatchError(
        Provider.HUGGINGFACE,
        ProviderTransportError(Provider.HUGGINGFACE, "503"),
        Provider.GEMINI,
        ProviderTransportError(Provider.GEMINI, "500"),
    )

    with make_client(StubService(error=error)) as client:
        response = client.post("/api/chat", json={"user_id": "u1", "message": "hi"})

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["provider"] == "huggingface"
    assert detail["fallback_provider"] == "gemini"


def test_chat_unexpected_error_is_internal():
    with make_client(StubService(error=RuntimeError("boom"))) as client:
        response = client.post("/api/chat", json={"user_id": "u1", "message": "hi"})
    assert response.status_code == 500


@pytest.mark.parametrize(
    "body",
    [
        {"user_id": "u1", "message": "   "},
        {"user_id": "u1", "message": "x" * 5001},
        {"user_id": "u1", "message": "hi", "preferred_provider": "mystery"},
        {"user_id": "u1", "message": "hi", "cost_threshold": -1},
        {"message": "hi"},
    ],
)
def test_chat_rejects_invalid_requests(body):
    service = StubService()
    with make_client(service) as client:
        response = client.post("/api/chat", json=body)
    assert response.status_code == 422
    assert service.contexts == []


def test_providers_endpoint_lists_statuses():
    with make_client(StubService()) as client:
        response = client.get("/api/chat/providers")

    assert response.status_code == 200
    payload = {entry["provider"]: entry for entry in response.json()}
    assert payload["gemini"] == {
        "provider": "gemini",
        "available": True,
        "cost": "low",
        "latency": 500,
        "description": "flagship",
    }
    assert payload["ollama"]["available"] is False


def test_health_and_root():
    with make_client(StubService()) as client:
        assert client.get("/health").json()["status"] == "ok"
        assert client.get("/").json()["endpoints"]["chat"] == "/api/chat"
