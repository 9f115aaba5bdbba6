"""Chat service: wires the routing core to configuration and storage."""

import logging
import uuid
from typing import Dict, Optional, Tuple

import httpx

from src.config.redis_config import (
    CONVERSATION_NAMESPACE,
    TELEMETRY_NAMESPACE,
    USAGE_NAMESPACE,
    RedisConfig,
)
from src.config.settings import Settings
from src.services.llm import (
    AvailabilityProbe,
    ChatTurn,
    ConversationStore,
    CostEstimator,
    DailyUsage,
    Dispatcher,
    DispatchResult,
    FallbackCoordinator,
    GeminiAdapter,
    GeminiClient,
    HuggingFaceAdapter,
    HuggingFaceClient,
    InMemoryConversationStore,
    InMemoryUsageStore,
    OllamaAdapter,
    OllamaClient,
    Provider,
    ProviderMetrics,
    ProviderRouter,
    ProviderStatus,
    RedisConversationStore,
    RedisUsageStore,
    RoutingPolicy,
    SelectionContext,
    TelemetryStore,
    UsageLedger,
    load_policy,
)

logger = logging.getLogger(__name__)


class ChatService:
    """Long-lived service object constructed once at startup."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        probe: AvailabilityProbe,
        ledger: UsageLedger,
        conversations: ConversationStore,
        telemetry: TelemetryStore,
        http_client: Optional[httpx.AsyncClient] = None,
        redis_config: Optional[RedisConfig] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.probe = probe
        self.ledger = ledger
        self.conversations = conversations
        self.telemetry = telemetry
        self._http_client = http_client
        self._redis_config = redis_config

    @classmethod
    def from_settings(cls, config: Settings, policy: Optional[RoutingPolicy] = None) -> "ChatService":
        policy = policy or load_policy(
            config.POLICY_FILE,
            overrides={
                "daily_cost_threshold": config.DAILY_COST_THRESHOLD,
                "free_query_cap": config.FREE_QUERIES_PER_DAY,
                "history_window": config.HISTORY_WINDOW,
            },
        )
        http_client = httpx.AsyncClient()

        redis_config: Optional[RedisConfig] = None
        if config.USE_REDIS:
            redis_config = RedisConfig(config.REDIS_URL, retention_days=config.USAGE_RETENTION_DAYS)
            usage_store = RedisUsageStore(
                redis_config.client, namespace=USAGE_NAMESPACE, ttl_seconds=redis_config.usage_ttl
            )
            conversations = RedisConversationStore(
                redis_config.client, namespace=CONVERSATION_NAMESPACE, max_turns=config.CONVERSATION_MAX_TURNS
            )
            telemetry = TelemetryStore(redis_client=redis_config.client, namespace=TELEMETRY_NAMESPACE)
        else:
            usage_store = InMemoryUsageStore()
            conversations = InMemoryConversationStore(max_turns=config.CONVERSATION_MAX_TURNS)
            telemetry = TelemetryStore(redis_client=None, namespace=TELEMETRY_NAMESPACE)

        probe = AvailabilityProbe(
            credentials={
                Provider.GEMINI: config.GEMINI_API_KEY,
                Provider.HUGGINGFACE: config.HUGGINGFACE_API_KEY,
            },
            ollama_host=config.OLLAMA_HOST,
            http_client=http_client,
            timeout=config.PROBE_TIMEOUT_SECONDS,
            cache_ttl=config.PROBE_CACHE_TTL_SECONDS,
        )

        estimator = CostEstimator.from_policy(policy)
        adapter_options = {"estimator": estimator, "history_window": policy.history_window}
        adapters = {
            Provider.GEMINI: GeminiAdapter(
                GeminiClient(
                    api_key=config.GEMINI_API_KEY,
                    model=config.GEMINI_MODEL,
                    base_url=config.GEMINI_BASE_URL,
                    timeout=config.CLOUD_GENERATION_TIMEOUT,
                    http_client=http_client,
                ),
                **adapter_options,
            ),
            Provider.HUGGINGFACE: HuggingFaceAdapter(
                HuggingFaceClient(
                    api_key=config.HUGGINGFACE_API_KEY,
                    model=config.HUGGINGFACE_MODEL,
                    base_url=config.HUGGINGFACE_BASE_URL,
                    timeout=config.CLOUD_GENERATION_TIMEOUT,
                    http_client=http_client,
                ),
                **adapter_options,
            ),
            Provider.OLLAMA: OllamaAdapter(
                OllamaClient(
                    host=config.OLLAMA_HOST,
                    model=config.OLLAMA_MODEL,
                    timeout=config.LOCAL_GENERATION_TIMEOUT,
                    http_client=http_client,
                ),
                **adapter_options,
            ),
        }

        if not config.GEMINI_API_KEY:
            logger.warning("Gemini API key not configured")

        ledger = UsageLedger(usage_store)
        router = ProviderRouter(ledger=ledger, probe=probe, policy=policy)
        coordinator = FallbackCoordinator(adapters, probe, telemetry=telemetry)
        dispatcher = Dispatcher(
            router,
            coordinator,
            ledger,
            conversations=conversations,
            history_window=policy.history_window,
        )
        return cls(
            dispatcher=dispatcher,
            probe=probe,
            ledger=ledger,
            conversations=conversations,
            telemetry=telemetry,
            http_client=http_client,
            redis_config=redis_config,
        )

    async def chat(self, ctx: SelectionContext, conversation_id: Optional[str] = None) -> Tuple[DispatchResult, str]:
        """Dispatch a message and append the exchange to its conversation."""
        conversation_id = conversation_id or str(uuid.uuid4())
        result = await self.dispatcher.dispatch(ctx, conversation_id=conversation_id)

        await self.conversations.append_turns(
            conversation_id,
            [ChatTurn(role="user", content=ctx.message), ChatTurn(role="assistant", content=result.text)],
        )
        return result, conversation_id

    async def storage_ready(self) -> bool:
        """Ping Redis when it backs the ledger; in-memory stores are always ready."""
        if self._redis_config is None:
            return True
        return await self._redis_config.ping()

    async def provider_status(self) -> Dict[Provider, ProviderStatus]:
        return await self.probe.status_all()

    async def daily_usage(self, user_id: str) -> DailyUsage:
        return await self.ledger.get_daily_usage(user_id)

    async def provider_metrics(self) -> Dict[str, ProviderMetrics]:
        return await self.telemetry.get_all_metrics()

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
        if self._redis_config is not None:
            await self._redis_config.close()
        logger.info("Chat service closed")
