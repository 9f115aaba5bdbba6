"""Provider selection and dispatch services package."""

from .provider_registry import (  # noqa: F401
    CostClass,
    FLAGSHIP_PROVIDER,
    FREE_TIER_PROVIDER,
    LLMProvider,
    LOCAL_PROVIDER,
    Provider,
    ProviderNotFoundError,
    get_provider,
    load_provider_registry,
)
from .policies import (  # noqa: F401
    PolicyError,
    PricingRule,
    RoutingPolicy,
    load_policy,
)
from .cost import CostEstimator  # noqa: F401
from .profile import MessageProfile, analyze_message  # noqa: F401
from .availability import AvailabilityProbe, ProviderStatus  # noqa: F401
from .ledger import (  # noqa: F401
    DailyUsage,
    InMemoryUsageStore,
    RedisUsageStore,
    UsageLedger,
    UsageStore,
)
from .history import (  # noqa: F401
    ChatTurn,
    ConversationStore,
    InMemoryConversationStore,
    RedisConversationStore,
)
from .errors import (  # noqa: F401
    DispatchError,
    ProviderError,
    ProviderResponseMalformed,
    ProviderTimeout,
    ProviderTransportError,
)
from .clients import GeminiClient, HuggingFaceClient, OllamaClient  # noqa: F401
from .adapters import (  # noqa: F401
    GeminiAdapter,
    GenerationOptions,
    GenerationResult,
    HuggingFaceAdapter,
    OllamaAdapter,
    ProviderAdapter,
)
from .router import (  # noqa: F401
    ProviderRouter,
    ProviderSelection,
    SelectionContext,
)
from .fallback import DispatchResult, DispatchState, FallbackCoordinator  # noqa: F401
from .dispatcher import Dispatcher  # noqa: F401
from .telemetry import (  # noqa: F401
    ProviderMetrics,
    TelemetryStore,
)

__all__ = [
    "CostClass",
    "FLAGSHIP_PROVIDER",
    "FREE_TIER_PROVIDER",
    "LOCAL_PROVIDER",
    "LLMProvider",
    "Provider",
    "ProviderNotFoundError",
    "get_provider",
    "load_provider_registry",
    "PolicyError",
    "PricingRule",
    "RoutingPolicy",
    "load_policy",
    "CostEstimator",
    "MessageProfile",
    "analyze_message",
    "AvailabilityProbe",
    "ProviderStatus",
    "DailyUsage",
    "InMemoryUsageStore",
    "RedisUsageStore",
    "UsageLedger",
    "UsageStore",
    "ChatTurn",
    "ConversationStore",
    "InMemoryConversationStore",
    "RedisConversationStore",
    "DispatchError",
    "ProviderError",
    "ProviderResponseMalformed",
    "ProviderTimeout",
    "ProviderTransportError",
    "GeminiClient",
    "HuggingFaceClient",
    "OllamaClient",
    "GeminiAdapter",
    "GenerationOptions",
    "GenerationResult",
    "HuggingFaceAdapter",
    "OllamaAdapter",
    "ProviderAdapter",
    "ProviderRouter",
    "ProviderSelection",
    "SelectionContext",
    "DispatchResult",
    "DispatchState",
    "FallbackCoordinator",
    "Dispatcher",
    "ProviderMetrics",
    "TelemetryStore",
]
