"""Provider adapters: one uniform ``generate`` contract per backend."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from textwrap import dedent
from typing import Any, Dict, Optional, Sequence, Tuple

import httpx

from .clients import ClientReply, GeminiClient, HuggingFaceClient, OllamaClient
from .cost import CostEstimator
from .errors import ProviderError, ProviderResponseMalformed, ProviderTimeout, ProviderTransportError
from .history import ChatTurn, truncate_history
from .policies import MAX_HISTORY_WINDOW
from .provider_registry import Provider

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = dedent(
    """
    אתה עוזר חינוכי חכם ומקצועי במערכת Lemdata.
    אתה מסייע לתלמידים, מורים והורים בשאלות חינוכיות בעברית.
    אתה מקפיד על תשובות מדויקות, ברורות ומעודדות.
    אם השאלה בעברית, תשיב בעברית. אם באנגלית, תשיב באנגלית.
    היה ידידותי, סבלני ומעודד.
    """
).strip()

LOCAL_APOLOGY = "מצטער, המודל המקומי לא זמין כעת. אנסה לעזור לך באמצעים אחרים."

_DECODER = json.JSONDecoder()


@dataclass
class GenerationOptions:
    expect_json: bool = False


@dataclass
class GenerationResult:
    text: str
    cost: float
    metadata: Dict[str, Any] = field(default_factory=dict)


def parse_structured(text: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Best-effort extraction of the first JSON object embedded in model output.

    Decoding starts at the first ``{`` and stops where that value ends, so
    trailing prose or a second object is ignored. Returns ``(payload, None)``
    on success and ``(None, reason)`` otherwise; the caller keeps the raw
    text either way.
    """
    start = text.find("{")
    if start == -1:
        return None, "no JSON object found"
    try:
        payload, _ = _DECODER.raw_decode(text, start)
    except json.JSONDecodeError as exc:
        return None, f"invalid JSON: {exc.msg}"
    if not isinstance(payload, dict):
        return None, "JSON payload is not an object"
    return payload, None


class ProviderAdapter:
    """Shared generate pipeline; subclasses bind a provider and client."""

    provider: Provider

    def __init__(
        self,
        client,
        estimator: Optional[CostEstimator] = None,
        history_window: int = MAX_HISTORY_WINDOW,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self.client = client
        self.estimator = estimator or CostEstimator()
        self.history_window = min(history_window, MAX_HISTORY_WINDOW)
        self.system_prompt = system_prompt

    async def generate(
        self,
        message: str,
        history: Optional[Sequence[ChatTurn]] = None,
        options: Optional[GenerationOptions] = None,
    ) -> GenerationResult:
        options = options or GenerationOptions()
        turns = truncate_history(history, self.history_window)
        start = time.perf_counter()

        try:
            self._ensure_ready()
            reply = await self.client.send(message, turns, self.system_prompt)
        except ProviderError as error:
            return self._on_failure(error, start)
        except httpx.TimeoutException as exc:
            return self._on_failure(ProviderTimeout(self.provider, "generation timed out", cause=exc), start)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return self._on_failure(ProviderTransportError(self.provider, str(exc) or type(exc).__name__, cause=exc), start)
        except ValueError as exc:
            # the call completed, so the prompt was billed
            return self._on_failure(
                ProviderResponseMalformed(self.provider, str(exc), cause=exc, cost=self._billed_cost(message, 0)),
                start,
            )

        latency_ms = (time.perf_counter() - start) * 1000
        return self._build_result(message, reply, latency_ms, len(turns), options)

    def _billed_cost(self, message: str, output_length: int) -> float:
        return self.estimator.estimate(self.provider, len(message), output_length)

    def _ensure_ready(self) -> None:
        """Raise a ProviderError when the client cannot be called at all."""

    def _on_failure(self, error: ProviderError, start: float) -> GenerationResult:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.warning("%s generation failed after %.0fms: %s", self.provider.value, latency_ms, error)
        raise error

    def _build_result(
        self,
        message: str,
        reply: ClientReply,
        latency_ms: float,
        history_turns: int,
        options: GenerationOptions,
    ) -> GenerationResult:
        text = reply.text
        if not text.strip():
            raise ProviderResponseMalformed(
                self.provider,
                "empty response from provider",
                cost=self._billed_cost(message, len(text)),
            )

        metadata: Dict[str, Any] = {
            "latency_ms": latency_ms,
            "usage": reply.usage,
            "history_turns": history_turns,
        }
        if options.expect_json:
            payload, parse_error = parse_structured(text)
            if payload is not None:
                metadata["structured"] = payload
            else:
                metadata["raw_text"] = text
                metadata["parse_error"] = parse_error

        cost = self._billed_cost(message, len(text))
        return GenerationResult(text=text, cost=cost, metadata=metadata)


class GeminiAdapter(ProviderAdapter):
    provider = Provider.GEMINI

    def __init__(self, client: GeminiClient, **kwargs) -> None:
        super().__init__(client, **kwargs)

    def _ensure_ready(self) -> None:
        if not self.client.configured:
            raise ProviderTransportError(self.provider, "Gemini API not configured")


class HuggingFaceAdapter(ProviderAdapter):
    provider = Provider.HUGGINGFACE

    def __init__(self, client: HuggingFaceClient, **kwargs) -> None:
        super().__init__(client, **kwargs)


class OllamaAdapter(ProviderAdapter):
    """Local model adapter.

    When the local service cannot be reached the adapter answers with a
    fixed apology (``metadata["degraded"]``) instead of raising.
    """

    provider = Provider.OLLAMA

    def __init__(self, client: OllamaClient, **kwargs) -> None:
        super().__init__(client, **kwargs)

    def _on_failure(self, error: ProviderError, start: float) -> GenerationResult:
        if not isinstance(error, (ProviderTimeout, ProviderTransportError)):
            return super()._on_failure(error, start)

        latency_ms = (time.perf_counter() - start) * 1000
        logger.error("Local model unavailable, answering in degraded mode: %s", error)
        return self._degraded(latency_ms, str(error))

    def _build_result(
        self,
        message: str,
        reply: ClientReply,
        latency_ms: float,
        history_turns: int,
        options: GenerationOptions,
    ) -> GenerationResult:
        if not reply.text.strip():
            return self._degraded(latency_ms, "empty response from local model")
        result = super()._build_result(message, reply, latency_ms, history_turns, options)
        result.metadata["local_model"] = True
        return result

    def _degraded(self, latency_ms: float, reason: str) -> GenerationResult:
        return GenerationResult(
            text=LOCAL_APOLOGY,
            cost=0.0,
            metadata={
                "latency_ms": latency_ms,
                "degraded": True,
                "error": reason,
                "local_model": True,
            },
        )
