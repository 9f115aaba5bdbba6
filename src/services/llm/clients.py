"""HTTP clients for the three generation backends.

Each client is configured once at startup and exposes
``send(prompt, history, system_prompt) -> ClientReply``. Timeouts are httpx
per-request timeouts, so an expired call is aborted at the transport.
Clients raise ``httpx.HTTPError`` on transport/status failures and
``ValueError`` when the payload has an unexpected shape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .history import ASSISTANT_ROLE, ChatTurn

logger = logging.getLogger(__name__)

SYSTEM_ACKNOWLEDGEMENT = "שלום! אני כאן לעזור לך. איך אני יכול לעזור היום?"


@dataclass
class ClientReply:
    text: str
    usage: Dict[str, Any] = field(default_factory=dict)


def _count(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def render_transcript(system_prompt: str, history: Sequence[ChatTurn], prompt: str) -> str:
    """Flatten a chat into a plain completion prompt."""
    lines = [system_prompt, ""] if system_prompt else []
    for turn in history:
        speaker = "Assistant" if turn.role == ASSISTANT_ROLE else "User"
        lines.append(f"{speaker}: {turn.content}")
    lines.append(f"User: {prompt}")
    lines.append("Assistant:")
    return "\n".join(lines)


class GeminiClient:
    """Google Generative Language REST API (``generateContent``)."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = http_client or httpx.AsyncClient()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_contents(self, prompt: str, history: Sequence[ChatTurn], system_prompt: str) -> List[Dict[str, Any]]:
        contents: List[Dict[str, Any]] = []
        if system_prompt:
            contents.append({"role": "user", "parts": [{"text": system_prompt}]})
            contents.append({"role": "model", "parts": [{"text": SYSTEM_ACKNOWLEDGEMENT}]})
        for turn in history:
            role = "model" if turn.role == ASSISTANT_ROLE else "user"
            contents.append({"role": role, "parts": [{"text": turn.content}]})
        contents.append({"role": "user", "parts": [{"text": prompt}]})
        return contents

    async def send(self, prompt: str, history: Sequence[ChatTurn], system_prompt: str = "") -> ClientReply:
        if not self.api_key:
            raise ValueError("Gemini API key is not configured")

        response = await self.client.post(
            f"{self.base_url}/models/{self.model}:generateContent",
            headers={"x-goog-api-key": self.api_key},
            json={"contents": self.build_contents(prompt, history, system_prompt)},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text") or "" for part in parts)
        except (AttributeError, KeyError, IndexError, TypeError) as exc:
            raise ValueError(f"Unexpected Gemini payload: {exc!r}") from exc

        return ClientReply(text=text, usage=data.get("usageMetadata") or {})


class HuggingFaceClient:
    """Hugging Face Inference API text-generation endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "mistralai/Mistral-7B-Instruct-v0.2",
        base_url: str = "https://api-inference.huggingface.co/models",
        timeout: float = 60.0,
        max_new_tokens: int = 512,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_new_tokens = max_new_tokens
        self.client = http_client or httpx.AsyncClient()

    async def send(self, prompt: str, history: Sequence[ChatTurn], system_prompt: str = "") -> ClientReply:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        response = await self.client.post(
            f"{self.base_url}/{self.model}",
            headers=headers,
            json={
                "inputs": render_transcript(system_prompt, history, prompt),
                "parameters": {"max_new_tokens": self.max_new_tokens, "return_full_text": False},
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        if isinstance(data, dict) and "error" in data:
            raise ValueError(f"Hugging Face error: {data['error']}")
        try:
            text = data[0]["generated_text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError(f"Unexpected Hugging Face payload: {exc!r}") from exc
        if not isinstance(text, str):
            raise ValueError("Hugging Face reply has no generated text")

        return ClientReply(text=text.strip(), usage={"model": self.model})


class OllamaClient:
    """Local Ollama ``/api/generate`` endpoint."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.2:8b",
        timeout: float = 30.0,
        temperature: float = 0.7,
        top_p: float = 0.9,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.host = host.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.top_p = top_p
        self.client = http_client or httpx.AsyncClient()

    async def send(self, prompt: str, history: Sequence[ChatTurn], system_prompt: str = "") -> ClientReply:
        response = await self.client.post(
            f"{self.host}/api/generate",
            json={
                "model": self.model,
                "prompt": render_transcript(system_prompt, history, prompt),
                "stream": False,
                "options": {"temperature": self.temperature, "top_p": self.top_p},
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        if not isinstance(data, dict):
            raise ValueError("Unexpected Ollama payload")
        text = data.get("response") or ""
        if not isinstance(text, str):
            raise ValueError("Ollama response field is not text")
        return ClientReply(
            text=text,
            usage={
                "model": self.model,
                "prompt_eval_count": _count(data.get("prompt_eval_count")),
                "eval_count": _count(data.get("eval_count")),
                "total_duration": _count(data.get("total_duration")) / 1e9,  # Convert to seconds
            },
        )
