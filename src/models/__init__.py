"""Request and response models for the HTTP surface."""

from .chat import ChatRequest, ChatResponse, ProviderStatusResponse

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ProviderStatusResponse",
]
