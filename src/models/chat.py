"""
Chat Models - validated request/response bodies for the chat endpoint.
The request is converted into an immutable SelectionContext before it
reaches the routing core.
"""

from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.services.llm import DispatchResult, SelectionContext

PreferredProvider = Literal["auto", "gemini", "huggingface", "ollama"]


class ChatRequest(BaseModel):
    """A user message submitted for generation."""

    user_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Identifier of the user whose daily budget applies"
    )

    message: str = Field(
        ...,
        min_length=1,
        max_length=5000,
        description="Raw message text"
    )

    conversation_id: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Existing conversation to continue; a new one is created when absent"
    )

    preferred_provider: PreferredProvider = Field(
        default="auto",
        description="Explicit provider choice; 'auto' lets the router decide"
    )

    cost_threshold: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Override of the daily cost threshold for this request"
    )

    @field_validator('message')
    @classmethod
    def validate_message_not_empty(cls, v):
        """Ensure message is not empty or only whitespace"""
        if not v or not v.strip():
            raise ValueError("Message cannot be empty")
        return v.strip()

    def to_context(self) -> SelectionContext:
        return SelectionContext(
            user_id=self.user_id,
            message=self.message,
            preferred_provider=self.preferred_provider,
            cost_threshold=self.cost_threshold,
        )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "student-42",
                "message": "מה זה נגזרת?",
                "conversation_id": None,
                "preferred_provider": "auto",
            }
        }
    )


class ChatResponse(BaseModel):
    """Generated answer with the provider that produced it."""

    text: str
    provider: str
    selected_provider: str
    cost: float = Field(..., ge=0.0)
    conversation_id: str
    fallback_provider: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: DispatchResult, conversation_id: str) -> "ChatResponse":
        return cls(
            text=result.text,
            provider=result.provider.value,
            selected_provider=result.selected_provider.value,
            cost=result.cost,
            conversation_id=conversation_id,
            fallback_provider=result.fallback_provider.value if result.fallback_provider else None,
            metadata=result.metadata,
        )


class ProviderStatusResponse(BaseModel):
    provider: str
    available: bool
    cost: str
    latency: int
    description: str
