"""
Chat API Routes - dispatch a message to the best available provider
POST /api/chat, GET /api/chat/providers
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
import logging

from src.api.dependencies import get_chat_service
from src.models.chat import ChatRequest, ChatResponse, ProviderStatusResponse
from src.services.chat_service import ChatService
from src.services.llm import DispatchError, ProviderNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("", response_model=ChatResponse, status_code=status.HTTP_200_OK)
async def send_message(
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """
    Generate an answer for a user message.

    The router picks a provider from the user's daily usage, provider
    availability and the message content; a failed provider gets one
    fallback attempt against the flagship provider.

    Raises:
        502: Selected provider and fallback both failed
        500: Internal processing error
    """
    try:
        result, conversation_id = await service.chat(request.to_context(), request.conversation_id)
        return ChatResponse.from_result(result, conversation_id)

    except DispatchError as e:
        logger.error(f"Dispatch failed for user {request.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "message": "Failed to generate response",
                "provider": e.provider.value,
                "fallback_provider": e.fallback_provider.value if e.fallback_provider else None,
            }
        )
    except ProviderNotFoundError as e:
        logger.warning(f"Unknown provider requested: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown provider: {e}"
        )
    except Exception as e:
        logger.error(f"Chat processing error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error processing message"
        )


@router.get("/providers", response_model=List[ProviderStatusResponse])
async def get_providers_status(
    service: ChatService = Depends(get_chat_service),
) -> List[ProviderStatusResponse]:
    """Probe every provider and report availability, cost class and latency estimate."""
    statuses = await service.provider_status()
    return [
        ProviderStatusResponse(
            provider=provider_status.provider,
            available=provider_status.available,
            cost=provider_status.cost_class.value,
            latency=provider_status.latency_estimate_ms,
            description=provider_status.description,
        )
        for provider_status in statuses.values()
    ]
