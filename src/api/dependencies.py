"""Request-scoped access to the service objects built at startup."""

from fastapi import HTTPException, Request, status

from src.services.chat_service import ChatService


def get_chat_service(request: Request) -> ChatService:
    """Return the ChatService stored on the application by the lifespan hook."""
    service = getattr(request.app.state, "chat_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat service is not initialised"
        )
    return service
