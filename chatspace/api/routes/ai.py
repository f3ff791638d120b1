"""AI assistant endpoints and the admin on/off switch."""

import logging

from fastapi import APIRouter, HTTPException, status

from chatspace.core.dependencies import DbSession, CurrentUser, AdminUser
from chatspace.schemas.ai import AIChatRequest, AIChatResponse, AILimiterUpdate, AILimiterResponse
from chatspace.schemas.message import MessageResponse
from chatspace.services.ai_service import AIConfigurationError, AIServiceError, get_ai_service
from chatspace.services.flag_service import FlagService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/chat", response_model=AIChatResponse)
async def chat_with_assistant(body: AIChatRequest, current_user: CurrentUser, db: DbSession):
    """
    Ask the assistant.

    Send either `prompt` or a `messages` history. Both the question and the
    reply are stored as messages between the caller and the assistant.
    """
    if not FlagService.ai_enabled():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI assistant is currently disabled",
        )

    try:
        ai_service = get_ai_service()
    except AIConfigurationError as e:
        logger.error(f"AI assistant misconfigured: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="AI provider not configured",
        )

    history = [turn.model_dump() for turn in body.messages] if body.messages else None
    try:
        reply, user_message, ai_message = await ai_service.chat(
            db, current_user, prompt=body.prompt, history=history, model=body.model
        )
    except AIServiceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="AI assistant failed to respond",
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return AIChatResponse(
        content=reply,
        user_message=MessageResponse.model_validate(user_message),
        ai_message=MessageResponse.model_validate(ai_message),
    )


@router.get("/limiter", response_model=AILimiterResponse)
async def get_ai_limiter(current_user: CurrentUser):
    return AILimiterResponse(ai_enabled=FlagService.ai_enabled())


@router.post("/limiter", response_model=AILimiterResponse)
async def set_ai_limiter(body: AILimiterUpdate, admin: AdminUser, db: DbSession):
    """Turn the assistant on or off for everyone."""
    enabled = await FlagService.set_ai_enabled(db, body.enabled)
    logger.info(f"Admin {admin.id} set ai_enabled={enabled}")
    return AILimiterResponse(ai_enabled=enabled)
