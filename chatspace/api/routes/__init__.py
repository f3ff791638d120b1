"""API routes package."""

from fastapi import APIRouter

from chatspace.api.routes import (
    auth,
    messages,
    ai,
    health,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(messages.router, prefix="/messages", tags=["Messages"])
api_router.include_router(ai.router, prefix="/ai", tags=["AI Assistant"])
