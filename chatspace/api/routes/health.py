"""Health check endpoints."""

from fastapi import APIRouter

from chatspace.core.config import get_settings

router = APIRouter()


@router.get("/status")
async def server_status():
    """Check if the API is running."""
    return {"success": True, "status": "Server is live", "app": get_settings().app_name}
