"""Services for business logic."""

from chatspace.services.auth_service import AuthService
from chatspace.services.message_service import MessageService
from chatspace.services.image_processor import ImageProcessor
from chatspace.services.storage_service import StorageService
from chatspace.services.flag_service import FlagService
from chatspace.services.ai_service import AIService

__all__ = [
    "AuthService",
    "MessageService",
    "ImageProcessor",
    "StorageService",
    "FlagService",
    "AIService",
]
