"""Pydantic schemas for API request/response validation."""

from chatspace.schemas.common import CamelModel, StatusResponse
from chatspace.schemas.user import (
    UserCreate,
    UserLogin,
    UserUpdate,
    UserResponse,
    AuthResponse,
)
from chatspace.schemas.message import MessageCreate, MessageResponse

__all__ = [
    "CamelModel",
    "StatusResponse",
    "UserCreate",
    "UserLogin",
    "UserUpdate",
    "UserResponse",
    "AuthResponse",
    "MessageCreate",
    "MessageResponse",
]
