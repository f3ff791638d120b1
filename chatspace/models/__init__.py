"""Database models."""

from chatspace.models.user import User
from chatspace.models.message import Message

__all__ = [
    "User",
    "Message",
]
