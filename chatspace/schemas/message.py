"""Message schemas for API validation."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from chatspace.schemas.common import CamelModel
from chatspace.schemas.user import UserResponse


class MessageCreate(CamelModel):
    """JSON body for sending a message. `image` is a base64 data URL."""
    text: Optional[str] = None
    image: Optional[str] = None


class MessageResponse(CamelModel):
    """Schema for a persisted message (also the `newMessage` socket payload)."""
    id: str = Field(alias="_id")
    sender_id: str
    receiver_id: str
    text: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="image")
    seen: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


class SidebarResponse(CamelModel):
    """Every other user plus the number of unseen messages each has sent me."""
    success: bool = True
    users: List[UserResponse]
    unseen_counts: Dict[str, int]


class ConversationResponse(CamelModel):
    success: bool = True
    messages: List[MessageResponse]


class SendMessageResponse(CamelModel):
    success: bool = True
    new_message: MessageResponse
