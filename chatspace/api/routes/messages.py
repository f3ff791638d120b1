"""Direct message endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from chatspace.api.payload import read_payload, parse_fields, read_upload, store_image
from chatspace.core.dependencies import DbSession, CurrentUser
from chatspace.schemas.common import StatusResponse
from chatspace.schemas.message import (
    MessageCreate,
    MessageResponse,
    SidebarResponse,
    ConversationResponse,
    SendMessageResponse,
)
from chatspace.schemas.user import UserResponse
from chatspace.services.auth_service import AuthService
from chatspace.services.image_processor import ImageProcessor
from chatspace.services.message_service import MessageService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/users", response_model=SidebarResponse)
async def get_sidebar_users(current_user: CurrentUser, db: DbSession):
    """Every other user with the count of unseen messages they sent me."""
    users, unseen_counts = await MessageService.list_sidebar_users(db, current_user.id)
    return SidebarResponse(
        users=[UserResponse.model_validate(user) for user in users],
        unseen_counts=unseen_counts,
    )


@router.post("/send/{user_id}", response_model=SendMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(user_id: str, request: Request, current_user: CurrentUser, db: DbSession):
    """
    Send a text and/or image message.

    Accepts JSON (`text`, optional `image` data URL) or multipart form data
    with `text` and an `image` file. The stored message is relayed to the
    receiver's open sockets.
    """
    fields, upload = await read_payload(request, "image")
    body = parse_fields(MessageCreate, fields)

    image_url = None
    if upload is not None or body.image:
        if not current_user.uploads_enabled:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Image uploads are disabled for this account",
            )
        if upload is not None:
            content = await read_upload(upload)
        else:
            try:
                content = ImageProcessor.decode_data_url(body.image)
            except ValueError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        if not await AuthService.get_user_by_id(db, user_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        image_url = await store_image(content, "messages")

    try:
        message = await MessageService.send_message(
            db, sender_id=current_user.id, receiver_id=user_id, text=body.text, image_url=image_url
        )
    except LookupError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SendMessageResponse(new_message=MessageResponse.model_validate(message))


@router.put("/seen/{message_id}", response_model=StatusResponse)
async def mark_message_seen(message_id: str, current_user: CurrentUser, db: DbSession):
    """Mark a message addressed to me as seen."""
    message = await MessageService.mark_seen(db, message_id, current_user.id)
    if message is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )
    return StatusResponse(message="Message marked as seen")


@router.get("/{user_id}", response_model=ConversationResponse)
async def get_conversation(user_id: str, current_user: CurrentUser, db: DbSession):
    """
    Full history with another user, oldest first.
    Messages they sent me are marked seen.
    """
    if not await AuthService.get_user_by_id(db, user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    messages = await MessageService.get_conversation(db, current_user.id, user_id)
    return ConversationResponse(
        messages=[MessageResponse.model_validate(message) for message in messages]
    )
