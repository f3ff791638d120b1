"""Direct messaging: history, unseen counters, send-then-relay, seen flags."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, update, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from chatspace.models.message import Message
from chatspace.models.user import User
from chatspace.realtime.hub import presence
from chatspace.realtime.presence import NEW_MESSAGE_EVENT
from chatspace.schemas.message import MessageResponse

logger = logging.getLogger(__name__)


class MessageService:
    """Service for sending and reading direct messages."""

    @staticmethod
    def serialize(message: Message) -> Dict[str, Any]:
        """JSON-ready camelCase dict, as sent over the socket."""
        return MessageResponse.model_validate(message).model_dump(mode="json", by_alias=True)

    @staticmethod
    async def list_sidebar_users(db: AsyncSession, user_id: str) -> Tuple[List[User], Dict[str, int]]:
        """
        Every user except the caller, with how many unseen messages each sent the caller.

        Returns:
            Tuple of (users, {sender_id: unseen_count})
        """
        result = await db.execute(
            select(User).where(User.id != user_id).order_by(User.full_name)
        )
        users = list(result.scalars().all())

        counts_result = await db.execute(
            select(Message.sender_id, func.count(Message.id))
            .where(Message.receiver_id == user_id)
            .where(Message.seen == False)  # noqa: E712
            .group_by(Message.sender_id)
        )
        counts = {sender_id: count for sender_id, count in counts_result.all()}

        unseen_counts = {user.id: counts.get(user.id, 0) for user in users}
        return users, unseen_counts

    @staticmethod
    async def get_conversation(db: AsyncSession, user_id: str, other_user_id: str) -> List[Message]:
        """
        Messages exchanged between two users, oldest first.

        Messages the other user sent to `user_id` are marked seen as a side effect.
        """
        await db.execute(
            update(Message)
            .where(Message.sender_id == other_user_id)
            .where(Message.receiver_id == user_id)
            .where(Message.seen == False)  # noqa: E712
            .values(seen=True)
        )

        result = await db.execute(
            select(Message)
            .where(
                or_(
                    and_(Message.sender_id == user_id, Message.receiver_id == other_user_id),
                    and_(Message.sender_id == other_user_id, Message.receiver_id == user_id),
                )
            )
            .order_by(Message.created_at.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def create_message(
        db: AsyncSession,
        sender_id: str,
        receiver_id: str,
        text: Optional[str] = None,
        image_url: Optional[str] = None,
        seen: bool = False,
    ) -> Message:
        """
        Persist a message (flush only).

        Raises:
            ValueError: neither text nor image was supplied
        """
        text = text.strip() if text else None
        image_url = image_url or None
        if not text and not image_url:
            raise ValueError("Message must contain text or an image")

        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=text,
            image_url=image_url,
            seen=seen,
        )
        db.add(message)
        await db.flush()
        await db.refresh(message)
        return message

    @staticmethod
    async def send_message(
        db: AsyncSession,
        sender_id: str,
        receiver_id: str,
        text: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Message:
        """
        Store a message, then push it to the receiver's live connections.

        The row is committed before the relay so a receiver reacting to the
        event (e.g. marking it seen) always finds it. Offline receivers get
        it from history on their next fetch.

        Raises:
            ValueError: neither text nor image was supplied
            LookupError: receiver does not exist
        """
        receiver = await db.get(User, receiver_id)
        if receiver is None:
            raise LookupError("Receiver not found")

        message = await MessageService.create_message(
            db, sender_id=sender_id, receiver_id=receiver_id, text=text, image_url=image_url
        )
        await db.commit()

        delivered = await presence.emit_to_user(
            receiver_id, NEW_MESSAGE_EVENT, MessageService.serialize(message)
        )
        if not delivered:
            logger.debug(f"Receiver {receiver_id} offline; message {message.id} stored only")
        return message

    @staticmethod
    async def mark_seen(db: AsyncSession, message_id: str, user_id: str) -> Optional[Message]:
        """
        Mark a message seen. Idempotent.

        Only the receiver may do this; returns None for unknown ids and for
        messages addressed to someone else.
        """
        message = await db.get(Message, message_id)
        if message is None or message.receiver_id != user_id:
            return None

        if not message.seen:
            message.seen = True
            await db.flush()
        return message
