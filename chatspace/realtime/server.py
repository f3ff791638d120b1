"""Socket.IO server: token-authenticated handshake and presence broadcasts."""

import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from socketio.exceptions import ConnectionRefusedError

from chatspace.db.session import AsyncSessionLocal
from chatspace.models.user import User
from chatspace.realtime.hub import sio, presence
from chatspace.services.auth_service import AuthService, TokenError

logger = logging.getLogger(__name__)


def extract_handshake_token(auth: Optional[Dict[str, Any]], environ: Dict[str, Any]) -> Optional[str]:
    """Bearer token from the handshake auth payload, else the `token` query parameter."""
    if isinstance(auth, dict):
        token = auth.get("token")
        if isinstance(token, str) and token.strip():
            return token.strip()

    query = parse_qs(environ.get("QUERY_STRING", ""))
    values = query.get("token")
    if values and values[0].strip():
        return values[0].strip()
    return None


async def authenticate_handshake(auth: Optional[Dict[str, Any]], environ: Dict[str, Any]) -> User:
    """
    Resolve the connecting user from a signed access token.

    A client-supplied `userId` is never used for identity.

    Raises:
        ConnectionRefusedError: missing/expired/invalid token or unknown user
    """
    token = extract_handshake_token(auth, environ)
    if not token:
        raise ConnectionRefusedError("Authentication error: token missing")

    try:
        user_id = AuthService.verify_access_token(token)
    except TokenError as e:
        raise ConnectionRefusedError(f"Authentication error: {str(e).lower()}")

    async with AsyncSessionLocal() as db:
        user = await AuthService.get_user_by_id(db, user_id)

    if user is None:
        raise ConnectionRefusedError("Authentication error: user not found")
    return user


@sio.event
async def connect(sid, environ, auth=None):
    user = await authenticate_handshake(auth, environ)
    await sio.save_session(sid, {"user_id": user.id, "full_name": user.full_name})

    presence.register(user.id, sid)
    logger.info(f"User connected: {user.full_name} ({user.id})")

    # Broadcast once the handshake has completed so the new client receives it too
    sio.start_background_task(presence.broadcast_online_users)


@sio.event
async def disconnect(sid, reason=None):
    try:
        session = await sio.get_session(sid)
    except KeyError:
        return
    user_id = session.get("user_id")
    if not user_id:
        return

    presence.unregister(user_id, sid)
    logger.info(f"User disconnected: {session.get('full_name')} ({user_id})")
    await presence.broadcast_online_users()
