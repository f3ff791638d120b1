"""Process-wide Socket.IO server and presence registry instances."""

import socketio

from chatspace.core.config import get_settings
from chatspace.realtime.presence import SessionRegistry

settings = get_settings()

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins_list if settings.is_production else "*",
    logger=settings.debug,
    engineio_logger=False,
)

presence = SessionRegistry(sio)
