"""Realtime layer (Socket.IO server and the presence registry)."""

from chatspace.realtime.presence import (
    SessionRegistry,
    ONLINE_USERS_EVENT,
    NEW_MESSAGE_EVENT,
)
from chatspace.realtime.hub import sio, presence

# Registers the connect/disconnect handlers on `sio`
from chatspace.realtime import server  # noqa: E402,F401

__all__ = [
    "SessionRegistry",
    "ONLINE_USERS_EVENT",
    "NEW_MESSAGE_EVENT",
    "sio",
    "presence",
]
