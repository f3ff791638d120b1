"""Online presence registry: user id -> live Socket.IO connection ids."""

import logging
from typing import Any, Dict, List, Set

logger = logging.getLogger(__name__)

ONLINE_USERS_EVENT = "getOnlineUsers"
NEW_MESSAGE_EVENT = "newMessage"


class SessionRegistry:
    """
    Tracks which users have at least one open connection.

    A user may hold several connections (tabs, devices); they stay online
    until the last one closes. State lives in this process only, so every
    server instance sees only its own clients.

    Mutations never await, so handlers on one event loop cannot interleave
    inside them.
    """

    def __init__(self, server):
        self.server = server
        self._connections: Dict[str, Set[str]] = {}

    def register(self, user_id: str, sid: str) -> bool:
        """Add a connection. Returns True if the user just came online."""
        sids = self._connections.setdefault(user_id, set())
        came_online = not sids
        sids.add(sid)
        return came_online

    def unregister(self, user_id: str, sid: str) -> bool:
        """Drop a connection. Returns True if the user just went offline."""
        sids = self._connections.get(user_id)
        if not sids:
            return False
        sids.discard(sid)
        if sids:
            return False
        del self._connections[user_id]
        return True

    def online_user_ids(self) -> List[str]:
        return list(self._connections.keys())

    def sids_for(self, user_id: str) -> Set[str]:
        return set(self._connections.get(user_id, ()))

    def is_online(self, user_id: str) -> bool:
        return user_id in self._connections

    def clear(self) -> None:
        self._connections.clear()

    async def broadcast_online_users(self) -> None:
        """Send the current online id list to every connection."""
        await self.server.emit(ONLINE_USERS_EVENT, self.online_user_ids())

    async def emit_to_user(self, user_id: str, event: str, payload: Any) -> int:
        """
        Push an event to every live connection of `user_id`.

        Returns:
            Number of connections the event was sent to (0 when offline).
        """
        sids = self.sids_for(user_id)
        for sid in sids:
            await self.server.emit(event, payload, to=sid)
        if sids:
            logger.debug(f"Emitted {event} to {user_id} on {len(sids)} connection(s)")
        return len(sids)
