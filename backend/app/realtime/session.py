"""One live object per accepted WebSocket connection."""
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional, Set, Tuple

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from app.auth.service import AuthenticatedUser

logger = logging.getLogger(__name__)


class ConnectionSession:
    """Server-side state of one real-time connection.

    Attributes:
        connection_id: Backend-generated identifier, unique per connection.
        user: Identity from the handshake token; fixed for the session.
        joined_room_ids: Rooms this connection receives broadcasts for.
            Only grows during the session.
        connect_room_ids: Snapshot of the user's rooms at connect time; the
            disconnect presence event goes to exactly these rooms.
    """

    def __init__(self, websocket: Optional[WebSocket], user: AuthenticatedUser,
                 connection_id: Optional[str] = None) -> None:
        self.connection_id = connection_id or str(uuid.uuid4())
        self.user = user
        self.websocket = websocket
        self.joined_room_ids: Set[str] = set()
        self.connect_room_ids: Tuple[str, ...] = ()
        self.closed = False
        # set once the disconnect path has run
        self.ended = False
        self._send_lock = asyncio.Lock()

    @property
    def user_id(self) -> str:
        return self.user.user_id

    async def send(self, frame: Dict[str, Any]) -> bool:
        """Write one frame. Frames from concurrent senders never interleave.

        Returns False if the transport is gone; the caller decides whether to
        drop the session.
        """
        if self.closed or self.websocket is None:
            return False
        async with self._send_lock:
            if self.websocket.application_state != WebSocketState.CONNECTED:
                return False
            try:
                await self.websocket.send_json(frame)
            except Exception as exc:
                logger.debug("[Session] Send to %s failed: %s", self.connection_id, exc)
                return False
        return True

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        if self.websocket is None:
            return
        if self.websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self.websocket.close(code=code, reason=reason)
            except RuntimeError as exc:
                logger.debug("[Session] Close of %s ignored: %s", self.connection_id, exc)

    def __repr__(self) -> str:
        return f"<ConnectionSession {self.connection_id} user={self.user_id}>"
