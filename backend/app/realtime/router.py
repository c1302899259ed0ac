"""Real-time WebSocket endpoint.

Endpoint:
    WebSocket /ws?token=<jwt>   (or ``Authorization: Bearer <jwt>``)

A handshake without a valid token is closed with code 1008 and the reason
``"Authentication required"``, ``"Invalid token"`` or ``"Account banned"``.
If the account store cannot be read the handshake is closed with 1013.
Frame format is described in ``app.realtime.events``; binary frames get an
``error`` event.
"""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.errors import AuthenticationError, TransientStoreError

from .hub import CLOSE_POLICY_VIOLATION, CLOSE_TRY_AGAIN_LATER, RealtimeHub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    hub: RealtimeHub = websocket.app.state.hub

    try:
        user = hub.authenticate(websocket)
    except AuthenticationError as exc:
        logger.warning("[WS] Handshake rejected: %s", exc.message)
        await websocket.close(code=CLOSE_POLICY_VIOLATION, reason=exc.message)
        return
    except TransientStoreError as exc:
        logger.warning("[WS] Handshake deferred: %s", exc.message)
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Service unavailable")
        return

    session = await hub.open_session(websocket, user)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # binary frames carry no "text" and are answered with an error
            await hub.dispatch(session, message.get("text"))
    except WebSocketDisconnect as exc:
        logger.info("[WS] %s closed by client (code=%s)", session.connection_id, exc.code)
    finally:
        await hub.close_session(session)
