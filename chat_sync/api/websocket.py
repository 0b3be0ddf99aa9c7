"""
WebSocket API Endpoint
Live conversation updates for one support channel
"""
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
import logging
from typing import Optional

from chat_sync.auth.jwt_handler import JWTValidationError, extract_user_from_token
from chat_sync.services.channel_registry import get_channel_registry
from chat_sync.services.sync_service import get_sync_service
from chat_sync.services.websocket_service import get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/ws/channels/{channel_id}")
async def channel_websocket(
    websocket: WebSocket,
    channel_id: str,
    token: Optional[str] = Query(None, description="Supabase access token")
):
    """
    Stream changes of a channel to the dashboard.

    Connect with ``ws://host/ws/channels/{channel_id}?token={jwt}``.

    Events sent:
        new_message      a row was inserted (data: session_id, content, sender, was_reopened, ...)
        message_update   a row was updated or deleted
        status_update    an agent changed a conversation's status
        messages_read    a conversation was marked read

    Clients may send "ping" and receive "pong".
    """
    if not token:
        logger.warning(f"WebSocket connection attempt without token for channel {channel_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        user = extract_user_from_token(token)
    except JWTValidationError as e:
        logger.warning(f"Invalid WebSocket token: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if not get_channel_registry().is_valid_channel(channel_id):
        logger.warning(f"WebSocket connection for unknown channel {channel_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    connection_manager = get_connection_manager()
    sync_service = get_sync_service()

    await websocket.accept()
    await connection_manager.connect(websocket, channel_id, user.user_id)

    watching = False
    try:
        mode = await sync_service.watch(channel_id)
        watching = True
        await connection_manager.send_personal_message(
            {"type": "connected", "channel_id": channel_id, "mode": mode},
            websocket,
        )

        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        logger.info(f"Client disconnected from channel {channel_id}")
    except Exception as e:
        logger.error(f"❌ WebSocket error on channel {channel_id}: {e}")
    finally:
        connection_manager.disconnect(websocket)
        if watching:
            await sync_service.unwatch(channel_id)
