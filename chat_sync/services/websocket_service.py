"""
WebSocket Service
Manages dashboard WebSocket connections, grouped by support channel
"""
from fastapi import WebSocket
from typing import Any, Dict, List, Optional, Set
import logging

from chat_sync.utils.timestamps import now_iso

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections per channel.

    Agents watching a channel only receive events of that channel.
    """

    def __init__(self):
        # Structure: {channel_id: Set[WebSocket]}
        self.active_connections: Dict[str, Set[WebSocket]] = {}

        # Structure: {WebSocket: {"channel_id": str, "user_id": str, "connected_at": str}}
        self.connection_metadata: Dict[WebSocket, Dict[str, Any]] = {}

    async def connect(self, websocket: WebSocket, channel_id: str, user_id: Optional[str] = None) -> int:
        """
        Register an accepted WebSocket for a channel.

        Returns:
            Number of connections on the channel after registering
        """
        self.active_connections.setdefault(channel_id, set()).add(websocket)
        self.connection_metadata[websocket] = {
            "channel_id": channel_id,
            "user_id": user_id,
            "connected_at": now_iso(),
        }

        connection_count = len(self.active_connections[channel_id])
        logger.info(
            f"✅ WebSocket connected: channel={channel_id}, user={user_id}, "
            f"total_connections={connection_count}"
        )
        return connection_count

    def disconnect(self, websocket: WebSocket) -> Optional[str]:
        """
        Remove a WebSocket.

        Returns:
            The channel it belonged to, or None if it was not registered
        """
        metadata = self.connection_metadata.pop(websocket, None)
        if metadata is None:
            return None

        channel_id = metadata["channel_id"]
        connections = self.active_connections.get(channel_id)
        if connections is not None:
            connections.discard(websocket)
            if not connections:
                del self.active_connections[channel_id]

        logger.info(
            f"🔌 WebSocket disconnected: channel={channel_id}, user={metadata.get('user_id')}, "
            f"remaining_connections={self.get_connection_count(channel_id)}"
        )
        return channel_id

    async def send_personal_message(self, message: dict, websocket: WebSocket) -> None:
        if websocket not in self.connection_metadata:
            logger.warning("Attempted to send message to unregistered WebSocket")
            return
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"❌ Failed to send personal message: {e}")
            self.disconnect(websocket)

    async def broadcast_to_channel(self, message: dict, channel_id: str) -> int:
        """
        Send a message to every connection of a channel.

        Connections that fail are dropped. Returns the number delivered.
        """
        connections = list(self.active_connections.get(channel_id, ()))
        if not connections:
            logger.debug(f"No active connections for channel {channel_id}")
            return 0

        success_count = 0
        failed_connections = []

        for connection in connections:
            try:
                await connection.send_json(message)
                success_count += 1
            except Exception as e:
                logger.error(f"❌ Failed to broadcast to connection: {e}")
                failed_connections.append(connection)

        for failed in failed_connections:
            self.disconnect(failed)

        logger.debug(
            f"📢 Broadcast to channel {channel_id}: "
            f"sent={success_count}, failed={len(failed_connections)}"
        )
        return success_count

    async def broadcast_event(self, channel_id: str, event_type: str, data: dict) -> int:
        notification = {
            "type": event_type,
            "channel_id": channel_id,
            "timestamp": now_iso(),
            "data": data,
        }
        return await self.broadcast_to_channel(notification, channel_id)

    def get_connection_count(self, channel_id: Optional[str] = None) -> int:
        if channel_id:
            return len(self.active_connections.get(channel_id, set()))
        return sum(len(connections) for connections in self.active_connections.values())

    def get_channels_with_connections(self) -> List[str]:
        return list(self.active_connections.keys())


# Singleton instance
connection_manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    """Get the global ConnectionManager singleton instance."""
    return connection_manager
