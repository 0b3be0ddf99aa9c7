"""
Channel Sync Service

Keeps one change feed per watched channel and reconciles what it delivers:
realtime subscriptions when available, polling otherwise. Every change
updates conversation status, drops stale caches and is pushed to the
channel's WebSocket clients.
"""
import asyncio
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from chat_sync.config import settings
from chat_sync.models.conversation import ConversationStatus, SenderKind
from chat_sync.services.channel_registry import ChannelRegistry
from chat_sync.services.contact_service import ContactNameResolver
from chat_sync.services.conversation_service import ConversationService
from chat_sync.services.polling_manager import PollingManager
from chat_sync.services.realtime_manager import RealtimeSubscriptionError, RealtimeSubscriptionManager
from chat_sync.services.status_store import StatusStore
from chat_sync.services.websocket_service import ConnectionManager
from chat_sync.utils.message_parser import message_content, row_contact_name, sender_kind
from chat_sync.utils.session_id import extract_phone_from_session_id
from chat_sync.utils.timestamps import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

SEEN_IDS_PER_CHANNEL = 1000

MODE_REALTIME = "realtime"
MODE_POLLING = "polling"


def normalize_change(payload: Dict[str, Any]) -> Tuple[str, Dict[str, Any], Dict[str, Any]]:
    """
    Extract (event type, new record, old record) from a change payload.

    Handles the realtime-py shape ({"data": {"type", "record", "old_record"}}),
    the supabase-js shape ({"eventType", "new", "old"}) and flat dicts.
    """
    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
    event_type = str(data.get("type") or data.get("eventType") or payload.get("eventType") or "").upper()
    record = data.get("record") or data.get("new") or {}
    old_record = data.get("old_record") or data.get("old") or {}
    return event_type, record, old_record


class _Watcher:
    def __init__(self, channel_id: str, table: str):
        self.channel_id = channel_id
        self.table = table
        self.listeners = 0
        self.mode: Optional[str] = None
        self.handle: Optional[str] = None


class ChannelSyncService:
    """Bridges realtime/polling change feeds to status, caches and WebSockets"""

    def __init__(
        self,
        registry: ChannelRegistry,
        conversation_service: ConversationService,
        status_store: StatusStore,
        connection_manager: ConnectionManager,
        realtime_manager: Optional[RealtimeSubscriptionManager] = None,
        polling_manager: Optional[PollingManager] = None,
        name_resolver: Optional[ContactNameResolver] = None,
        realtime_enabled: Optional[bool] = None,
        poll_interval: Optional[float] = None,
    ):
        self.registry = registry
        self.conversation_service = conversation_service
        self.status_store = status_store
        self.connection_manager = connection_manager
        self.realtime_manager = realtime_manager
        self.polling_manager = polling_manager or PollingManager()
        self.name_resolver = name_resolver
        self.realtime_enabled = settings.REALTIME_ENABLED if realtime_enabled is None else realtime_enabled
        self.poll_interval = poll_interval or settings.POLL_INTERVAL_SECONDS

        self._watchers: Dict[str, _Watcher] = {}
        self._cursors: Dict[str, Optional[str]] = {}
        self._seen: Dict[str, "OrderedDict[Any, None]"] = {}
        self._lock = asyncio.Lock()

    # ============================================
    # WATCHING
    # ============================================

    async def watch(self, channel_id: str) -> str:
        """
        Add a listener to a channel, starting its change feed if needed.

        Returns:
            The feed mode ("realtime" or "polling")
        """
        async with self._lock:
            watcher = self._watchers.get(channel_id)
            if watcher is None:
                watcher = _Watcher(channel_id, self.registry.get_table_name(channel_id))
                await self._start_feed(watcher)
                self._watchers[channel_id] = watcher

            watcher.listeners += 1
            return watcher.mode

    async def unwatch(self, channel_id: str) -> None:
        """Remove a listener; the feed stops with the last one"""
        async with self._lock:
            watcher = self._watchers.get(channel_id)
            if watcher is None:
                return

            watcher.listeners -= 1
            if watcher.listeners > 0:
                return

            del self._watchers[channel_id]
            await self._stop_feed(watcher)

    async def _start_feed(self, watcher: _Watcher) -> None:
        channel_id = watcher.channel_id

        if self.realtime_enabled and self.realtime_manager is not None:
            try:
                watcher.handle = await self.realtime_manager.subscribe(
                    watcher.table,
                    lambda payload: self.handle_change(channel_id, payload),
                )
                watcher.mode = MODE_REALTIME
                logger.info(f"📡 Watching {channel_id} via realtime ({watcher.table})")
                return
            except RealtimeSubscriptionError as e:
                logger.warning(f"⚠️  Realtime unavailable for {channel_id}, falling back to polling: {e}")

        try:
            # Existing rows at the cursor are marked seen so the first poll skips them
            recent = self.conversation_service.repository(channel_id).find_recent(20)
            self._cursors[channel_id] = recent[0].get("read_at") if recent else None
            for row in recent:
                self._mark_seen(channel_id, row.get("id"))
        except Exception as e:
            logger.error(f"❌ Could not read poll cursor for {channel_id}: {e}")
            self._cursors[channel_id] = utc_now().isoformat()

        watcher.handle = self.polling_manager.start_polling(
            f"poll:{channel_id}",
            lambda: self.poll_channel(channel_id),
            interval=self.poll_interval,
        )
        watcher.mode = MODE_POLLING
        logger.info(f"⏱️  Watching {channel_id} via polling ({watcher.table})")

    async def _stop_feed(self, watcher: _Watcher) -> None:
        if watcher.mode == MODE_REALTIME and self.realtime_manager is not None:
            await self.realtime_manager.unsubscribe(watcher.table, watcher.handle)
        elif watcher.mode == MODE_POLLING:
            self.polling_manager.stop_polling(f"poll:{watcher.channel_id}", watcher.handle)
        self._cursors.pop(watcher.channel_id, None)
        self._seen.pop(watcher.channel_id, None)
        logger.info(f"🔕 Stopped watching {watcher.channel_id}")

    def active_watchers(self) -> Dict[str, Dict[str, Any]]:
        return {
            channel_id: {"table": w.table, "mode": w.mode, "listeners": w.listeners}
            for channel_id, w in self._watchers.items()
        }

    # ============================================
    # CHANGE HANDLING
    # ============================================

    def _mark_seen(self, channel_id: str, message_id: Any) -> bool:
        """Remember a message id; False if it was already seen"""
        if message_id is None:
            return True
        seen = self._seen.setdefault(channel_id, OrderedDict())
        if message_id in seen:
            return False
        seen[message_id] = None
        while len(seen) > SEEN_IDS_PER_CHANNEL:
            seen.popitem(last=False)
        return True

    async def handle_change(self, channel_id: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply one row change of a channel table.

        Returns:
            The notification broadcast to clients, or None if ignored
        """
        event_type, record, old_record = normalize_change(payload)

        if event_type == "INSERT":
            return await self._handle_insert(channel_id, record)

        if event_type in ("UPDATE", "DELETE"):
            row = record or old_record
            self.conversation_service.invalidate(channel_id)
            data = {
                "event": event_type.lower(),
                "session_id": row.get("session_id"),
                "message_id": row.get("id"),
                "is_read": row.get("is_read"),
            }
            await self.connection_manager.broadcast_event(channel_id, "message_update", data)
            return data

        logger.debug(f"Ignoring change of type '{event_type}' on {channel_id}")
        return None

    async def _handle_insert(self, channel_id: str, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        session_id = record.get("session_id")
        if not session_id:
            logger.debug(f"Ignoring row without session_id on {channel_id}")
            return None

        if not self._mark_seen(channel_id, record.get("id")):
            return None

        message_time = parse_timestamp(record.get("read_at")) or utc_now()
        kind = sender_kind(record)
        phone = extract_phone_from_session_id(session_id)
        row_name = row_contact_name(record)

        was_reopened = await self.status_store.handle_new_message(channel_id, session_id, message_time)

        contact_name = row_name
        if self.name_resolver is not None:
            if kind == SenderKind.CONTACT:
                contact_name = await self.name_resolver.resolve(phone, row_name)
            else:
                contact_name = self.name_resolver.resolve_cached(phone, row_name)

        self.conversation_service.invalidate(channel_id)

        data = {
            "session_id": session_id,
            "message_id": record.get("id"),
            "contact_name": contact_name,
            "contact_phone": phone,
            "content": message_content(record.get("message")),
            "sender": kind.value,
            "timestamp": message_time.isoformat(),
            "was_reopened": was_reopened,
        }
        await self.connection_manager.broadcast_event(channel_id, "new_message", data)
        return data

    async def poll_channel(self, channel_id: str) -> int:
        """
        Fetch rows newer than the channel cursor and apply them as inserts.

        Returns:
            Number of new messages applied
        """
        repository = self.conversation_service.repository(channel_id)
        cursor = self._cursors.get(channel_id)
        cursor_time = parse_timestamp(cursor)
        # Inclusive so rows sharing the cursor timestamp are not skipped; seen ids dedupe them
        rows = repository.find_after(cursor, inclusive=True)

        applied = 0
        for row in rows:
            if await self._handle_insert(channel_id, row) is not None:
                applied += 1
            row_time = parse_timestamp(row.get("read_at"))
            if row_time and (cursor_time is None or row_time > cursor_time):
                cursor, cursor_time = row["read_at"], row_time

        self._cursors[channel_id] = cursor
        if applied:
            logger.info(f"📥 Polling applied {applied} new messages on {channel_id}")
        return applied

    async def handle_auto_resolved(self, resolved: List[Tuple[str, str]]) -> None:
        """Refresh caches and tell dashboards about conversations closed by the idle sweep"""
        for channel_id in {channel_id for channel_id, _ in resolved}:
            self.conversation_service.invalidate(channel_id)

        for channel_id, conversation_id in resolved:
            await self.connection_manager.broadcast_event(
                channel_id,
                "status_update",
                {"session_id": conversation_id, "status": ConversationStatus.RESOLVED.value, "updated_by": "auto_resolve"},
            )

    async def shutdown(self) -> None:
        async with self._lock:
            watchers = list(self._watchers.values())
            self._watchers.clear()
        for watcher in watchers:
            await self._stop_feed(watcher)
        await self.polling_manager.cleanup()
        if self.realtime_manager is not None:
            await self.realtime_manager.cleanup()


# Singleton instance
_sync_service: Optional[ChannelSyncService] = None


def get_sync_service() -> ChannelSyncService:
    """Get or create the ChannelSyncService singleton"""
    global _sync_service

    if _sync_service is None:
        from chat_sync.services.channel_registry import get_channel_registry
        from chat_sync.services.contact_service import get_contact_name_resolver
        from chat_sync.services.conversation_service import get_conversation_service
        from chat_sync.services.status_store import get_status_store
        from chat_sync.services.websocket_service import get_connection_manager

        _sync_service = ChannelSyncService(
            registry=get_channel_registry(),
            conversation_service=get_conversation_service(),
            status_store=get_status_store(),
            connection_manager=get_connection_manager(),
            realtime_manager=RealtimeSubscriptionManager() if settings.REALTIME_ENABLED else None,
            name_resolver=get_contact_name_resolver(),
        )

    return _sync_service


async def shutdown_sync_service() -> None:
    """Stop every feed of the singleton, if it was ever created"""
    global _sync_service

    if _sync_service is not None:
        await _sync_service.shutdown()
        _sync_service = None
