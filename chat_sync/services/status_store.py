"""
Conversation Status Store

Per-conversation status (unread / in_progress / resolved) kept in Redis, one
JSON document per conversation under
``{STATUS_KEY_PREFIX}:{channel_id}:{conversation_id}``.

Rules:
- a conversation with no record is unread
- any new message moves the conversation back to unread
- in_progress conversations idle for AUTO_RESOLVE_AFTER_HOURS are resolved
  by a periodic sweep
"""
import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

import redis.asyncio as redis
from pydantic import ValidationError

from chat_sync.config import settings
from chat_sync.models.conversation import ConversationStatus, StatusCounts, StatusRecord
from chat_sync.utils.timestamps import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

AUTO_RESOLVE_LOCK = "conversation_status:auto_resolve"

# Callback used to mark a conversation's rows read: (channel_id, conversation_id) -> rows updated
MarkReadCallback = Callable[[str, str], int]

# Notified with the (channel_id, conversation_id) pairs resolved by a sweep
AutoResolveCallback = Callable[[List[Tuple[str, str]]], Union[Awaitable[Any], Any]]


class StatusStore:
    """Redis-backed conversation status persistence"""

    def __init__(
        self,
        redis_client: redis.Redis,
        mark_read: Optional[MarkReadCallback] = None,
        key_prefix: Optional[str] = None,
        auto_resolve_after: Optional[timedelta] = None,
        on_auto_resolve: Optional[AutoResolveCallback] = None,
    ):
        """
        Initialize Status Store

        Args:
            redis_client: redis.asyncio client (decode_responses=True)
            mark_read: Marks a conversation's messages read when it is taken
                or resolved
            key_prefix: Redis key prefix
            auto_resolve_after: Idle time before in_progress becomes resolved
            on_auto_resolve: Called after a sweep with the conversations it
                resolved
        """
        self.redis = redis_client
        self.mark_read = mark_read
        self.key_prefix = key_prefix or settings.STATUS_KEY_PREFIX
        self.auto_resolve_after = auto_resolve_after or timedelta(hours=settings.AUTO_RESOLVE_AFTER_HOURS)
        self.on_auto_resolve = on_auto_resolve

    def _key(self, channel_id: str, conversation_id: str) -> str:
        return f"{self.key_prefix}:{channel_id}:{conversation_id}"

    def _split_key(self, key: str) -> Tuple[str, str]:
        """Inverse of _key; conversation ids may themselves contain ':'"""
        rest = key[len(self.key_prefix) + 1:]
        channel_id, _, conversation_id = rest.partition(":")
        return channel_id, conversation_id

    def _decode(self, key: str, raw: Optional[str]) -> Optional[StatusRecord]:
        if raw is None:
            return None
        try:
            return StatusRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"⚠️  Discarding unreadable status record {key}: {e}")
            return None

    async def _save(self, channel_id: str, conversation_id: str, record: StatusRecord) -> None:
        await self.redis.set(self._key(channel_id, conversation_id), record.model_dump_json())

    async def get(self, channel_id: str, conversation_id: str) -> StatusRecord:
        key = self._key(channel_id, conversation_id)
        record = self._decode(key, await self.redis.get(key))
        return record or StatusRecord()

    async def get_many(self, channel_id: str, conversation_ids: Iterable[str]) -> Dict[str, StatusRecord]:
        """Stored records only; conversations without a record are omitted"""
        conversation_ids = list(conversation_ids)
        if not conversation_ids:
            return {}

        keys = [self._key(channel_id, c) for c in conversation_ids]
        values = await self.redis.mget(keys)

        records = {}
        for conversation_id, key, raw in zip(conversation_ids, keys, values):
            record = self._decode(key, raw)
            if record is not None:
                records[conversation_id] = record
        return records

    async def update_status(
        self,
        channel_id: str,
        conversation_id: str,
        status: ConversationStatus,
    ) -> StatusRecord:
        """
        Set a conversation's status.

        Taking (in_progress) or resolving a conversation also marks its
        messages read; a failure there is logged and the status is still saved.

        Raises:
            ValueError: If channel_id or conversation_id is empty
        """
        if not channel_id or not conversation_id:
            raise ValueError("channel_id and conversation_id are required")

        status = ConversationStatus(status)
        record = await self.get(channel_id, conversation_id)
        now = utc_now()

        record.status = status
        record.last_activity = now
        if status != ConversationStatus.RESOLVED:
            record.auto_resolved_at = None

        if status in (ConversationStatus.IN_PROGRESS, ConversationStatus.RESOLVED) and self.mark_read:
            try:
                result = self.mark_read(channel_id, conversation_id)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"❌ Failed to mark {channel_id}/{conversation_id} read: {e}")

        await self._save(channel_id, conversation_id, record)
        logger.info(f"🔄 Status {channel_id}/{conversation_id} -> {status.value}")
        return record

    async def handle_new_message(
        self,
        channel_id: str,
        conversation_id: str,
        message_time: Optional[datetime] = None,
    ) -> bool:
        """
        Record an incoming message; the conversation becomes unread.

        Returns:
            True if the status changed (the conversation was reopened)
        """
        record = await self.get(channel_id, conversation_id)
        previous = record.status
        message_time = message_time or utc_now()

        record.status = ConversationStatus.UNREAD
        record.last_activity = message_time
        record.last_message_time = message_time
        record.auto_resolved_at = None

        await self._save(channel_id, conversation_id, record)

        changed = previous != ConversationStatus.UNREAD
        if changed:
            logger.info(f"📬 Conversation {channel_id}/{conversation_id} reopened ({previous.value} -> unread)")
        return changed

    async def mark_viewed(self, channel_id: str, conversation_id: str) -> StatusRecord:
        record = await self.get(channel_id, conversation_id)
        record.last_viewed = utc_now()
        await self._save(channel_id, conversation_id, record)
        return record

    async def delete(self, channel_id: str, conversation_id: str) -> None:
        await self.redis.delete(self._key(channel_id, conversation_id))

    async def _scan(self, channel_id: Optional[str] = None):
        pattern = f"{self.key_prefix}:{channel_id}:*" if channel_id else f"{self.key_prefix}:*"
        async for key in self.redis.scan_iter(match=pattern, count=500):
            yield key

    async def counts(self, channel_id: Optional[str] = None) -> StatusCounts:
        counts = StatusCounts()
        async for key in self._scan(channel_id):
            record = self._decode(key, await self.redis.get(key))
            if record is None:
                continue
            if record.status == ConversationStatus.UNREAD:
                counts.unread += 1
            elif record.status == ConversationStatus.IN_PROGRESS:
                counts.in_progress += 1
            elif record.status == ConversationStatus.RESOLVED:
                counts.resolved += 1
        return counts

    async def conversations_with_status(self, status: ConversationStatus, channel_id: Optional[str] = None) -> List[Tuple[str, str]]:
        matches = []
        async for key in self._scan(channel_id):
            record = self._decode(key, await self.redis.get(key))
            if record is not None and record.status == status:
                matches.append(self._split_key(key))
        return matches

    async def auto_resolve_stale(self, now: Optional[datetime] = None) -> int:
        """
        Resolve in_progress conversations idle for longer than auto_resolve_after.

        Returns:
            Number of conversations resolved
        """
        now = now or utc_now()
        cutoff = now - self.auto_resolve_after
        resolved: List[Tuple[str, str]] = []

        async for key in self._scan():
            record = self._decode(key, await self.redis.get(key))
            if record is None or record.status != ConversationStatus.IN_PROGRESS:
                continue

            last_activity = parse_timestamp(record.last_activity)
            if last_activity is None or last_activity >= cutoff:
                continue

            record.status = ConversationStatus.RESOLVED
            record.auto_resolved_at = now
            await self.redis.set(key, record.model_dump_json())
            resolved.append(self._split_key(key))

        if resolved:
            logger.info(f"✅ Auto-resolved {len(resolved)} idle conversations")
            await self._notify_auto_resolved(resolved)
        return len(resolved)

    async def _notify_auto_resolved(self, resolved: List[Tuple[str, str]]) -> None:
        if self.on_auto_resolve is None:
            return
        try:
            result = self.on_auto_resolve(resolved)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"❌ Auto-resolve notification failed: {e}")

    async def run_auto_resolve_loop(self, interval: Optional[float] = None) -> None:
        """Sweep immediately, then every interval seconds, until cancelled"""
        from chat_sync.services.redis_service import acquire_lock

        interval = interval or settings.AUTO_RESOLVE_INTERVAL_SECONDS
        logger.info(f"⏰ Auto-resolve sweep every {interval}s (idle limit {self.auto_resolve_after})")

        while True:
            try:
                async with acquire_lock(AUTO_RESOLVE_LOCK, expire=300, wait_time=0, client=self.redis) as acquired:
                    if acquired:
                        await self.auto_resolve_stale()
                    else:
                        logger.debug("Auto-resolve sweep running elsewhere, skipping")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"❌ Auto-resolve sweep failed: {e}")

            await asyncio.sleep(interval)


# Singleton instance
_status_store: Optional[StatusStore] = None


def get_status_store() -> StatusStore:
    """Get or create the StatusStore singleton"""
    global _status_store

    if _status_store is None:
        from chat_sync.services.redis_service import get_redis
        from chat_sync.services.supabase_client import get_supabase_client
        from chat_sync.services.channel_registry import get_channel_registry
        from chat_sync.services.message_repository import MessageRepository

        registry = get_channel_registry()

        def mark_read(channel_id: str, conversation_id: str) -> int:
            table = registry.get_table_name(channel_id)
            repository = MessageRepository(get_supabase_client(), table, registry.table_has_read_flag(table))
            return repository.mark_as_read(conversation_id)

        _status_store = StatusStore(get_redis(), mark_read=mark_read)

    return _status_store
