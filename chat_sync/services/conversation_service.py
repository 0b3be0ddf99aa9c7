"""
Conversation Service
Conversation lists, histories and counters per channel, with short-lived caches
"""
import logging
from typing import Dict, List, Optional

from chat_sync.config import settings
from chat_sync.models.channel import ChannelCounts
from chat_sync.models.conversation import ChatMessage, ConversationSummary, MessageGroup
from chat_sync.services.channel_registry import ChannelRegistry, get_channel_registry
from chat_sync.services.contact_service import ContactNameResolver
from chat_sync.services.conversation_grouper import group_conversations
from chat_sync.services.message_repository import MessageRepository
from chat_sync.utils.cache import TTLCache
from chat_sync.utils.message_grouping import group_consecutive_messages, rows_to_messages

logger = logging.getLogger(__name__)


class ConversationService:
    """Reads channel tables and shapes them for the dashboard"""

    def __init__(
        self,
        supabase,
        registry: Optional[ChannelRegistry] = None,
        status_store=None,
        name_resolver: Optional[ContactNameResolver] = None,
        conversation_ttl: Optional[float] = None,
        count_ttl: Optional[float] = None,
    ):
        """
        Initialize Conversation Service

        Args:
            supabase: Supabase client instance
            registry: Channel registry (defaults to the shared one)
            status_store: StatusStore used to overlay conversation status
            name_resolver: ContactNameResolver used for display names
            conversation_ttl: Conversation list cache lifetime in seconds
            count_ttl: Channel counter cache lifetime in seconds
        """
        self.supabase = supabase
        self.registry = registry or get_channel_registry()
        self.status_store = status_store
        self.name_resolver = name_resolver
        self._conversation_cache = TTLCache(
            conversation_ttl if conversation_ttl is not None else settings.CONVERSATION_CACHE_TTL
        )
        self._count_cache = TTLCache(count_ttl if count_ttl is not None else settings.COUNT_CACHE_TTL)

    def repository(self, channel_id: str) -> MessageRepository:
        table = self.registry.get_table_name(channel_id)
        return MessageRepository(self.supabase, table, self.registry.table_has_read_flag(table))

    async def list_conversations(
        self,
        channel_id: str,
        limit: int = 20,
        refresh: bool = False,
    ) -> List[ConversationSummary]:
        """
        List the most recent conversations of a channel.

        Reads twice as many rows as conversations requested, so sessions with
        several recent messages still leave room for others.
        """
        cache_key = f"conversations-{channel_id}-{limit}"
        if not refresh:
            cached = self._conversation_cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Conversation cache hit: {cache_key}")
                return cached

        rows = self.repository(channel_id).find_recent(limit * 2)

        resolve_name = None
        if self.name_resolver is not None:
            resolve_name = self.name_resolver.resolve_cached

        summaries = group_conversations(rows, resolve_name=resolve_name)[:limit]

        if self.status_store is not None and summaries:
            statuses = await self.status_store.get_many(channel_id, [s.id for s in summaries])
            for summary in summaries:
                record = statuses.get(summary.id)
                if record is not None:
                    summary.status = record.status

        self._conversation_cache.set(cache_key, summaries)
        logger.info(f"✅ Loaded {len(summaries)} conversations for channel {channel_id}")
        return summaries

    async def get_messages(self, channel_id: str, session_id: str, limit: int = 200) -> List[ChatMessage]:
        rows = self.repository(channel_id).find_by_session(session_id, limit=limit)
        return rows_to_messages(rows)

    async def get_grouped_messages(self, channel_id: str, session_id: str, limit: int = 200) -> List[MessageGroup]:
        messages = await self.get_messages(channel_id, session_id, limit=limit)
        return group_consecutive_messages(messages)

    async def get_channel_counts(self, channel_id: str) -> ChannelCounts:
        """
        Distinct conversations and unread messages of a channel.

        Errors are logged and reported as zero counts.
        """
        cache_key = f"counts-{channel_id}"
        cached = self._count_cache.get(cache_key)
        if cached is not None:
            return cached

        repository = self.repository(channel_id)
        try:
            session_ids = repository.session_ids()
            counts = ChannelCounts(
                channel_id=channel_id,
                total_conversations=len(set(session_ids)),
                unread_messages=repository.count_unread(),
                total_messages=len(session_ids),
            )
        except Exception as e:
            logger.error(f"❌ Failed to count conversations for {channel_id}: {e}")
            return ChannelCounts(channel_id=channel_id)

        self._count_cache.set(cache_key, counts)
        return counts

    async def mark_conversation_read(self, channel_id: str, session_id: str) -> int:
        updated = self.repository(channel_id).mark_as_read(session_id)
        self.invalidate(channel_id)
        return updated

    def invalidate(self, channel_id: str) -> None:
        dropped = self._conversation_cache.invalidate_prefix(f"conversations-{channel_id}-")
        self._count_cache.invalidate(f"counts-{channel_id}")
        logger.debug(f"Invalidated {dropped} cached conversation lists for {channel_id}")

    def invalidate_all(self) -> None:
        self._conversation_cache.clear()
        self._count_cache.clear()


# Singleton instance
_conversation_service: Optional[ConversationService] = None


def get_conversation_service() -> ConversationService:
    """Get or create the ConversationService singleton"""
    global _conversation_service

    if _conversation_service is None:
        from chat_sync.services.contact_service import get_contact_name_resolver
        from chat_sync.services.status_store import get_status_store
        from chat_sync.services.supabase_client import get_supabase_client

        _conversation_service = ConversationService(
            get_supabase_client(),
            status_store=get_status_store(),
            name_resolver=get_contact_name_resolver(),
        )

    return _conversation_service
