"""
Realtime Subscription Manager

Multiplexes any number of subscribers onto a single Supabase realtime channel
per table, so a table is subscribed to once no matter how many dashboards
watch it.
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from realtime import RealtimeSubscribeStates

from chat_sync.config import settings

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Dict[str, Any]], Any]
ClientFactory = Callable[[], Awaitable[Any]]


class RealtimeSubscriptionError(Exception):
    """Raised when a table subscription cannot be established"""
    pass


class _TableSubscription:
    def __init__(self, table: str, channel: Any):
        self.table = table
        self.channel = channel
        self.callbacks: Dict[str, ChangeCallback] = {}
        self.is_active = False


class RealtimeSubscriptionManager:
    """One postgres_changes channel per table, fanned out to callbacks"""

    def __init__(self, client_factory: Optional[ClientFactory] = None, subscribe_timeout: Optional[float] = None):
        """
        Initialize Realtime Subscription Manager

        Args:
            client_factory: Coroutine returning an async Supabase client
            subscribe_timeout: Seconds to wait for SUBSCRIBED
        """
        if client_factory is None:
            from chat_sync.services.supabase_client import get_async_supabase_client
            client_factory = get_async_supabase_client

        self._client_factory = client_factory
        self._client = None
        self.subscribe_timeout = subscribe_timeout or settings.REALTIME_SUBSCRIBE_TIMEOUT
        self.subscriptions: Dict[str, _TableSubscription] = {}
        self._callback_counter = 0
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    async def _get_client(self):
        if self._client is None:
            self._client = await self._client_factory()
        return self._client

    def _next_callback_id(self, table: str) -> str:
        self._callback_counter += 1
        return f"{table}_{self._callback_counter}_{int(time.time() * 1000)}"

    async def subscribe(self, table: str, callback: ChangeCallback) -> str:
        """
        Register a callback for row changes of a table.

        Returns:
            Callback id, used to unsubscribe

        Raises:
            RealtimeSubscriptionError: If the channel fails to subscribe
        """
        async with self._lock:
            subscription = self.subscriptions.get(table)
            if subscription is None:
                subscription = await self._open_channel(table)
                self.subscriptions[table] = subscription

            callback_id = self._next_callback_id(table)
            subscription.callbacks[callback_id] = callback

        logger.info(f"📡 Subscribed {callback_id} to {table} ({len(subscription.callbacks)} callbacks)")
        return callback_id

    async def _open_channel(self, table: str) -> _TableSubscription:
        try:
            client = await self._get_client()
        except Exception as e:
            logger.error(f"❌ Realtime client unavailable for {table}: {e}")
            raise RealtimeSubscriptionError(f"Realtime client unavailable: {e}")

        channel_name = f"realtime_{table}_{int(time.time() * 1000)}"
        channel = client.channel(channel_name)
        subscription = _TableSubscription(table, channel)

        loop = asyncio.get_running_loop()
        subscribed: asyncio.Future = loop.create_future()

        def on_status(status, error=None):
            logger.debug(f"Realtime channel {channel_name} status: {status}")
            if status == RealtimeSubscribeStates.SUBSCRIBED:
                subscription.is_active = True
                if not subscribed.done():
                    subscribed.set_result(True)
            elif status in (RealtimeSubscribeStates.CHANNEL_ERROR, RealtimeSubscribeStates.TIMED_OUT):
                subscription.is_active = False
                if not subscribed.done():
                    subscribed.set_exception(
                        RealtimeSubscriptionError(f"Channel {channel_name} failed: {error or status}")
                    )
            elif status == RealtimeSubscribeStates.CLOSED:
                subscription.is_active = False

        channel.on_postgres_changes(
            "*",
            schema="public",
            table=table,
            callback=lambda payload: self._dispatch(table, payload),
        )

        try:
            await channel.subscribe(on_status)
            await asyncio.wait_for(subscribed, timeout=self.subscribe_timeout)
        except asyncio.TimeoutError:
            await self._remove_channel(channel)
            logger.error(f"❌ Timed out subscribing to {table}")
            raise RealtimeSubscriptionError(f"Timed out subscribing to {table}")
        except Exception as e:
            await self._remove_channel(channel)
            logger.error(f"❌ Failed to subscribe to {table}: {e}")
            if isinstance(e, RealtimeSubscriptionError):
                raise
            raise RealtimeSubscriptionError(str(e))

        logger.info(f"✅ Realtime channel open: {channel_name}")
        return subscription

    def _dispatch(self, table: str, payload: Dict[str, Any]) -> None:
        """Deliver a change to every callback of the table; one failure does not stop the rest"""
        subscription = self.subscriptions.get(table)
        if subscription is None:
            return

        for callback_id, callback in list(subscription.callbacks.items()):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception as e:
                logger.error(f"❌ Realtime callback {callback_id} failed: {e}")

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"❌ Realtime callback task failed: {task.exception()}")

    async def unsubscribe(self, table: str, callback_id: str) -> None:
        """Remove a callback; the table channel is closed with its last callback"""
        async with self._lock:
            subscription = self.subscriptions.get(table)
            if subscription is None:
                logger.warning(f"⚠️  No realtime subscription for {table}")
                return

            subscription.callbacks.pop(callback_id, None)
            if subscription.callbacks:
                return

            del self.subscriptions[table]
            await self._remove_channel(subscription.channel)
            logger.info(f"🔌 Realtime channel for {table} closed")

    async def _remove_channel(self, channel: Any) -> None:
        try:
            client = await self._get_client()
            await client.remove_channel(channel)
        except Exception as e:
            logger.error(f"❌ Failed to remove realtime channel: {e}")

    def get_active_subscriptions(self) -> List[str]:
        return [table for table, sub in self.subscriptions.items() if sub.is_active]

    def callback_count(self, table: str) -> int:
        subscription = self.subscriptions.get(table)
        return len(subscription.callbacks) if subscription else 0

    async def cleanup(self) -> None:
        async with self._lock:
            subscriptions = list(self.subscriptions.values())
            self.subscriptions.clear()
            for subscription in subscriptions:
                await self._remove_channel(subscription.channel)

        for task in list(self._tasks):
            task.cancel()
        logger.info(f"🧹 Realtime manager cleaned up ({len(subscriptions)} channels)")
