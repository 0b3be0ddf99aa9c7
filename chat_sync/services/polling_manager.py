"""
Polling Manager
One timer task per key, shared by every callback registered on that key
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from chat_sync.config import settings

logger = logging.getLogger(__name__)

PollCallback = Callable[[], Any]


class _Poller:
    def __init__(self, key: str, interval: float):
        self.key = key
        self.interval = interval
        self.callbacks: Dict[str, PollCallback] = {}
        self.task: Optional[asyncio.Task] = None


class PollingManager:
    """Deduplicates periodic polling per key"""

    def __init__(self, default_interval: Optional[float] = None):
        self.default_interval = default_interval or settings.POLL_INTERVAL_SECONDS
        self.pollers: Dict[str, _Poller] = {}
        self._callback_counter = 0

    def start_polling(self, key: str, callback: PollCallback, interval: Optional[float] = None) -> str:
        """
        Register a callback to run every interval seconds under key.

        The first callback for a key starts its timer; later callbacks share
        it (and its interval). Must be called from a running event loop.

        Returns:
            Callback id, used with stop_polling
        """
        poller = self.pollers.get(key)
        if poller is None:
            poller = _Poller(key, interval or self.default_interval)
            poller.task = asyncio.get_running_loop().create_task(self._run(poller))
            self.pollers[key] = poller
            logger.info(f"⏱️  Polling started for {key} every {poller.interval}s")

        self._callback_counter += 1
        callback_id = f"{key}_{self._callback_counter}_{int(time.time() * 1000)}"
        poller.callbacks[callback_id] = callback
        return callback_id

    def stop_polling(self, key: str, callback_id: str) -> None:
        """Remove a callback; the timer stops with the last callback"""
        poller = self.pollers.get(key)
        if poller is None:
            logger.warning(f"⚠️  No poller for {key}")
            return

        poller.callbacks.pop(callback_id, None)
        if not poller.callbacks:
            if poller.task is not None:
                poller.task.cancel()
            del self.pollers[key]
            logger.info(f"⏹️  Polling stopped for {key}")

    async def _run(self, poller: _Poller) -> None:
        while True:
            await asyncio.sleep(poller.interval)
            await self._tick(poller)

    async def _tick(self, poller: _Poller) -> None:
        for callback_id, callback in list(poller.callbacks.items()):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"❌ Polling callback {callback_id} failed: {e}")

    def get_active_pollers(self) -> List[str]:
        return list(self.pollers.keys())

    def callback_count(self, key: str) -> int:
        poller = self.pollers.get(key)
        return len(poller.callbacks) if poller else 0

    async def cleanup(self) -> None:
        tasks = [p.task for p in self.pollers.values() if p.task is not None]
        self.pollers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"🧹 Polling manager cleaned up ({len(tasks)} pollers)")
