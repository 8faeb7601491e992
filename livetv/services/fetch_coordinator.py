"""
Fetch Coordination

Keeps each feed refresh single-flight: a refresh that is still running is not
restarted by the next scheduler tick or a manual trigger.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Any


logger = logging.getLogger(__name__)


class FetchCoordinator:
    """
    Coordinates refresh operations of one feed to prevent concurrent executions.

    Uses an internal asyncio.Lock; a caller that finds it held is skipped
    instead of queued, so two in-flight refreshes never race to publish.
    """

    def __init__(self, feed_name: str):
        self.feed_name = feed_name
        self._fetch_lock = asyncio.Lock()

    async def execute(self, fetch_func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Execute a refresh with concurrency protection.

        Args:
            fetch_func: Async function to execute

        Returns:
            Result from fetch_func, or a skip response if a refresh is already running

        Raises:
            Any exception raised by fetch_func
        """
        if self._fetch_lock.locked():
            logger.warning("%s refresh already in progress, skipping this request", self.feed_name)
            return {
                "status": "skipped",
                "feed": self.feed_name,
                "message": f"{self.feed_name} refresh already in progress",
            }

        async with self._fetch_lock:
            return await fetch_func()

    def is_fetching(self) -> bool:
        return self._fetch_lock.locked()
