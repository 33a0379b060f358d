"""
Refresh Coordination

Coalesces concurrent refreshes of the same configuration identity: the
first caller starts the refresh, later callers await the same task.
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RefreshCoordinator:
    """
    One pending refresh per identity.

    Different identities refresh independently and concurrently.
    """

    def __init__(self):
        """Initialize the coordinator with no refresh in flight."""
        self._pending: dict[str, asyncio.Task] = {}

    async def execute(self, identity: str, refresh_func: Callable[[], Awaitable[T]]) -> T:
        """
        Run refresh_func for identity, or join the refresh already running.

        Args:
            identity: Configuration identity digest
            refresh_func: Async function performing the refresh

        Returns:
            Result of the (possibly shared) refresh
        """
        if identity in self._pending:
            logger.debug(f"Refresh for {identity[:8]} already in progress, joining it")
        return await asyncio.shield(self.start(identity, refresh_func))

    def start(self, identity: str, refresh_func: Callable[[], Awaitable[T]]) -> asyncio.Task:
        """Start (or reuse) a refresh without awaiting it."""
        task = self._pending.get(identity)
        if task is None:
            task = asyncio.ensure_future(refresh_func())
            self._pending[identity] = task
            task.add_done_callback(lambda done: self._forget(identity, done))
        return task

    def _forget(self, identity: str, task: asyncio.Task) -> None:
        if self._pending.get(identity) is task:
            del self._pending[identity]

    def is_refreshing(self, identity: str) -> bool:
        """
        Check if a refresh is currently in progress for identity.

        Returns:
            True if a refresh is running, False otherwise
        """
        return identity in self._pending
