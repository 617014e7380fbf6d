from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class ScriptLoadError(RuntimeError):
    """Raised when a transpiler or library script cannot be provisioned."""


class ResourceCache:
    """Load-once registry of page-wide resources.

    Each resource name maps to the task that provisions it. Concurrent callers
    share that task, so one resource is fetched at most once while a load is
    in flight or after it succeeded. Failed loads are evicted.

    Example:
        ```python
        cache = ResourceCache()
        await cache.ensure_loaded("Babel", load_babel)
        ```
    """

    def __init__(self) -> None:
        """Initialize an empty cache.

        Example:
            ```python
            cache = ResourceCache()
            ```
        """
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def ensure_loaded(self, name: str, loader: Callable[[], Awaitable[None]]) -> None:
        """Run `loader` once for `name` and wait until it has finished.

        Example:
            ```python
            await cache.ensure_loaded("uuid", lambda: inject("uuid"))
            ```
        """
        task = self._tasks.get(name)
        if task is None:
            logger.debug("Provisioning resource %s", name)
            task = asyncio.ensure_future(loader())
            self._tasks[name] = task
            task.add_done_callback(lambda done: self._evict_failed(name, done))
        # shield: one cancelled waiter must not cancel the shared load
        await asyncio.shield(task)

    def is_loaded(self, name: str) -> bool:
        """Return True when `name` finished loading successfully.

        Example:
            ```python
            cache.is_loaded("Babel")
            ```
        """
        task = self._tasks.get(name)
        return task is not None and task.done() and not task.cancelled() and task.exception() is None

    def pending(self) -> list[str]:
        """Return resource names whose load is still in flight.

        Example:
            ```python
            names = cache.pending()
            ```
        """
        return sorted(name for name, task in self._tasks.items() if not task.done())

    def evict(self, name: str) -> None:
        """Forget a finished load so the next `ensure_loaded` provisions it again.

        In-flight loads are kept; callers still share them.

        Example:
            ```python
            cache.evict("uuid")
            ```
        """
        task = self._tasks.get(name)
        if task is not None and task.done():
            logger.debug("Evicting resource %s", name)
            del self._tasks[name]

    def _evict_failed(self, name: str, task: asyncio.Task[None]) -> None:
        """Forget a failed load so a later run can retry it.

        Example:
            ```python
            task.add_done_callback(lambda done: cache._evict_failed("uuid", done))
            ```
        """
        if task.cancelled() or task.exception() is not None:
            if self._tasks.get(name) is task:
                del self._tasks[name]
            if not task.cancelled():
                logger.warning("Resource %s failed to load: %s", name, task.exception())
