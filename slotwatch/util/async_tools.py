"""
Async Hygiene Tools
Cooperative cancellation tokens and supervised task management for watchers.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, TypeVar

logger = logging.getLogger(__name__)

# Live watcher tasks by name; entries drop out when the task finishes
_supervised_tasks: Dict[str, asyncio.Task] = {}

T = TypeVar('T')


class CancellationToken:
    """
    Cooperative cancellation shared by every task spawned for one watcher.

    ``cancel()`` is the single broadcast point: it flips the flag, wakes
    ``wait()`` callers and runs registered callbacks (which is how ``guard``
    aborts in-flight network calls). Cancelling twice is a no-op.
    """

    def __init__(self):
        self._cancelled = False
        self._event = asyncio.Event()
        self._callbacks: List[Callable[[], Any]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"[async_tools] Cancellation callback failed: {e}")

    def add_callback(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """Run ``callback`` on cancel (immediately if already cancelled). Returns a remover."""
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return remove

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``, cancelling it as soon as the token is cancelled."""
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise asyncio.CancelledError()

        task = asyncio.ensure_future(awaitable)
        remove = self.add_callback(task.cancel)
        try:
            return await task
        finally:
            remove()


def create_supervised_task(coro: Coroutine[Any, Any, T], *, name: str) -> "asyncio.Task[T]":
    """
    Run a watcher coroutine as a named task whose crash or cancellation is logged.

    Args:
        coro: The orchestration coroutine
        name: Unique live name, e.g. ``watcher:account:<address>:<id>``

    Returns:
        The created task

    Raises:
        ValueError: If a live task with the same name already exists
    """
    if name in _supervised_tasks:
        coro.close()
        raise ValueError(f"Task '{name}' already exists")

    async def _supervised_wrapper():
        try:
            return await coro
        except asyncio.CancelledError:
            logger.debug(f"[async_tools] Task '{name}' cancelled")
            raise
        except Exception as e:
            logger.error(f"[async_tools] Task '{name}' failed: {e}")
            raise

    task = asyncio.get_running_loop().create_task(_supervised_wrapper(), name=name)
    _supervised_tasks[name] = task
    task.add_done_callback(lambda _t: _supervised_tasks.pop(name, None))
    return task
