"""
Shellcore Cooperative Scheduler

Single-threaded cooperative scheduling on top of asyncio:
- Task spawning and draining for background jobs
- Cancel signals checked at explicit suspension points
- Periodic yielding for long loops

Nothing here uses threads; every job runs on the one event loop and
only gives up control at an ``await``.

Version: 1.0.0
"""

import asyncio
from typing import Any, Awaitable, Coroutine, Optional, Set

from shellcore.exceptions import CommandCancelled
from shellcore.logger import get_logger


class CancelSignal:
    """
    Cooperative cancellation and pause flag for one command run.

    Commands never get unwound from the outside. They call
    ``await signal.checkpoint()`` at suspension points, which blocks
    while the job is paused and raises CommandCancelled once the
    signal has fired.

    Example:
        >>> signal = CancelSignal()
        >>> signal.cancel("killed")
        >>> signal.cancelled
        True
    """

    def __init__(self):
        self._cancelled = False
        self._reason = "Cancelled"
        self._cancel_event = asyncio.Event()
        self._running_event = asyncio.Event()
        self._running_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def paused(self) -> bool:
        return not self._running_event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "Cancelled") -> None:
        """Fire the signal; paused waiters are released so they can exit."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        self._cancel_event.set()
        self._running_event.set()

    def pause(self) -> None:
        if not self._cancelled:
            self._running_event.clear()

    def resume(self) -> None:
        self._running_event.set()

    def raise_if_cancelled(self) -> None:
        """Raise CommandCancelled without yielding."""
        if self._cancelled:
            raise CommandCancelled(self._reason)

    async def checkpoint(self) -> None:
        """
        Suspension point.

        Yields to the loop, waits out a pause, then raises if cancelled.

        Raises:
            CommandCancelled: If the signal has fired
        """
        await asyncio.sleep(0)
        while self.paused:
            await self._running_event.wait()
        self.raise_if_cancelled()

    async def sleep(self, seconds: float) -> None:
        """
        Sleep for ``seconds`` unless cancelled first.

        Raises:
            CommandCancelled: If the signal fires during the sleep
        """
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            pass
        await self.checkpoint()

    async def wait_for(self, awaitable: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """
        Await ``awaitable`` while honouring cancellation and an optional timeout.

        Timeout expiry is reported as cancellation.

        Raises:
            CommandCancelled: On cancel or timeout
        """
        work = asyncio.ensure_future(awaitable)
        cancel_waiter = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, cancel_waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_waiter.cancel()

        if work in done:
            return work.result()

        work.cancel()
        if self._cancelled:
            raise CommandCancelled(self._reason)
        raise CommandCancelled("Timed out")


class StepYielder:
    """
    Yields to the loop every ``interval`` steps of a long loop.

    Example:
        >>> yielder = StepYielder(1000, signal)
        >>> for line in lines:
        ...     await yielder.step()
    """

    def __init__(self, interval: int = 1000, signal: Optional[CancelSignal] = None):
        self._interval = max(1, interval)
        self._signal = signal
        self._steps = 0

    @property
    def steps(self) -> int:
        return self._steps

    async def step(self) -> None:
        self._steps += 1
        if self._steps % self._interval:
            return
        if self._signal is not None:
            await self._signal.checkpoint()
        else:
            await asyncio.sleep(0)


class CooperativeScheduler:
    """
    Keeps track of background tasks spawned on the running loop.

    Background pipelines interleave with the foreground only where they
    await, so the scheduler never needs locks.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self._logger = get_logger('scheduler')

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and track it."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._logger.debug("Spawned task", context={'name': name})
        return task

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every tracked task to finish.

        Returns:
            True if all tasks finished within ``timeout``
        """
        tasks = [task for task in self._tasks if not task.done()]
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending
