# SPDX-License-Identifier: MIT
"""The single mutator queue that serializes every graph edit.

All graph mutations run as callables drained from one FIFO. Asynchronous
work (mesh loads, heightmap data fetches) runs as asyncio tasks, and each
task's completion is submitted back into the queue instead of touching the
graph directly.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

Completion = Callable[["asyncio.Task[Any]"], None]


class MutatorQueue:
    """FIFO of graph edits plus the asyncio tasks feeding it."""

    def __init__(self) -> None:
        self._queue: deque[tuple[Callable[..., Any], tuple[Any, ...]]] = deque()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._unstarted: list[tuple[Coroutine[Any, Any, Any], Completion]] = []
        self._hooks: list[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def idle(self) -> bool:
        """True when nothing is queued and no task is outstanding."""
        return not self._queue and not self._tasks and not self._unstarted

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        """Queue a graph edit. Edits run in submission order."""
        self._queue.append((fn, args))

    def add_cycle_hook(self, hook: Callable[[], None]) -> None:
        """Register a callable that runs after every drained batch."""
        self._hooks.append(hook)

    def spawn(self, coro: Coroutine[Any, Any, Any], on_done: Completion) -> None:
        """Run `coro` as a task; `on_done(task)` is queued when it finishes.

        Without a running event loop the coroutine is held and started by the
        next run_until_idle().
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._unstarted.append((coro, on_done))
            return
        self._start(loop, coro, on_done)

    def _start(
        self,
        loop: asyncio.AbstractEventLoop,
        coro: Coroutine[Any, Any, Any],
        on_done: Completion,
    ) -> None:
        task = loop.create_task(coro)
        self._tasks.add(task)

        def _finished(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            self.submit(on_done, t)

        task.add_done_callback(_finished)

    def drain(self) -> int:
        """Apply every queued edit, then run the cycle hooks.

        An edit that raises is logged and skipped; later edits still run.

        Returns:
            Number of edits applied
        """
        count = 0
        while self._queue:
            fn, args = self._queue.popleft()
            try:
                fn(*args)
            except Exception:
                logger.exception("Failed to apply %s", getattr(fn, "__name__", fn))
            count += 1

        for hook in self._hooks:
            try:
                hook()
            except Exception:
                logger.exception("Cycle hook %s failed", getattr(hook, "__name__", hook))
        return count

    async def run_until_idle(self) -> None:
        """Drain the queue and wait for outstanding tasks until nothing is left."""
        loop = asyncio.get_running_loop()
        while True:
            unstarted, self._unstarted = self._unstarted, []
            for coro, on_done in unstarted:
                self._start(loop, coro, on_done)

            self.drain()

            if self._tasks:
                await asyncio.wait(set(self._tasks))
                # Let the done callbacks queue their completions
                await asyncio.sleep(0)
                continue
            if not self._queue and not self._unstarted:
                return

    def cancel_all(self) -> None:
        """Cancel outstanding tasks and drop unstarted coroutines."""
        for task in self._tasks:
            task.cancel()
        for coro, _ in self._unstarted:
            coro.close()
        self._unstarted.clear()


class RetryQueue:
    """Actions parked until their node name is free in the graph.

    Checked once per mutator cycle. Parking a name again replaces the
    earlier action.

    Args:
        is_free: Returns True when the name may be inserted
    """

    def __init__(self, is_free: Callable[[str], bool]):
        self._is_free = is_free
        self._parked: dict[str, Callable[[], None]] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._parked

    def __len__(self) -> int:
        return len(self._parked)

    def park(self, name: str, action: Callable[[], None]) -> None:
        self._parked[name] = action

    def cancel(self, name: str) -> bool:
        """Forget a parked action. Returns False if nothing was parked."""
        return self._parked.pop(name, None) is not None

    def check(self) -> None:
        """Run and forget every parked action whose name is now free."""
        for name in list(self._parked):
            if self._is_free(name):
                action = self._parked.pop(name)
                action()
