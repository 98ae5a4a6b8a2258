"""
Cancellable debounce timer for asyncio callers.

Each Debouncer holds at most one pending call. Triggering again cancels the
pending call and restarts the delay with the newest arguments.
"""

import asyncio
import inspect
from typing import Any, Callable

from repo_roster.console import console


class Debouncer:
    """Delay a callback until triggers stop arriving for ``delay`` seconds."""

    def __init__(self, delay: float, callback: Callable[..., Any]):
        """
        Args:
            delay: Quiet period in seconds.
            callback: Plain function or coroutine function to call.
        """
        self.delay = delay
        self.callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        """Whether a call is scheduled and has not fired yet."""
        return self._handle is not None

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        """(Re)schedule the callback. Must be called from a running event loop."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire, args, kwargs)

    def cancel(self) -> None:
        """Cancel the pending call, if any. A call already running is not interrupted."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def wait(self) -> Any:
        """Wait for the last fired coroutine callback to finish and return its result."""
        if self._task is None:
            return None
        return await self._task

    def _fire(self, args: tuple, kwargs: dict) -> None:
        self._handle = None
        result = self.callback(*args, **kwargs)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            task.add_done_callback(self._report_failure)
            self._task = task

    @staticmethod
    def _report_failure(task: asyncio.Task) -> None:
        # Retrieves the exception so superseded tasks nobody awaits stay quiet
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            console.print(f"[yellow]⚠️  Debounced call failed: {exc}[/yellow]")
