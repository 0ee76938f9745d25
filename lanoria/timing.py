"""Clock abstraction used for every timer in the assistant.

All delays (debounce windows, alert delays, display windows, the periodic
interval) are scheduled callbacks, never blocking sleeps. Passing the clock in
lets tests drive time by hand.
"""

import asyncio
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def now(self) -> float: ...

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle: ...


class LoopClock:
    """Clock backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback, *args)


def cancel_handle(handle: TimerHandle | None) -> None:
    if handle is not None:
        handle.cancel()
