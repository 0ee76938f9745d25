"""Route pointer input and classified gestures to the analysis loop."""

import asyncio
from typing import Any, Coroutine

from lanoria.config import GestureConfig
from lanoria.gestures import Gesture, GestureDisambiguator, GestureEvent, Region, region_for
from lanoria.orchestrator import AnalysisOrchestrator
from lanoria.timing import Clock


class SessionController:
    """Binds the capture surface to the orchestrator.

    Gesture map:
    - single tap, upper half: toggle periodic mode
    - single tap, lower half: analyze once
    - double tap: toggle periodic mode
    - triple tap or swipe up: emergency
    """

    def __init__(
        self,
        config: GestureConfig,
        orchestrator: AnalysisOrchestrator,
        clock: Clock,
        surface_height: float,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator
        self.surface_height = surface_height
        self.disambiguator = GestureDisambiguator(config, clock, self.handle_gesture)
        self._press: tuple[float, float] | None = None
        self._tasks: set[asyncio.Task] = set()

    def press(self, x: float, y: float) -> None:
        self._press = (x, y)
        self.disambiguator.touch_start(x, y)

    def release(self, x: float, y: float) -> None:
        if self._press is None:
            return
        start_x, start_y = self._press
        self._press = None

        if self.disambiguator.touch_end(x, y) is not None:
            return

        # Only a pointer that stayed put counts as a tap
        travel = max(abs(x - start_x), abs(y - start_y))
        if travel <= self.config.tap_slop:
            self.disambiguator.tap(x, y)

    def handle_gesture(self, event: GestureEvent) -> None:
        if event.gesture == Gesture.SINGLE_TAP:
            if region_for(event.y, self.surface_height) == Region.UPPER:
                self.orchestrator.toggle_periodic()
            else:
                self.request_analysis()
        elif event.gesture == Gesture.DOUBLE_TAP:
            self.orchestrator.toggle_periodic()
        elif event.gesture in (Gesture.TRIPLE_OR_MORE_TAP, Gesture.SWIPE_UP):
            self.request_emergency()

    def request_analysis(self) -> asyncio.Task:
        return self._spawn(self.orchestrator.analyze_once())

    def request_emergency(self) -> asyncio.Task:
        return self._spawn(self.orchestrator.trigger_emergency())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for gesture-triggered actions and their analysis cycles."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.orchestrator.drain()

    def close(self) -> None:
        self.disambiguator.reset()
        self.orchestrator.close()
