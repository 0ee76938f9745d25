"""Tap / swipe classification for the capture surface."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from lanoria.config import GestureConfig
from lanoria.timing import Clock, TimerHandle, cancel_handle


class Gesture(Enum):
    """Classified user gestures."""

    SINGLE_TAP = "single_tap"
    DOUBLE_TAP = "double_tap"
    TRIPLE_OR_MORE_TAP = "triple_or_more_tap"
    SWIPE_UP = "swipe_up"


class Region(Enum):
    """Halves of the capture surface."""

    UPPER = "upper"
    LOWER = "lower"


class WindowState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"


@dataclass
class GestureEvent:
    gesture: Gesture
    x: float = 0.0
    y: float = 0.0


def region_for(y: float, height: float) -> Region:
    """Map a vertical position to the upper or lower half of the surface."""
    return Region.UPPER if y < height / 2 else Region.LOWER


class GestureDisambiguator:
    """Classify taps within a debounce window, and swipes, into gestures.

    Taps and swipes are tracked independently: a swipe never touches the tap
    counter and a pending tap window never blocks a swipe.
    """

    def __init__(
        self,
        config: GestureConfig,
        clock: Clock,
        on_gesture: Callable[[GestureEvent], None],
    ) -> None:
        self.config = config
        self.clock = clock
        self.on_gesture = on_gesture

        # Tap window
        self.tap_count = 0
        self.window_start: float | None = None
        self._first_tap: tuple[float, float] = (0.0, 0.0)
        self._debounce: TimerHandle | None = None

        # Swipe track
        self._touch_start: tuple[float, float, float] | None = None

    @property
    def state(self) -> WindowState:
        return WindowState.ACCUMULATING if self.tap_count > 0 else WindowState.IDLE

    def tap(self, x: float = 0.0, y: float = 0.0) -> None:
        """Register one raw tap."""
        if not self.config.multi_tap:
            self._emit(Gesture.SINGLE_TAP, x, y)
            return

        if self.tap_count == 0:
            self.window_start = self.clock.now()
            self._first_tap = (x, y)
        self.tap_count += 1

        # Each tap refreshes the single debounce timer
        cancel_handle(self._debounce)
        self._debounce = self.clock.call_later(self.config.debounce, self._classify)

    def _classify(self) -> None:
        count = self.tap_count
        x, y = self._first_tap
        self._reset_window()

        if count == 1:
            self._emit(Gesture.SINGLE_TAP, x, y)
        elif count == 2:
            self._emit(Gesture.DOUBLE_TAP, x, y)
        elif count >= 3:
            self._emit(Gesture.TRIPLE_OR_MORE_TAP, x, y)

    def touch_start(self, x: float, y: float) -> None:
        self._touch_start = (x, y, self.clock.now())

    def touch_end(self, x: float, y: float) -> Gesture | None:
        """Finish a touch; emits SWIPE_UP if it was a fast upward drag."""
        if self._touch_start is None:
            return None

        start_x, start_y, started = self._touch_start
        self._touch_start = None

        rise = start_y - y
        duration = self.clock.now() - started
        if rise >= self.config.swipe_min_distance and duration <= self.config.swipe_max_duration:
            self._emit(Gesture.SWIPE_UP, start_x, start_y)
            return Gesture.SWIPE_UP
        return None

    def reset(self) -> None:
        """Drop any pending window and touch without emitting."""
        self._reset_window()
        self._touch_start = None

    def _reset_window(self) -> None:
        cancel_handle(self._debounce)
        self._debounce = None
        self.tap_count = 0
        self.window_start = None

    def _emit(self, gesture: Gesture, x: float, y: float) -> None:
        print(f"[GESTURE] {gesture.value} at ({x:.0f}, {y:.0f})")
        self.on_gesture(GestureEvent(gesture=gesture, x=x, y=y))
