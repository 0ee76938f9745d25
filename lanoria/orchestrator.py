"""Analysis loop: capture -> analyze -> normalize -> alert / speak.

Owns the danger / emergency / analyzing state and every timer that drives it.
Everything runs on one asyncio loop; the only suspension points are the
endpoint round trips, so state changes between awaits are never interleaved.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Coroutine, Protocol

from lanoria.client import EmergencyReply, EndpointError
from lanoria.config import TimingConfig
from lanoria.feedback import AlertFeedback
from lanoria.normalizer import AnalysisResult, ResponseNormalizer
from lanoria.timing import Clock, TimerHandle, cancel_handle


class Mode(Enum):
    IDLE = "idle"
    SINGLE_SHOT_PENDING = "single_shot_pending"
    PERIODIC_RUNNING = "periodic_running"


@dataclass
class OrchestratorState:
    """Everything the UI shows about the current session."""

    mode: Mode = Mode.IDLE
    # Outstanding capture -> analyze round trips, by the mode that issued them
    oneshot_in_flight: int = 0
    periodic_in_flight: int = 0
    is_dangerous: bool = False
    is_emergency: bool = False
    last_description: str = ""
    last_emergency_message: str = ""
    periodic_handle: TimerHandle | None = None

    @property
    def in_flight(self) -> int:
        return self.oneshot_in_flight + self.periodic_in_flight

    @property
    def is_analyzing(self) -> bool:
        return self.in_flight > 0

    @property
    def periodic_running(self) -> bool:
        return self.mode == Mode.PERIODIC_RUNNING


class FrameSource(Protocol):
    def capture(self) -> str | None: ...


class AnalysisClient(Protocol):
    async def analyze(self, image: str) -> Any: ...

    async def emergency(self, image: str) -> EmergencyReply: ...


class AnalysisOrchestrator:
    """Schedules analysis cycles and sequences their audible results."""

    CAPTURE_FAILED = "No se pudo capturar la imagen"
    ANALYZE_FAILED = "Error al analizar la imagen"
    PROCESS_FAILED = "Error al procesar la imagen"
    EMERGENCY_PREFIX = "Mensaje de emergencia enviado. "
    EMERGENCY_FALLBACK = (
        "Emergencia: Persona ciega solicita asistencia inmediata. "
        "No se pudo analizar la situación visual."
    )

    def __init__(
        self,
        config: TimingConfig,
        capture: FrameSource,
        client: AnalysisClient,
        feedback: AlertFeedback,
        clock: Clock,
        normalizer: ResponseNormalizer | None = None,
    ) -> None:
        self.config = config
        self.capture = capture
        self.client = client
        self.feedback = feedback
        self.clock = clock
        self.normalizer = normalizer or ResponseNormalizer()

        self.state = OrchestratorState()

        # One handle per purpose; rescheduling always cancels the old one
        self._danger_speech: TimerHandle | None = None
        self._danger_reset: TimerHandle | None = None
        self._emergency_speech: TimerHandle | None = None
        self._emergency_reset: TimerHandle | None = None

        self._tasks: set[asyncio.Task] = set()
        self._emergency_pending = False
        self._periodic_epoch = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # One-shot analysis

    async def analyze_once(self) -> AnalysisResult | None:
        """Capture and analyze a single frame.

        Returns:
            The normalized result, or None when nothing was analyzed.
        """
        if self._closed:
            return None
        if self.state.is_analyzing:
            print("[ANALYZE] Analysis already in progress, ignoring request")
            return None

        if self.state.mode == Mode.IDLE:
            self.state.mode = Mode.SINGLE_SHOT_PENDING
        try:
            return await self._run_cycle(periodic=False)
        finally:
            if self.state.mode == Mode.SINGLE_SHOT_PENDING:
                self.state.mode = Mode.IDLE

    async def _run_cycle(self, periodic: bool) -> AnalysisResult | None:
        image = self.capture.capture()
        if image is None:
            print("[ANALYZE] No frame available, skipping cycle")
            if not periodic and not self._closed:
                self.feedback.speak(self.CAPTURE_FAILED)
            return None

        # stop_periodic() forgets trips from earlier periodic runs
        epoch = self._periodic_epoch
        if periodic:
            self.state.periodic_in_flight += 1
        else:
            self.state.oneshot_in_flight += 1
        try:
            raw = await self.client.analyze(image)
            result = self.normalizer.normalize(raw)
        except EndpointError as e:
            print(f"[ANALYZE] Failed to analyze frame: {e}")
            if not self._closed:
                self.feedback.speak(self.ANALYZE_FAILED)
            return None
        except Exception as e:
            print(f"[ANALYZE] Error analyzing frame: {e}")
            if not self._closed:
                self.feedback.speak(self.PROCESS_FAILED)
            return None
        finally:
            if not periodic:
                self.state.oneshot_in_flight -= 1
            elif epoch == self._periodic_epoch:
                self.state.periodic_in_flight -= 1

        if self._closed:
            print("[ANALYZE] Session closed, dropping result")
            return result

        print(f"[ANALYZE] danger={result.danger} description={result.description!r}")
        self._apply(result)
        return result

    def _apply(self, result: AnalysisResult) -> None:
        if not result.danger:
            # A calm result never shortens an active danger window
            self.state.last_description = result.description
            self.feedback.speak(result.description)
            return

        self.state.is_dangerous = True
        self.feedback.play_alert()

        # Let the alarm sound before the warning is spoken
        cancel_handle(self._danger_speech)
        self._danger_speech = self.clock.call_later(
            self.config.danger_speech_delay, self._announce_danger, result.description
        )

        cancel_handle(self._danger_reset)
        self._danger_reset = self.clock.call_later(self.config.danger_window, self._clear_danger)

    def _announce_danger(self, description: str) -> None:
        self._danger_speech = None
        self.state.last_description = description
        self.feedback.speak(description)

    def _clear_danger(self) -> None:
        self._danger_reset = None
        self.state.is_dangerous = False

    # Periodic mode

    def start_periodic(self) -> bool:
        """Enter periodic mode; no-op if it is already running."""
        if self._closed:
            return False
        if self.state.mode == Mode.PERIODIC_RUNNING:
            return False

        print(f"[ANALYZE] Periodic analysis every {self.config.periodic_interval}s")
        self.state.mode = Mode.PERIODIC_RUNNING
        self._spawn(self._run_cycle(periodic=True))
        self._schedule_tick()
        return True

    def stop_periodic(self) -> bool:
        if self.state.mode != Mode.PERIODIC_RUNNING:
            return False

        print("[ANALYZE] Periodic analysis stopped")
        cancel_handle(self.state.periodic_handle)
        self.state.periodic_handle = None
        self.state.mode = Mode.IDLE
        self.state.last_description = ""
        self.state.periodic_in_flight = 0
        self._periodic_epoch += 1
        return True

    def toggle_periodic(self) -> bool:
        """Start periodic mode if stopped, stop it if running.

        Returns:
            True if periodic mode is running afterwards.
        """
        if self.state.mode == Mode.PERIODIC_RUNNING:
            self.stop_periodic()
        else:
            self.start_periodic()
        return self.state.periodic_running

    def _schedule_tick(self) -> None:
        cancel_handle(self.state.periodic_handle)
        self.state.periodic_handle = self.clock.call_later(
            self.config.periodic_interval, self._on_tick
        )

    def _on_tick(self) -> None:
        self.state.periodic_handle = None
        if self._closed or self.state.mode != Mode.PERIODIC_RUNNING:
            return
        # Ticks do not wait for the previous round trip; the latest result shown wins
        self._spawn(self._run_cycle(periodic=True))
        self._schedule_tick()

    # Emergency

    async def trigger_emergency(self) -> str | None:
        """Capture the scene and announce an emergency message.

        Independent of periodic mode, which keeps running.

        Returns:
            The message that was announced, or None if the request was ignored.
        """
        if self._closed:
            return None
        if self._emergency_pending:
            print("[EMERGENCY] Emergency request already in progress")
            return None

        print("[EMERGENCY] Emergency triggered")
        self._emergency_pending = True
        self.state.is_emergency = True
        try:
            image = self.capture.capture()
            if image is None:
                print("[EMERGENCY] No frame available, using fallback message")
                message = self.EMERGENCY_FALLBACK
            else:
                message = await self._request_emergency(image)
        finally:
            self._emergency_pending = False

        if self._closed:
            # No reset timer will run after teardown
            self.state.is_emergency = False
            return message

        self.state.last_emergency_message = message
        self.feedback.play_alert()

        cancel_handle(self._emergency_speech)
        self._emergency_speech = self.clock.call_later(
            self.config.emergency_speech_delay, self._announce_emergency, message
        )

        cancel_handle(self._emergency_reset)
        self._emergency_reset = self.clock.call_later(
            self.config.emergency_window, self._clear_emergency
        )
        return message

    async def _request_emergency(self, image: str) -> str:
        try:
            reply = await self.client.emergency(image)
            return reply.message.strip() or self.EMERGENCY_FALLBACK
        except EndpointError as e:
            print(f"[EMERGENCY] Emergency endpoint failed: {e}")
            if isinstance(e.payload, dict) and e.payload.get("message"):
                return str(e.payload["message"])
            return self.EMERGENCY_FALLBACK
        except Exception as e:
            print(f"[EMERGENCY] Error requesting emergency message: {e}")
            return self.EMERGENCY_FALLBACK

    def _announce_emergency(self, message: str) -> None:
        self._emergency_speech = None
        self.feedback.speak(self.EMERGENCY_PREFIX + message)

    def _clear_emergency(self) -> None:
        self._emergency_reset = None
        self.state.is_emergency = False
        self.state.last_emergency_message = ""

    # Lifecycle

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every spawned analysis cycle to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Tear down: cancel every timer and any speech in progress.

        Round trips already on the wire are left to finish; their results are
        dropped.
        """
        if self._closed:
            return
        self._closed = True

        cancel_handle(self.state.periodic_handle)
        self.state.periodic_handle = None
        for handle in (
            self._danger_speech,
            self._danger_reset,
            self._emergency_speech,
            self._emergency_reset,
        ):
            cancel_handle(handle)
        self._danger_speech = None
        self._danger_reset = None
        self._emergency_speech = None
        self._emergency_reset = None

        self.state.mode = Mode.IDLE
        self.feedback.cancel()
        print("[ANALYZE] Session closed")
