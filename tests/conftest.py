"""
Pytest configuration for Lanoria tests.

Time is driven by a manual clock; speech, sound, camera and endpoints are
fakes so every test is deterministic and offline.
"""

import asyncio
import itertools

import pytest

from lanoria.client import EmergencyReply
from lanoria.config import SpeechConfig, TimingConfig
from lanoria.feedback import AlertFeedback
from lanoria.orchestrator import AnalysisOrchestrator

FAKE_IMAGE = "data:image/jpeg;base64,/9j/AAAA"


class ManualHandle:
    def __init__(self, when, seq, callback, args):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self):
        self.time = 0.0
        self._timers = []
        self._seq = itertools.count()

    def now(self):
        return self.time

    def call_later(self, delay, callback, *args):
        handle = ManualHandle(self.time + delay, next(self._seq), callback, args)
        self._timers.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self._timers if not h.cancelled]

    def _next_due(self, target):
        due = [h for h in self._timers if not h.cancelled and h.when <= target]
        if not due:
            return None
        return min(due, key=lambda h: (h.when, h.seq))

    def advance_sync(self, seconds):
        """Fire due timers in order without yielding to the event loop."""
        target = self.time + seconds
        while (handle := self._next_due(target)) is not None:
            self._timers.remove(handle)
            self.time = handle.when
            handle.callback(*handle.args)
        self.time = target
        self._timers = self.pending

    async def advance(self, seconds):
        """Fire due timers in order, letting spawned tasks run after each one."""
        target = self.time + seconds
        await settle()
        while (handle := self._next_due(target)) is not None:
            self._timers.remove(handle)
            self.time = handle.when
            handle.callback(*handle.args)
            await settle()
        self.time = target
        self._timers = self.pending


async def settle(rounds: int = 20):
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeSynthesizer:
    def __init__(self):
        self.utterances = []
        self.callbacks = []
        self.cancels = 0

    @property
    def spoken(self):
        return [u.text for u in self.utterances]

    def speak(self, utterance, on_done):
        self.utterances.append(utterance)
        self.callbacks.append(on_done)

    def cancel(self):
        self.cancels += 1

    def finish(self, index=-1, error=None):
        self.callbacks[index](error)


class FakePlayer:
    def __init__(self):
        self.plays = 0

    def play(self):
        self.plays += 1

    def stop(self):
        pass


class FakeCapture:
    def __init__(self, image=FAKE_IMAGE):
        self.image = image
        self.calls = 0

    def capture(self):
        self.calls += 1
        return self.image


class FakeClient:
    """Endpoint stub; results are consumed in order, the last one repeats."""

    def __init__(self, results=None, emergency=None):
        self.results = list(results or [{"danger": False, "description": "Delante tuya hay una mesa"}])
        self.emergency_result = emergency or EmergencyReply(
            message="Emergencia: Persona ciega en un portal.", timestamp="2024-01-01T00:00:00Z"
        )
        self.analyze_calls = []
        self.emergency_calls = []
        self.gate = None

    async def analyze(self, image):
        self.analyze_calls.append(image)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result

    async def emergency(self, image):
        self.emergency_calls.append(image)
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(self.emergency_result, BaseException):
            raise self.emergency_result
        return self.emergency_result


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def synth():
    return FakeSynthesizer()


@pytest.fixture
def player():
    return FakePlayer()


@pytest.fixture
def feedback(synth, player):
    return AlertFeedback(SpeechConfig(), player, synth)


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def orchestrator(clock, capture, client, feedback):
    orch = AnalysisOrchestrator(TimingConfig(), capture, client, feedback, clock)
    yield orch
    orch.close()
