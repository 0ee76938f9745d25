"""
Tests for pointer input and gesture routing
"""

import pytest

from lanoria.config import GestureConfig
from lanoria.controller import SessionController
from lanoria.gestures import Gesture, GestureEvent
from lanoria.orchestrator import Mode

HEIGHT = 800


@pytest.fixture
def controller(orchestrator, clock):
    ctrl = SessionController(GestureConfig(), orchestrator, clock, HEIGHT)
    yield ctrl
    ctrl.close()


def click(controller, x, y):
    controller.press(x, y)
    controller.release(x, y)


class TestGestureRouting:
    async def test_upper_single_tap_toggles_periodic(self, controller, orchestrator, client):
        controller.handle_gesture(GestureEvent(Gesture.SINGLE_TAP, 100, 100))
        await controller.drain()

        assert orchestrator.state.mode == Mode.PERIODIC_RUNNING
        assert len(client.analyze_calls) == 1

        controller.handle_gesture(GestureEvent(Gesture.SINGLE_TAP, 100, 100))
        assert orchestrator.state.mode == Mode.IDLE

    async def test_lower_single_tap_analyzes_once(self, controller, orchestrator, client, synth):
        controller.handle_gesture(GestureEvent(Gesture.SINGLE_TAP, 100, 700))
        await controller.drain()

        assert len(client.analyze_calls) == 1
        assert orchestrator.state.mode == Mode.IDLE
        assert synth.spoken == ["Delante tuya hay una mesa"]

    async def test_double_tap_toggles_periodic(self, controller, orchestrator):
        controller.handle_gesture(GestureEvent(Gesture.DOUBLE_TAP, 100, 700))
        assert orchestrator.state.periodic_running

        controller.handle_gesture(GestureEvent(Gesture.DOUBLE_TAP, 100, 100))
        assert not orchestrator.state.periodic_running
        await controller.drain()

    @pytest.mark.parametrize("gesture", [Gesture.TRIPLE_OR_MORE_TAP, Gesture.SWIPE_UP])
    async def test_emergency_gestures(self, controller, orchestrator, client, gesture):
        controller.handle_gesture(GestureEvent(gesture, 100, 700))
        await controller.drain()

        assert len(client.emergency_calls) == 1
        assert orchestrator.state.is_emergency


class TestPointerInput:
    async def test_click_becomes_single_tap(self, controller, clock, client):
        click(controller, 200, 700)
        await clock.advance(0.5)
        await controller.drain()

        assert len(client.analyze_calls) == 1

    async def test_two_clicks_become_double_tap(self, controller, orchestrator, clock):
        click(controller, 200, 700)
        await clock.advance(0.1)
        click(controller, 200, 700)
        await clock.advance(0.5)

        assert orchestrator.state.periodic_running
        orchestrator.stop_periodic()
        await controller.drain()

    async def test_three_clicks_trigger_emergency(self, controller, orchestrator, clock, client):
        for _ in range(3):
            click(controller, 200, 700)
            await clock.advance(0.1)
        await clock.advance(0.5)
        await controller.drain()

        assert len(client.emergency_calls) == 1
        assert client.analyze_calls == []

    async def test_upward_drag_triggers_emergency(self, controller, clock, client):
        controller.press(200, 700)
        await clock.advance(0.2)
        controller.release(200, 600)
        await controller.drain()

        assert len(client.emergency_calls) == 1
        # A swipe does not also count as a tap
        await clock.advance(1.0)
        assert client.analyze_calls == []

    async def test_sideways_drag_is_ignored(self, controller, clock, client):
        controller.press(100, 700)
        await clock.advance(0.1)
        controller.release(300, 700)
        await clock.advance(1.0)
        await controller.drain()

        assert client.analyze_calls == []
        assert client.emergency_calls == []

    async def test_small_jitter_is_still_a_tap(self, controller, clock, client):
        controller.press(200, 700)
        controller.release(205, 706)
        await clock.advance(0.5)
        await controller.drain()

        assert len(client.analyze_calls) == 1

    def test_release_without_press(self, controller, clock):
        controller.release(10, 10)
        assert clock.pending == []


class TestKeyboardActions:
    async def test_request_analysis(self, controller, client):
        await controller.request_analysis()
        assert len(client.analyze_calls) == 1

    async def test_request_emergency(self, controller, client):
        message = await controller.request_emergency()
        assert message == "Emergencia: Persona ciega en un portal."

    async def test_close_stops_everything(self, controller, orchestrator, clock):
        controller.press(10, 10)
        controller.release(10, 10)
        orchestrator.start_periodic()
        controller.close()

        assert clock.pending == []
        assert orchestrator.state.mode == Mode.IDLE
        await controller.drain()
