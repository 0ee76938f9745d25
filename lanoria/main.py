"""Lanoria - camera assistant session.

Mouse presses on the camera window stand in for touches:
- click lower half: describe what is in front
- click upper half / double click: start or stop automatic descriptions
- triple click or fast drag upward: emergency message
"""

import argparse
import asyncio

import cv2

from lanoria.camera import CameraStream
from lanoria.capture import FrameCapture
from lanoria.client import VisionClient
from lanoria.config import Config
from lanoria.controller import SessionController
from lanoria.feedback import AlarmPlayer, AlertFeedback, Pyttsx3Synthesizer
from lanoria.orchestrator import AnalysisOrchestrator
from lanoria.overlay import StatusOverlay
from lanoria.timing import LoopClock

WINDOW_NAME = "Lanoria"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Lanoria - Vision assistant")
    parser.add_argument(
        "--config",
        type=str,
        default="configs/config.yaml",
        help="Path to config file",
    )
    parser.add_argument(
        "--device",
        type=str,
        default=None,
        help="Camera index or stream URL",
    )
    parser.add_argument(
        "--server",
        type=str,
        default=None,
        help="Base URL of the vision gateway",
    )
    parser.add_argument(
        "--mode",
        choices=["danger", "plain"],
        default=None,
        help="Analysis mode: danger-aware or plain description",
    )
    parser.add_argument(
        "--no-speech",
        action="store_true",
        help="Print descriptions instead of speaking them",
    )
    parser.add_argument(
        "--no-alert",
        action="store_true",
        help="Disable the alarm sound",
    )
    return parser.parse_args()


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    if args.device is not None:
        config.camera.device = int(args.device) if args.device.isdigit() else args.device
    if args.server is not None:
        config.endpoint.base_url = args.server
    if args.mode is not None:
        config.endpoint.mode = args.mode
    if args.no_speech:
        config.speech.enabled = False
    if args.no_alert:
        config.alert.enabled = False
    return config


async def run_session(config: Config) -> int:
    loop = asyncio.get_running_loop()
    clock = LoopClock(loop)

    camera = CameraStream(config.camera)
    if not camera.open():
        return 1
    if not await camera.wait_ready():
        camera.close()
        return 1

    frame = camera.get_current_frame()
    surface_height = frame.shape[0] if frame is not None else config.camera.height

    synthesizer = Pyttsx3Synthesizer(config.speech) if config.speech.enabled else None
    player = AlarmPlayer(config.alert) if config.alert.enabled else None
    feedback = AlertFeedback(config.speech, player, synthesizer, loop)

    client = VisionClient(config.endpoint)
    orchestrator = AnalysisOrchestrator(
        config.timing,
        FrameCapture(config.capture, camera),
        client,
        feedback,
        clock,
    )
    controller = SessionController(config.gestures, orchestrator, clock, surface_height)
    overlay = StatusOverlay()

    def on_mouse(event: int, x: int, y: int, flags: int, param: object) -> None:
        if event == cv2.EVENT_LBUTTONDOWN:
            controller.press(x, y)
        elif event == cv2.EVENT_LBUTTONUP:
            controller.release(x, y)

    cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
    cv2.setMouseCallback(WINDOW_NAME, on_mouse)

    print("\nSession started. Click to analyze, 'q' to quit.")
    print("  space - analyze once | p - automatic mode | e - emergency")

    try:
        while True:
            frame = camera.get_current_frame()
            if frame is not None:
                output = overlay.render(frame, orchestrator.state, feedback.is_speaking)
                cv2.imshow(WINDOW_NAME, output)

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q") or key == 27:  # q or ESC
                break
            elif key == ord(" "):
                controller.request_analysis()
            elif key == ord("p"):
                orchestrator.toggle_periodic()
            elif key == ord("e"):
                controller.request_emergency()

            # Yield to timers, speech callbacks and pending round trips
            await asyncio.sleep(0.03)
    finally:
        controller.close()
        client.close()
        camera.close()
        cv2.destroyAllWindows()

    return 0


def main() -> int:
    args = parse_args()
    config = apply_overrides(Config.from_yaml(args.config), args)
    return asyncio.run(run_session(config))


if __name__ == "__main__":
    raise SystemExit(main())
