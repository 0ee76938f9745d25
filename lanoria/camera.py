"""Live camera stream with background frame grabbing."""

import asyncio
import threading

import cv2
import numpy as np
from numpy.typing import NDArray

from lanoria.config import CameraConfig


class CameraStream:
    """Keeps the most recent camera frame available without blocking.

    Frames are read in a background thread so the asyncio loop that runs the
    analysis never waits on the device.
    """

    def __init__(self, config: CameraConfig) -> None:
        self.config = config
        self.cap: cv2.VideoCapture | None = None
        self._current_frame: NDArray[np.uint8] | None = None
        self._frame_lock = threading.Lock()
        self._running = False
        self._thread: threading.Thread | None = None

    def open(self) -> bool:
        print(f"[CAMERA] Opening camera: {self.config.device}")
        self.cap = cv2.VideoCapture(self.config.device)
        if not self.cap.isOpened():
            print(f"[CAMERA] Failed to open camera: {self.config.device}")
            self.cap = None
            return False

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        self.cap.set(cv2.CAP_PROP_FPS, self.config.fps)

        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, daemon=True)
        self._thread.start()
        return True

    def _capture_loop(self) -> None:
        while self._running and self.cap is not None and self.cap.isOpened():
            ret, frame = self.cap.read()
            if ret and frame is not None:
                if self.config.flip_horizontal:
                    frame = cv2.flip(frame, 1)
                if self.config.flip_vertical:
                    frame = cv2.flip(frame, 0)
                with self._frame_lock:
                    self._current_frame = frame

            # Small delay to prevent CPU hogging
            threading.Event().wait(0.01)

    def get_current_frame(self) -> NDArray[np.uint8] | None:
        """Get a copy of the most recent frame, or None before the first one."""
        with self._frame_lock:
            if self._current_frame is not None:
                return self._current_frame.copy()
        return None

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until the stream has produced a frame with real dimensions."""
        timeout = self.config.ready_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            frame = self.get_current_frame()
            if frame is not None and frame.size > 0:
                print(f"[CAMERA] Ready: {frame.shape[1]}x{frame.shape[0]}")
                return True
            await asyncio.sleep(0.05)
        print("[CAMERA] No frames received before timeout")
        return False

    def close(self) -> None:
        self._running = False

        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

        if self.cap is not None:
            self.cap.release()
            self.cap = None

        with self._frame_lock:
            self._current_frame = None
        print("[CAMERA] Camera released.")

    def __enter__(self) -> "CameraStream":
        self.open()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def is_opened(self) -> bool:
        return self.cap is not None and self.cap.isOpened() and self._running
