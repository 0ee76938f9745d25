"""Still-frame capture: current camera frame -> JPEG data URI."""

import base64
from typing import Protocol

import cv2
import numpy as np
from numpy.typing import NDArray

from lanoria.config import CaptureConfig


class FrameSource(Protocol):
    def get_current_frame(self) -> NDArray[np.uint8] | None: ...


def encode_frame(
    frame: NDArray[np.uint8], quality: int = 80, mime_type: str = "image/jpeg"
) -> str | None:
    """Encode a BGR frame as a base64 data URI.

    Returns None for empty frames or when OpenCV refuses to encode.
    """
    if frame is None or frame.ndim < 2 or frame.shape[0] == 0 or frame.shape[1] == 0:
        return None

    if mime_type == "image/png":
        ok, buffer = cv2.imencode(".png", frame)
    else:
        ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        return None

    b64 = base64.b64encode(buffer.tobytes()).decode("ascii")
    return f"data:{mime_type};base64,{b64}"


class FrameCapture:
    def __init__(self, config: CaptureConfig, source: FrameSource) -> None:
        self.config = config
        self.source = source

    def capture(self) -> str | None:
        """Grab the source's current frame as an encoded still image."""
        try:
            frame = self.source.get_current_frame()
        except Exception as e:
            print(f"[CAMERA] Frame read failed: {e}")
            return None

        if frame is None:
            return None

        return encode_frame(frame, self.config.jpeg_quality, self.config.mime_type)
