"""Render the session state on top of the camera view."""

import textwrap
import unicodedata

import cv2
import numpy as np
from numpy.typing import NDArray

from lanoria.orchestrator import OrchestratorState


def to_ascii(text: str) -> str:
    """Hershey fonts only cover ASCII; fold accents and drop the rest."""
    folded = unicodedata.normalize("NFKD", text)
    return folded.encode("ascii", "ignore").decode("ascii")


class StatusOverlay:
    """Draws analysis / danger / emergency banners and the last description."""

    # Colors (BGR)
    COLOR_ANALYZING = (235, 99, 37)  # Blue
    COLOR_DANGER = (38, 38, 220)  # Red
    COLOR_DANGER_DARK = (27, 27, 127)
    COLOR_WARNING = (71, 224, 253)  # Yellow
    COLOR_TEXT = (255, 255, 255)
    COLOR_BG = (0, 0, 0)
    COLOR_PERIODIC = (94, 197, 34)  # Green

    def __init__(self, font_scale: float = 0.7, wrap_width: int = 60) -> None:
        self.font_scale = font_scale
        self.wrap_width = wrap_width

    def render(
        self,
        frame: NDArray[np.uint8],
        state: OrchestratorState,
        is_speaking: bool = False,
    ) -> NDArray[np.uint8]:
        output = frame.copy()

        if state.is_emergency:
            self._draw_emergency(output, state.last_emergency_message)
        elif state.is_analyzing:
            label = "Analizando peligros..." if state.is_dangerous else "Analizando imagen..."
            color = self.COLOR_DANGER if state.is_dangerous else self.COLOR_ANALYZING
            self._draw_banner(output, label, color)
        elif state.is_dangerous:
            self._draw_banner(output, "PELIGRO!", self.COLOR_DANGER, border=self.COLOR_WARNING)

        if state.periodic_running:
            self._draw_periodic_indicator(output)

        if state.last_description:
            self._draw_description(output, state, is_speaking)

        return output

    def _draw_banner(
        self,
        frame: NDArray[np.uint8],
        text: str,
        color: tuple[int, int, int],
        border: tuple[int, int, int] | None = None,
    ) -> None:
        h, w = frame.shape[:2]
        overlay = frame.copy()
        cv2.rectangle(overlay, (10, 10), (w - 10, 60), color, -1)
        cv2.addWeighted(overlay, 0.9, frame, 0.1, 0, frame)
        if border is not None:
            cv2.rectangle(frame, (10, 10), (w - 10, 60), border, 2)
        cv2.putText(
            frame, to_ascii(text), (25, 45),
            cv2.FONT_HERSHEY_SIMPLEX, self.font_scale, self.COLOR_TEXT, 2, cv2.LINE_AA
        )

    def _draw_emergency(self, frame: NDArray[np.uint8], message: str) -> None:
        h, w = frame.shape[:2]
        lines = ["EMERGENCIA"] + textwrap.wrap(to_ascii(message), self.wrap_width)
        line_height = int(30 * self.font_scale / 0.7)
        bottom = 20 + line_height * (len(lines) + 1)

        overlay = frame.copy()
        cv2.rectangle(overlay, (10, 10), (w - 10, bottom), self.COLOR_DANGER_DARK, -1)
        cv2.addWeighted(overlay, 0.95, frame, 0.05, 0, frame)
        cv2.rectangle(frame, (10, 10), (w - 10, bottom), self.COLOR_WARNING, 2)

        y = 10 + line_height
        for i, line in enumerate(lines):
            thickness = 2 if i == 0 else 1
            cv2.putText(
                frame, line, (25, y),
                cv2.FONT_HERSHEY_SIMPLEX, self.font_scale, self.COLOR_TEXT, thickness, cv2.LINE_AA
            )
            y += line_height

    def _draw_periodic_indicator(self, frame: NDArray[np.uint8]) -> None:
        h, w = frame.shape[:2]
        cv2.circle(frame, (w - 30, 90), 10, self.COLOR_PERIODIC, -1)
        cv2.putText(
            frame, "AUTO", (w - 95, 96),
            cv2.FONT_HERSHEY_SIMPLEX, 0.5, self.COLOR_PERIODIC, 1, cv2.LINE_AA
        )

    def _draw_description(
        self, frame: NDArray[np.uint8], state: OrchestratorState, is_speaking: bool
    ) -> None:
        h, w = frame.shape[:2]
        if state.is_dangerous:
            header = "Alerta de seguridad..." if is_speaking else "Alerta de peligro"
            bg = self.COLOR_DANGER_DARK
        else:
            header = "Hablando..." if is_speaking else "Descripcion"
            bg = self.COLOR_BG

        lines = textwrap.wrap(to_ascii(state.last_description), self.wrap_width)[:4]
        line_height = int(26 * self.font_scale / 0.7)
        top = h - 20 - line_height * (len(lines) + 1)

        overlay = frame.copy()
        cv2.rectangle(overlay, (10, top), (w - 10, h - 10), bg, -1)
        cv2.addWeighted(overlay, 0.9, frame, 0.1, 0, frame)
        if state.is_dangerous:
            cv2.rectangle(frame, (10, top), (w - 10, h - 10), self.COLOR_DANGER, 2)

        y = top + line_height
        cv2.putText(
            frame, header, (25, y),
            cv2.FONT_HERSHEY_SIMPLEX, 0.5, self.COLOR_WARNING if state.is_dangerous else self.COLOR_PERIODIC, 1, cv2.LINE_AA
        )
        for line in lines:
            y += line_height
            cv2.putText(
                frame, line, (25, y),
                cv2.FONT_HERSHEY_SIMPLEX, self.font_scale * 0.8, self.COLOR_TEXT, 1, cv2.LINE_AA
            )
