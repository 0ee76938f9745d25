from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field


class CameraConfig(BaseModel):
    device: int | str = 0
    width: int = 1920
    height: int = 1080
    fps: int = 30
    flip_horizontal: bool = False
    flip_vertical: bool = False
    ready_timeout: float = 5.0


class CaptureConfig(BaseModel):
    jpeg_quality: int = 80
    mime_type: str = "image/jpeg"


class SpeechConfig(BaseModel):
    """Configuration for spoken feedback (pyttsx3)."""

    enabled: bool = True
    language: str = "es-ES"
    rate: float = 1.4  # Faster than normal for quicker feedback
    pitch: float = 1.0
    volume: float = 1.0
    base_rate: int = 150  # Words per minute at rate 1.0


class AlertConfig(BaseModel):
    enabled: bool = True
    sound_path: str = "assets/alerta.mp3"


class GestureConfig(BaseModel):
    """Configuration for tap / swipe classification."""

    debounce: float = 0.4
    swipe_min_distance: float = 50.0  # Pixels, upward
    swipe_max_duration: float = 0.5
    tap_slop: float = 10.0  # Max pointer travel still counted as a tap
    multi_tap: bool = True


class TimingConfig(BaseModel):
    """Fixed delays and display windows of the analysis loop (seconds)."""

    danger_speech_delay: float = 0.5
    danger_window: float = 3.0
    periodic_interval: float = 5.0
    emergency_speech_delay: float = 1.5
    emergency_window: float = 10.0


class EndpointConfig(BaseModel):
    base_url: str = "http://localhost:8080"
    analyze_path: str = "/api/analyze-frame"
    emergency_path: str = "/api/emergency"
    timeout: float = 30.0
    mode: Literal["danger", "plain"] = "danger"


class VisionConfig(BaseModel):
    """Configuration for the upstream vision models used by the gateway.

    API keys are read from OPENAI_API_KEY / GEMINI_API_KEY, never from here.
    """

    analyze_api_base: str = "https://api.openai.com/v1"
    analyze_model: str = "gpt-4o-mini"
    analyze_max_tokens: int = 150
    image_detail: Literal["low", "high", "auto"] = "low"
    emergency_api_base: str = "https://generativelanguage.googleapis.com"
    emergency_model: str = "gemini-2.0-flash"
    timeout: float = 30.0


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class Config(BaseModel):
    camera: CameraConfig = Field(default_factory=CameraConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    alert: AlertConfig = Field(default_factory=AlertConfig)
    gestures: GestureConfig = Field(default_factory=GestureConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    endpoint: EndpointConfig = Field(default_factory=EndpointConfig)
    vision: VisionConfig = Field(default_factory=VisionConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        path = Path(path)
        if not path.exists():
            return cls()
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)


if __name__ == "__main__":
    config = Config()
    print("Default config loaded:")
    print(f"  Camera: {config.camera.width}x{config.camera.height}")
    print(f"  Endpoint: {config.endpoint.base_url} ({config.endpoint.mode})")
    print(f"  Speech: {config.speech.language} x{config.speech.rate}")
    print(f"  Periodic interval: {config.timing.periodic_interval}s")
    print(f"  Debounce: {config.gestures.debounce}s")
