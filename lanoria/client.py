"""HTTP client for the analyze-frame and emergency endpoints."""

import asyncio
from dataclasses import dataclass
from typing import Any

import requests

from lanoria.config import EndpointConfig


class EndpointError(Exception):
    """Non-2xx reply from an endpoint; the decoded body is kept as payload."""

    def __init__(self, status: int, payload: Any = None) -> None:
        self.status = status
        self.payload = payload
        detail = payload.get("error") if isinstance(payload, dict) else payload
        super().__init__(f"HTTP {status}: {detail}")


@dataclass
class EmergencyReply:
    message: str
    timestamp: str = ""
    error: str | None = None


class VisionClient:
    """Async wrapper around the gateway endpoints.

    Requests run in a worker thread so the event loop keeps servicing timers,
    speech callbacks and gestures while a frame is being analyzed.
    """

    def __init__(self, config: EndpointConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return self.config.base_url.rstrip("/") + path

    def _post(self, path: str, image: str, params: dict | None = None) -> Any:
        response = self.session.post(
            self._url(path),
            json={"image": image},
            params=params,
            timeout=self.config.timeout,
        )
        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        if not response.ok:
            raise EndpointError(response.status_code, payload)
        return payload

    async def analyze(self, image: str) -> Any:
        """Send a frame for analysis.

        Args:
            image: Data URI of the captured frame.

        Returns:
            The decoded body, unvalidated; see lanoria.normalizer.

        Raises:
            EndpointError: The endpoint answered with a non-2xx status.
            requests.RequestException: Transport failure.
        """
        params = {"mode": "plain"} if self.config.mode == "plain" else None
        return await asyncio.to_thread(self._post, self.config.analyze_path, image, params)

    async def emergency(self, image: str) -> EmergencyReply:
        """Send a frame to the emergency endpoint.

        Raises:
            EndpointError: Non-2xx status; payload usually still carries a message.
            requests.RequestException: Transport failure.
        """
        payload = await asyncio.to_thread(self._post, self.config.emergency_path, image)
        if not isinstance(payload, dict):
            return EmergencyReply(message=str(payload or ""))
        return EmergencyReply(
            message=str(payload.get("message") or ""),
            timestamp=str(payload.get("timestamp") or ""),
            error=payload.get("error"),
        )

    def close(self) -> None:
        self.session.close()
