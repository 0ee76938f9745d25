"""Vision service wrapping the upstream vision models for async use."""

import asyncio
import os
import re
from typing import Any, Literal

import requests

from lanoria.config import VisionConfig


class VisionConfigError(Exception):
    """A required upstream credential is missing."""


class VisionUpstreamError(Exception):
    """The upstream model call failed or returned nothing usable."""


DANGER_PROMPT = """Eres los ojos de una persona ciega que camina con la cámara de su móvil.
Analiza la imagen y responde SOLO con un objeto JSON con esta forma exacta:
{"danger": true | false, "description": "..."}

- "danger" es true únicamente si hay un peligro físico inmediato para la persona
  (escalones, bordillos, vehículos, obstáculos a la altura de la cabeza o del paso,
  agujeros, cristales, fuego, bicicletas acercándose...).
- "description" es una frase breve en español, máximo 30 palabras.
  Si hay peligro, empieza con "Cuidado," y di qué es y dónde está.
  Si no hay peligro, empieza con "Delante tuya" y describe lo principal.

No añadas texto fuera del JSON."""

PLAIN_PROMPT = (
    "Describe lo que ves en esta imagen de forma concisa (máximo 50 palabras), "
    "en español, para una persona ciega. Céntrate en los objetos principales, "
    "las personas y lo que están haciendo."
)

EMERGENCY_PROMPT = """Eres un sistema de emergencias para una persona ciega que ha activado una
llamada de emergencia y ha tomado esta foto de su situación actual.

Genera un mensaje para los servicios de emergencia que incluya:
1. Ubicación y contexto visual: interior o exterior, tipo de lugar, elementos distintivos.
2. Situación de emergencia (lo más importante): peligros o riesgos visibles y estado del entorno.
3. Información para el rescate: accesos, obstáculos y referencias visuales.

Responde SOLO con el mensaje, claro y conciso, máximo 150 palabras, en español.
Formato: "Emergencia: Persona ciega solicita asistencia. Se encuentra en [lugar].
Situación observada: [emergencia]. Acceso: [información]. Elementos distintivos: [referencias]."
No incluyas JSON."""

EMERGENCY_LEAD = "Emergencia: Persona ciega solicita asistencia."
EMERGENCY_NO_ANALYSIS = (
    "Emergencia: Persona ciega solicita asistencia inmediata. "
    "No se pudo analizar la situación visual."
)
EMERGENCY_FALLBACK = (
    "Emergencia: Persona ciega solicita asistencia inmediata. "
    "Error al analizar la situación visual."
)

_FENCE_LINE_RE = re.compile(r"```.*\n")


def split_data_uri(image: str) -> tuple[str, str]:
    """Split a data URI into (mime type, base64 payload).

    Bare base64 strings are assumed to be JPEG.
    """
    if image.startswith("data:") and "," in image:
        header, data = image.split(",", 1)
        mime = header[5:].split(";")[0] or "image/jpeg"
        return mime, data
    return "image/jpeg", image


def clean_emergency_message(text: str) -> str:
    """Strip Markdown fences and make sure the message reads as an emergency."""
    message = _FENCE_LINE_RE.sub("", text).replace("```", "").strip()
    if not message:
        return EMERGENCY_NO_ANALYSIS
    if "emergencia" not in message.lower():
        message = f"{EMERGENCY_LEAD} {message}"
    return message


def _extract_gemini_text(data: dict[str, Any]) -> str:
    txt = ""
    for candidate in data.get("candidates") or []:
        parts = (candidate.get("content") or {}).get("parts") or []
        for part in parts:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                txt += part["text"] + "\n"
        if txt:
            break
    return txt.strip()


class VisionService:
    """Forwards frames to the upstream models.

    Runs blocking HTTP calls in a thread pool to avoid blocking the event loop.
    """

    def __init__(self, config: VisionConfig | None = None, session: requests.Session | None = None):
        self.config = config or VisionConfig()
        self.session = session or requests.Session()

    def _require_env(self, name: str) -> str:
        value = os.environ.get(name)
        if not value:
            raise VisionConfigError(f"{name} not configured")
        return value

    def _describe(self, image: str, prompt: str) -> str:
        api_key = self._require_env("OPENAI_API_KEY")
        payload = {
            "model": self.config.analyze_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": image, "detail": self.config.image_detail},
                        },
                    ],
                }
            ],
            "max_tokens": self.config.analyze_max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        try:
            url = f"{self.config.analyze_api_base.rstrip('/')}/chat/completions"
            r = self.session.post(url, json=payload, headers=headers, timeout=self.config.timeout)
            r.raise_for_status()
            data = r.json()
            content = data["choices"][0]["message"]["content"]
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            raise VisionUpstreamError(f"Vision API error: {e}") from e

        return (content or "").strip()

    def _emergency_text(self, image: str) -> str:
        api_key = self._require_env("GEMINI_API_KEY")
        mime, b64 = split_data_uri(image)
        url = (
            f"{self.config.emergency_api_base.rstrip('/')}/v1beta/models/"
            f"{self.config.emergency_model}:generateContent"
        )
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": EMERGENCY_PROMPT},
                        {"inline_data": {"mime_type": mime, "data": b64}},
                    ],
                }
            ],
            "generationConfig": {"temperature": 0.2, "maxOutputTokens": 400},
        }

        try:
            r = self.session.post(
                url, params={"key": api_key}, json=payload, timeout=self.config.timeout
            )
            r.raise_for_status()
            return _extract_gemini_text(r.json())
        except (requests.RequestException, ValueError) as e:
            raise VisionUpstreamError(f"Emergency API error: {e}") from e

    async def analyze(self, image: str, mode: Literal["danger", "plain"] = "danger") -> str:
        """Describe a frame.

        Args:
            image: Data URI of the frame.
            mode: "danger" asks for the JSON danger schema, "plain" for prose.

        Returns:
            Raw model text (not yet normalized).
        """
        prompt = DANGER_PROMPT if mode == "danger" else PLAIN_PROMPT
        return await asyncio.to_thread(self._describe, image, prompt)

    async def emergency_message(self, image: str) -> str:
        """Compose an emergency-services message for a frame."""
        text = await asyncio.to_thread(self._emergency_text, image)
        return clean_emergency_message(text)


# Global singleton instance
vision_service = VisionService()
