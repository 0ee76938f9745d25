"""Turn whatever the vision endpoint returns into a (danger, description) pair.

The upstream model is asked for JSON but does not always comply: the payload
may be a proper object, a JSON string (sometimes inside Markdown fences), a
truncated fragment, or plain prose. Every one of those ends up as an
AnalysisResult; nothing here raises.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

UNANALYZABLE = "No se pudo analizar la imagen"


@dataclass
class AnalysisResult:
    """Canonical analysis outcome."""

    danger: bool
    description: str


class ResponseNormalizer:
    """Normalize raw analysis payloads into AnalysisResult objects."""

    # Lowercase substrings that mark a hazard in free text
    DANGER_KEYWORDS = [
        "peligro",
        "cuidado",
        "precaución",
        "precaucion",
        "riesgo",
        "alerta",
    ]

    # Openers the model is told to start its sentence with
    SENTENCE_MARKERS = [
        "Delante tuya",
        "Delante de ti",
        "Cuidado",
        "Peligro",
    ]

    TRUE_STRINGS = {"true", "1", "yes", "si", "sí"}

    # Nested re-normalization happens at most this many times
    MAX_DEPTH = 3

    _FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
    _DESCRIPTION_RE = re.compile(
        r'"?description"?\s*:\s*"((?:[^"\\]|\\.)*)"', re.IGNORECASE | re.DOTALL
    )
    _DANGER_TRUE_RE = re.compile(r'"?danger"?\s*:\s*"?true', re.IGNORECASE)
    _FIELD_TOKEN_RE = re.compile(
        r'"?(?:danger|description)"?\s*:\s*(?:true|false)?', re.IGNORECASE
    )
    _JSON_WORD_RE = re.compile(r"\bjson\b", re.IGNORECASE)
    _PUNCT_RE = re.compile(r'[{}\[\]"`]')
    _SPACE_RE = re.compile(r"\s+")
    _MARKER_RE = re.compile(
        r"(?:" + "|".join(re.escape(m) for m in SENTENCE_MARKERS) + r")[^{}]*?(?=\s*[{}]|$)",
        re.IGNORECASE,
    )

    def normalize(self, raw: Any) -> AnalysisResult:
        """Normalize a raw payload.

        Args:
            raw: Decoded endpoint body, raw text, bytes or anything else.

        Returns:
            AnalysisResult with a non-empty description.
        """
        try:
            return self._normalize(raw, 0)
        except Exception as e:
            print(f"[ANALYZE] Unexpected payload {type(raw).__name__}: {e}")
            return AnalysisResult(danger=False, description=UNANALYZABLE)

    def _normalize(self, raw: Any, depth: int) -> AnalysisResult:
        if isinstance(raw, AnalysisResult):
            return raw
        if isinstance(raw, dict):
            return self._from_mapping(raw, depth)
        if isinstance(raw, (bytes, bytearray)):
            raw = bytes(raw).decode("utf-8", errors="replace")
        if raw is None:
            return AnalysisResult(danger=False, description=UNANALYZABLE)
        if not isinstance(raw, str):
            raw = str(raw)
        return self._from_text(raw, depth)

    def _from_mapping(self, data: dict, depth: int) -> AnalysisResult:
        description = data.get("description")

        # Legacy plain endpoint: the whole model reply sits in "description"
        if (
            "danger" not in data
            and isinstance(description, str)
            and self._has_artifacts(description)
            and depth < self.MAX_DEPTH
        ):
            return self._from_text(description, depth + 1)

        danger = self._coerce_bool(data.get("danger"))
        if description is None or description == "":
            text = UNANALYZABLE
        else:
            text = str(description)

        return AnalysisResult(danger=danger, description=self._clean_description(text))

    def _from_text(self, text: str, depth: int) -> AnalysisResult:
        body = self._FENCE_RE.sub("", text).strip()

        if body and depth < self.MAX_DEPTH:
            parsed = self._parse_json(body)
            if parsed is None:
                parsed = self._parse_json(self._extract_json_object(body))
            if isinstance(parsed, dict):
                return self._from_mapping(parsed, depth + 1)

        return self._recover(text)

    def _recover(self, text: str) -> AnalysisResult:
        """Heuristic path for payloads that are not usable JSON."""
        lowered = text.lower()
        danger = any(keyword in lowered for keyword in self.DANGER_KEYWORDS)
        if not danger and self._DANGER_TRUE_RE.search(text):
            danger = True

        match = self._DESCRIPTION_RE.search(text)
        if match:
            description = self._unescape(match.group(1)).strip()
        else:
            description = self._strip_structure(text)

        if not description:
            description = UNANALYZABLE

        return AnalysisResult(danger=danger, description=self._clean_description(description))

    def _clean_description(self, text: str) -> str:
        """Remove JSON debris that leaked into a description."""
        if not text.strip():
            return UNANALYZABLE
        if not self._has_artifacts(text):
            return text

        match = self._DESCRIPTION_RE.search(text)
        if match:
            candidate = self._unescape(match.group(1)).strip()
            if candidate and not self._has_artifacts(candidate):
                return candidate

        match = self._MARKER_RE.search(text)
        if match:
            candidate = match.group(0).strip(' "`,')
            if candidate:
                return candidate

        # Without a recognizable sentence the text is kept as the model wrote it
        return text

    def _strip_structure(self, text: str) -> str:
        text = self._FENCE_RE.sub(" ", text)
        text = self._FIELD_TOKEN_RE.sub(" ", text)
        text = self._JSON_WORD_RE.sub(" ", text)
        text = self._PUNCT_RE.sub(" ", text)
        return self._SPACE_RE.sub(" ", text).strip(" ,:")

    def _has_artifacts(self, text: str) -> bool:
        return "{" in text or "}" in text or "json" in text.lower()

    def _coerce_bool(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if value is None:
            return False
        if isinstance(value, str):
            return value.strip().lower() in self.TRUE_STRINGS
        if isinstance(value, (int, float)):
            return bool(value)
        return False

    @staticmethod
    def _parse_json(text: str | None) -> Any:
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return None

    @staticmethod
    def _extract_json_object(text: str) -> str | None:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            return None
        return text[start : end + 1]

    @staticmethod
    def _unescape(value: str) -> str:
        try:
            return json.loads(f'"{value}"')
        except ValueError:
            return value


def normalize(raw: Any) -> AnalysisResult:
    """Convenience function to normalize a payload.

    Args:
        raw: Raw analysis payload.

    Returns:
        AnalysisResult.
    """
    return ResponseNormalizer().normalize(raw)
