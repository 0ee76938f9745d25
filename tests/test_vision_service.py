"""
Tests for the upstream vision service
"""

from unittest.mock import MagicMock

import pytest
import requests

from lanoria.config import VisionConfig
from webapp.services.vision import (
    DANGER_PROMPT,
    EMERGENCY_LEAD,
    EMERGENCY_NO_ANALYSIS,
    PLAIN_PROMPT,
    VisionConfigError,
    VisionService,
    VisionUpstreamError,
    clean_emergency_message,
    split_data_uri,
)

from conftest import FAKE_IMAGE


def json_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def keys(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("GEMINI_API_KEY", "gm-test")


@pytest.fixture
def session():
    return MagicMock()


class TestHelpers:
    def test_split_data_uri(self):
        assert split_data_uri("data:image/png;base64,AAAA") == ("image/png", "AAAA")
        assert split_data_uri(FAKE_IMAGE) == ("image/jpeg", "/9j/AAAA")

    def test_split_bare_base64(self):
        assert split_data_uri("AAAA") == ("image/jpeg", "AAAA")

    def test_clean_strips_fences(self):
        text = "```text\nEmergencia: Persona ciega en un parque.\n```"
        assert clean_emergency_message(text) == "Emergencia: Persona ciega en un parque."

    def test_clean_adds_lead(self):
        message = clean_emergency_message("Se encuentra en una cocina con humo.")
        assert message == f"{EMERGENCY_LEAD} Se encuentra en una cocina con humo."

    def test_clean_empty(self):
        assert clean_emergency_message("   ") == EMERGENCY_NO_ANALYSIS
        assert clean_emergency_message("``````") == EMERGENCY_NO_ANALYSIS


class TestAnalyze:
    async def test_danger_prompt_and_payload(self, keys, session):
        session.post.return_value = json_response(
            {"choices": [{"message": {"content": ' {"danger": false, "description": "x"} '}}]}
        )
        service = VisionService(VisionConfig(), session)

        text = await service.analyze(FAKE_IMAGE)

        assert text == '{"danger": false, "description": "x"}'
        args, kwargs = session.post.call_args
        assert args[0] == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        payload = kwargs["json"]
        assert payload["model"] == "gpt-4o-mini"
        assert payload["max_tokens"] == 150
        content = payload["messages"][0]["content"]
        assert content[0]["text"] == DANGER_PROMPT
        assert content[1]["image_url"] == {"url": FAKE_IMAGE, "detail": "low"}

    async def test_plain_prompt(self, keys, session):
        session.post.return_value = json_response({"choices": [{"message": {"content": "Una mesa"}}]})
        service = VisionService(VisionConfig(), session)

        assert await service.analyze(FAKE_IMAGE, "plain") == "Una mesa"
        content = session.post.call_args.kwargs["json"]["messages"][0]["content"]
        assert content[0]["text"] == PLAIN_PROMPT

    async def test_missing_key(self, monkeypatch, session):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        service = VisionService(VisionConfig(), session)

        with pytest.raises(VisionConfigError, match="OPENAI_API_KEY"):
            await service.analyze(FAKE_IMAGE)
        session.post.assert_not_called()

    async def test_http_error(self, keys, session):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("429 Too Many Requests")
        session.post.return_value = response
        service = VisionService(VisionConfig(), session)

        with pytest.raises(VisionUpstreamError):
            await service.analyze(FAKE_IMAGE)

    async def test_unexpected_shape(self, keys, session):
        session.post.return_value = json_response({"choices": []})
        service = VisionService(VisionConfig(), session)

        with pytest.raises(VisionUpstreamError):
            await service.analyze(FAKE_IMAGE)


class TestEmergencyMessage:
    async def test_gemini_request(self, keys, session):
        session.post.return_value = json_response(
            {"candidates": [{"content": {"parts": [{"text": "Emergencia: caída en casa."}]}}]}
        )
        service = VisionService(VisionConfig(), session)

        message = await service.emergency_message("data:image/png;base64,QUJD")

        assert message == "Emergencia: caída en casa."
        args, kwargs = session.post.call_args
        assert args[0] == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"
        )
        assert kwargs["params"] == {"key": "gm-test"}
        inline = kwargs["json"]["contents"][0]["parts"][1]["inline_data"]
        assert inline == {"mime_type": "image/png", "data": "QUJD"}

    async def test_empty_candidates(self, keys, session):
        session.post.return_value = json_response({"candidates": []})
        service = VisionService(VisionConfig(), session)

        assert await service.emergency_message(FAKE_IMAGE) == EMERGENCY_NO_ANALYSIS

    async def test_missing_key(self, monkeypatch, session):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        service = VisionService(VisionConfig(), session)

        with pytest.raises(VisionConfigError):
            await service.emergency_message(FAKE_IMAGE)

    async def test_transport_error(self, keys, session):
        session.post.side_effect = requests.Timeout("timed out")
        service = VisionService(VisionConfig(), session)

        with pytest.raises(VisionUpstreamError):
            await service.emergency_message(FAKE_IMAGE)
