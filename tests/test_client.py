"""
Tests for the endpoint client
"""

from unittest.mock import MagicMock

import pytest
import requests

from lanoria.client import EmergencyReply, EndpointError, VisionClient
from lanoria.config import EndpointConfig

from conftest import FAKE_IMAGE


def make_response(status=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    response.text = text
    return response


@pytest.fixture
def session():
    return MagicMock()


class TestAnalyze:
    async def test_posts_image(self, session):
        session.post.return_value = make_response(payload={"danger": False, "description": "x"})
        client = VisionClient(EndpointConfig(base_url="http://gateway:8080/"), session)

        payload = await client.analyze(FAKE_IMAGE)

        assert payload == {"danger": False, "description": "x"}
        args, kwargs = session.post.call_args
        assert args[0] == "http://gateway:8080/api/analyze-frame"
        assert kwargs["json"] == {"image": FAKE_IMAGE}
        assert kwargs["params"] is None
        assert kwargs["timeout"] == 30.0

    async def test_plain_mode_query(self, session):
        session.post.return_value = make_response(payload={"description": "x"})
        client = VisionClient(EndpointConfig(mode="plain"), session)

        await client.analyze(FAKE_IMAGE)

        assert session.post.call_args.kwargs["params"] == {"mode": "plain"}

    async def test_text_body_is_returned_raw(self, session):
        session.post.return_value = make_response(text="Cuidado, escalón")
        client = VisionClient(EndpointConfig(), session)

        assert await client.analyze(FAKE_IMAGE) == "Cuidado, escalón"

    async def test_error_status_raises(self, session):
        session.post.return_value = make_response(500, {"error": "Failed to analyze frame"})
        client = VisionClient(EndpointConfig(), session)

        with pytest.raises(EndpointError) as exc_info:
            await client.analyze(FAKE_IMAGE)

        assert exc_info.value.status == 500
        assert exc_info.value.payload == {"error": "Failed to analyze frame"}
        assert "Failed to analyze frame" in str(exc_info.value)

    async def test_transport_error_propagates(self, session):
        session.post.side_effect = requests.ConnectionError("refused")
        client = VisionClient(EndpointConfig(), session)

        with pytest.raises(requests.ConnectionError):
            await client.analyze(FAKE_IMAGE)


class TestEmergency:
    async def test_reply_fields(self, session):
        session.post.return_value = make_response(
            payload={"message": "Emergencia: caída.", "timestamp": "2024-05-01T10:00:00Z"}
        )
        client = VisionClient(EndpointConfig(), session)

        reply = await client.emergency(FAKE_IMAGE)

        assert reply == EmergencyReply("Emergencia: caída.", "2024-05-01T10:00:00Z", None)
        assert session.post.call_args.args[0] == "http://localhost:8080/api/emergency"

    async def test_error_status_keeps_payload(self, session):
        payload = {"message": "Emergencia: respaldo.", "error": "Failed", "timestamp": "t"}
        session.post.return_value = make_response(500, payload)
        client = VisionClient(EndpointConfig(), session)

        with pytest.raises(EndpointError) as exc_info:
            await client.emergency(FAKE_IMAGE)

        assert exc_info.value.payload["message"] == "Emergencia: respaldo."

    async def test_non_object_body(self, session):
        session.post.return_value = make_response(text="Emergencia: texto plano.")
        client = VisionClient(EndpointConfig(), session)

        reply = await client.emergency(FAKE_IMAGE)
        assert reply.message == "Emergencia: texto plano."


def test_close(session):
    VisionClient(EndpointConfig(), session).close()
    session.close.assert_called_once()
