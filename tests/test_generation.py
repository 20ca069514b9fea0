"""Tests for the suggestion generation client."""

import json

import httpx
import pytest

from suggestion_engine.exceptions import GenerationFailed
from suggestion_engine.generation.client import SuggestionGenerationClient
from suggestion_engine.models.config import EngineConfig


def _make_client(handler) -> SuggestionGenerationClient:
    config = EngineConfig(generation_base_url="http://generator")
    return SuggestionGenerationClient(
        config,
        client=httpx.Client(base_url="http://generator", transport=httpx.MockTransport(handler)),
    )


class TestSuggestionGenerationClient:
    def test_posts_ticket_id(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"suggestion_id": "s9"})

        client = _make_client(handler)
        assert client.generate("ticket_1") == {"suggestion_id": "s9"}

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/ai/generate-suggestion"
        assert json.loads(request.content) == {"ticketId": "ticket_1"}
        client.close()

    def test_error_status(self):
        client = _make_client(lambda request: httpx.Response(503))
        with pytest.raises(GenerationFailed) as exc:
            client.generate("ticket_1")
        assert exc.value.context["status_code"] == 503
        assert exc.value.step == "generate"

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _make_client(handler)
        with pytest.raises(GenerationFailed) as exc:
            client.generate("ticket_1")
        assert isinstance(exc.value.__cause__, httpx.ConnectError)
        assert "connection refused" in exc.value.context["cause"]

    def test_non_json_body(self):
        client = _make_client(lambda request: httpx.Response(200, text="<html>ok</html>"))
        with pytest.raises(GenerationFailed) as exc:
            client.generate("ticket_1")
        assert isinstance(exc.value.__cause__, ValueError)
        assert exc.value.context["status_code"] == 200
