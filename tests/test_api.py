"""Tests for the FastAPI API endpoints."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from suggestion_engine.api.app import create_app
from suggestion_engine.generation.client import SuggestionGenerationClient
from suggestion_engine.models.config import EngineConfig
from suggestion_engine.models.suggestion import Suggestion, SuggestionStatus
from suggestion_engine.models.ticket import Ticket, TicketMessage
from suggestion_engine.repository.sqlite import SQLiteSuggestionRepository

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _make_suggestion(suggestion_id: str, minutes: int, ticket_id: str = "ticket_1") -> Suggestion:
    created = T0 + timedelta(minutes=minutes)
    return Suggestion(
        id=suggestion_id,
        ticket_id=ticket_id,
        suggested_response=f"Reply {suggestion_id}",
        created_at=created,
        updated_at=created,
    )


def _generation_handler(request: httpx.Request) -> httpx.Response:
    if b"ticket_down" in request.content:
        return httpx.Response(500, json={"error": "model overloaded"})
    return httpx.Response(200, json={"status": "queued"})


@pytest.fixture
def repo():
    repository = SQLiteSuggestionRepository(db_path=":memory:")
    repository.add_ticket(Ticket(
        id="ticket_1",
        title="Cannot reset password",
        messages=[TicketMessage(
            id="m1", ticket_id="ticket_1", content="The reset link expired", created_at=T0,
        )],
    ))
    repository.add_suggestion(_make_suggestion("s1", 1))
    repository.add_suggestion(_make_suggestion("s2", 2))
    repository.add_ticket(Ticket(id="ticket_2", title="Invoice address"))
    repository.add_suggestion(_make_suggestion("b1", 3, ticket_id="ticket_2"))
    return repository


@pytest.fixture
def client(repo):
    """Create a test client with a seeded repository and a mocked generation service."""
    config = EngineConfig(identity_retry_delay_seconds=0, generation_base_url="http://generator")
    generator = SuggestionGenerationClient(
        config,
        client=httpx.Client(
            base_url=config.generation_base_url,
            transport=httpx.MockTransport(_generation_handler),
        ),
    )
    app = create_app(repository=repo, generator=generator, config=config)
    return TestClient(app)


AGENT = {"X-Agent-Id": "agent_7"}


class TestSuggestionEndpoints:
    def test_list_suggestions(self, client):
        response = client.get("/tickets/ticket_1/suggestions")
        assert response.status_code == 200
        data = response.json()
        assert [s["suggestion"]["id"] for s in data["suggestions"]] == ["s1", "s2"]
        assert data["is_stale"] is False
        assert data["error"] is None

    def test_view_follows_change_feed(self, client, repo):
        client.get("/tickets/ticket_1/suggestions")
        repo.update_suggestion_status("s1", SuggestionStatus.REJECTED, T0)
        data = client.get("/tickets/ticket_1/suggestions").json()
        assert [s["suggestion"]["id"] for s in data["suggestions"]] == ["s2"]

    def test_refresh(self, client):
        response = client.post("/tickets/ticket_1/suggestions/refresh")
        assert response.status_code == 200
        assert len(response.json()["suggestions"]) == 2

    def test_generate(self, client):
        response = client.post("/tickets/ticket_1/suggestions/generate")
        assert response.status_code == 200
        assert response.json() == {"status": "queued"}

    def test_generate_failure_is_bad_gateway(self, client):
        response = client.post("/tickets/ticket_down/suggestions/generate")
        assert response.status_code == 502
        assert response.json()["detail"]["step"] == "generate"

    def test_close_session(self, client, repo):
        client.get("/tickets/ticket_1/suggestions")
        assert repo.subscriber_count("ticket_1") == 1

        response = client.delete("/tickets/ticket_1/session")
        assert response.json()["status"] == "closed"
        assert repo.subscriber_count("ticket_1") == 0

        response = client.delete("/tickets/ticket_1/session")
        assert response.json()["status"] == "not_open"


class TestFeedbackEndpoints:
    def test_accept(self, client, repo):
        response = client.post("/tickets/ticket_1/suggestions/s1/accept", headers=AGENT)
        assert response.status_code == 200
        data = response.json()
        assert data["new_status"] == "accepted"
        assert data["event"]["agent_id"] == "agent_7"
        assert repo.get_suggestion("s1").status == SuggestionStatus.ACCEPTED

        view = client.get("/tickets/ticket_1/suggestions").json()
        assert [s["suggestion"]["id"] for s in view["suggestions"]] == ["s2"]

    def test_reject(self, client):
        response = client.post(
            "/tickets/ticket_1/suggestions/s2/reject",
            json={"reason": "wrong_tone", "additional_feedback": "Too casual"},
            headers=AGENT,
        )
        assert response.status_code == 200
        assert response.json()["new_status"] == "rejected"

        events = client.get("/suggestions/s2/feedback").json()
        assert len(events) == 1
        assert events[0]["feedback_reason"] == "wrong_tone"
        assert events[0]["metadata"]["additional_feedback"] == "Too casual"

    def test_reject_without_reason(self, client, repo):
        response = client.post(
            "/tickets/ticket_1/suggestions/s2/reject", json={}, headers=AGENT
        )
        assert response.status_code == 422
        assert response.json()["detail"]["step"] == "validate"
        assert repo.get_suggestion("s2").status == SuggestionStatus.PENDING

    def test_unknown_suggestion(self, client):
        response = client.post("/tickets/ticket_1/suggestions/nope/accept", headers=AGENT)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "SuggestionNotFound"

    def test_missing_agent_header(self, client, repo):
        response = client.post("/tickets/ticket_1/suggestions/s1/accept")
        assert response.status_code == 401
        assert response.json()["detail"]["step"] == "identity"
        assert repo.get_suggestion("s1").status == SuggestionStatus.PENDING

    def test_accept_twice_reports_status_step(self, client):
        client.post("/tickets/ticket_1/suggestions/s1/accept", headers=AGENT)
        response = client.post("/tickets/ticket_1/suggestions/s1/accept", headers=AGENT)
        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["step"] == "update_status"
        assert detail["status_committed"] is False

    def test_feedback_for_undecided_suggestion(self, client):
        assert client.get("/suggestions/s1/feedback").json() == []

    def test_suggestion_of_another_ticket(self, client, repo):
        response = client.post("/tickets/ticket_1/suggestions/b1/accept", headers=AGENT)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "SuggestionNotFound"
        assert repo.get_suggestion("b1").status == SuggestionStatus.PENDING
        assert repo.list_feedback_events("b1") == []
