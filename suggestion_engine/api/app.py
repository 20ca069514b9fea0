"""
Suggestion Engine API — FastAPI endpoints.

Exposes the per-ticket session operations:
- Live view of pending suggestions
- Refresh (re-fetch) and generation trigger
- Accept / reject with feedback recording
- Feedback audit trail per suggestion
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

from suggestion_engine.exceptions import (
    IdentityUnavailable,
    NotFoundError,
    SuggestionEngineError,
    ValidationError,
)
from suggestion_engine.generation.client import SuggestionGenerationClient
from suggestion_engine.identity import IdentityResolver, current_agent_id
from suggestion_engine.models.config import EngineConfig
from suggestion_engine.models.feedback import FeedbackReason, FeedbackResult
from suggestion_engine.observability.tracing import TraceCollector
from suggestion_engine.repository.base import SuggestionRepository
from suggestion_engine.repository.sqlite import SQLiteSuggestionRepository
from suggestion_engine.session import SuggestionEngine, TicketSuggestionSession


# --- Request/Response Models ---

class RejectRequest(BaseModel):
    reason: Optional[FeedbackReason] = None
    additional_feedback: Optional[str] = None


# --- Error mapping ---

def _http_error(error: SuggestionEngineError) -> HTTPException:
    if isinstance(error, ValidationError):
        status_code = 422
    elif isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, IdentityUnavailable):
        status_code = 401
    else:
        status_code = 502
    return HTTPException(status_code, error.to_dict())


def _view(session: TicketSuggestionSession) -> dict:
    return {
        "ticket_id": session.ticket_id,
        "suggestions": [s.model_dump(mode="json") for s in session.suggestions],
        "is_loading": session.is_loading,
        "is_stale": session.is_stale,
        "error": str(session.error) if session.error else None,
    }


def _result(result: FeedbackResult) -> dict:
    return result.model_dump(mode="json")


# --- Application Factory ---

def create_app(
    repository: Optional[SuggestionRepository] = None,
    collector: Optional[TraceCollector] = None,
    identity: Optional[IdentityResolver] = None,
    generator: Optional[SuggestionGenerationClient] = None,
    config: Optional[EngineConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    config = config or EngineConfig()
    engine = SuggestionEngine(
        repository=repository or SQLiteSuggestionRepository(),
        collector=collector,
        identity=identity,
        generator=generator or SuggestionGenerationClient(config),
        config=config,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        engine.close()

    app = FastAPI(
        title="Suggestion Engine API",
        description="AI reply suggestion lifecycle and feedback recording",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    def open_session(ticket_id: str) -> TicketSuggestionSession:
        try:
            return engine.session(ticket_id)
        except SuggestionEngineError as e:
            raise _http_error(e)

    # === SUGGESTIONS ===

    @app.get("/tickets/{ticket_id}/suggestions")
    def list_suggestions(ticket_id: str):
        """Live view of the ticket's pending suggestions."""
        return _view(open_session(ticket_id))

    @app.post("/tickets/{ticket_id}/suggestions/refresh")
    def refresh_suggestions(ticket_id: str):
        """Re-fetch the ticket's suggestions from the store."""
        session = open_session(ticket_id)
        try:
            session.fetch_suggestions()
        except SuggestionEngineError as e:
            raise _http_error(e)
        return _view(session)

    @app.post("/tickets/{ticket_id}/suggestions/generate")
    def generate_suggestion(ticket_id: str):
        """Ask the generation service for a new suggestion."""
        session = open_session(ticket_id)
        try:
            return session.trigger_suggestion_generation()
        except SuggestionEngineError as e:
            raise _http_error(e)

    @app.delete("/tickets/{ticket_id}/session")
    def close_session(ticket_id: str):
        """Tear down the ticket's change-feed subscription."""
        closed = engine.close_session(ticket_id)
        return {"status": "closed" if closed else "not_open", "ticket_id": ticket_id}

    # === FEEDBACK ===

    @app.post("/tickets/{ticket_id}/suggestions/{suggestion_id}/accept")
    def accept_suggestion(
        ticket_id: str,
        suggestion_id: str,
        x_agent_id: Optional[str] = Header(default=None),
    ):
        """Agent approves a suggestion."""
        session = open_session(ticket_id)
        token = current_agent_id.set(x_agent_id)
        try:
            return _result(session.accept_suggestion(suggestion_id))
        except SuggestionEngineError as e:
            raise _http_error(e)
        finally:
            current_agent_id.reset(token)

    @app.post("/tickets/{ticket_id}/suggestions/{suggestion_id}/reject")
    def reject_suggestion(
        ticket_id: str,
        suggestion_id: str,
        req: RejectRequest,
        x_agent_id: Optional[str] = Header(default=None),
    ):
        """Agent rejects a suggestion with a reason."""
        session = open_session(ticket_id)
        token = current_agent_id.set(x_agent_id)
        try:
            return _result(
                session.reject_suggestion(suggestion_id, req.reason, req.additional_feedback)
            )
        except SuggestionEngineError as e:
            raise _http_error(e)
        finally:
            current_agent_id.reset(token)

    @app.get("/suggestions/{suggestion_id}/feedback")
    def get_feedback_events(suggestion_id: str):
        """Audit trail of decisions on a suggestion."""
        list_events = getattr(engine.repository, "list_feedback_events", None)
        if list_events is None:
            raise HTTPException(501, "Repository does not expose feedback events")
        return [e.model_dump(mode="json") for e in list_events(suggestion_id)]

    return app


# Default application instance
app = create_app()
