"""
Feedback Recorder — records an agent's decision on a suggestion.

Sequence (each step must succeed before the next starts):
  1. Validate the submission (non-approval requires a reason)
  2. Resolve the acting agent
  3. Load the suggestion and its ticket context
  4. Open a trace for this feedback event
  5. Step A: move the suggestion to accepted/rejected
  6. Step B: append the immutable FeedbackEvent
  7. Derive quality metrics
  8. Close and flush the trace

Behavioral Contract:
- Nothing remote is touched when validation fails.
- A Step A failure writes no FeedbackEvent.
- A Step B failure leaves Step A committed. Reverting would put the
  suggestion back into pending, which the status model forbids, so the
  error says so instead (FeedbackInsertFailed.status_committed).
- The trace is flushed on success and on every step failure.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, NoReturn, Optional, Type

from suggestion_engine.exceptions import (
    FeedbackInsertFailed,
    FetchFailure,
    StatusUpdateFailed,
    SuggestionEngineError,
    SuggestionNotFound,
    TicketNotFound,
    ValidationError,
)
from suggestion_engine.identity import IdentityResolver
from suggestion_engine.metrics.edit_distance import edit_distance
from suggestion_engine.models.config import EngineConfig
from suggestion_engine.models.feedback import (
    FeedbackEvent,
    FeedbackMetrics,
    FeedbackResult,
    FeedbackSubmission,
    FeedbackType,
)
from suggestion_engine.models.suggestion import Suggestion, SuggestionStatus
from suggestion_engine.models.ticket import Ticket
from suggestion_engine.observability.tracing import Span, Trace, TraceCollector
from suggestion_engine.repository.base import SuggestionRepository

logger = logging.getLogger(__name__)

UPDATE_STATUS_SPAN = "update-suggestion-status"
STORE_FEEDBACK_SPAN = "store-feedback-event"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class FeedbackRecorder:
    """Runs the two-step feedback transaction and reports it to a trace collector."""

    def __init__(
        self,
        repository: SuggestionRepository,
        collector: TraceCollector,
        identity: IdentityResolver,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.collector = collector
        self.identity = identity
        self.config = config or EngineConfig()
        self._clock = clock

    def record(self, submission: FeedbackSubmission) -> FeedbackResult:
        self.validate(submission)
        agent_id = self.identity.resolve()
        suggestion = self._load_suggestion(submission.suggestion_id, submission.ticket_id)
        ticket = self._load_ticket(submission.ticket_id)

        now = self._clock()
        new_status = submission.feedback_type.resulting_status
        trace = self.collector.trace(
            name=self.config.trace_name,
            session_id=suggestion.metadata.trace_id,
            input=self._trace_input(suggestion, ticket, submission, agent_id),
        )

        started = time.monotonic()
        self._update_status(trace, submission, new_status, now)
        event = self._insert_event(trace, submission, suggestion, agent_id, now)
        processing_time_ms = (time.monotonic() - started) * 1000

        metrics = self._compute_metrics(submission, suggestion, event, processing_time_ms)
        self._close_trace(trace, submission, suggestion, new_status, metrics, now)

        logger.info(
            "Recorded %s feedback for suggestion %s (ticket %s)",
            submission.feedback_type.value,
            submission.suggestion_id,
            submission.ticket_id,
        )
        return FeedbackResult(
            event=event,
            metrics=metrics,
            new_status=new_status,
            trace_id=trace.id,
        )

    # --- Steps ---

    @staticmethod
    def validate(submission: FeedbackSubmission) -> None:
        """Non-approval feedback must say why."""
        if submission.feedback_type != FeedbackType.APPROVAL and not submission.feedback_reason:
            raise ValidationError(
                f"A feedback reason is required for {submission.feedback_type.value} feedback",
                suggestion_id=submission.suggestion_id,
                ticket_id=submission.ticket_id,
            )

    def _load_suggestion(self, suggestion_id: str, ticket_id: str) -> Suggestion:
        try:
            suggestion = self.repository.get_suggestion(suggestion_id)
        except Exception as e:
            raise FetchFailure(
                f"Failed to load suggestion {suggestion_id}: {e}",
                suggestion_id=suggestion_id,
            ) from e
        # A suggestion belonging to another ticket is treated as absent here.
        if suggestion is None or suggestion.ticket_id != ticket_id:
            raise SuggestionNotFound(
                "Suggestion not found", suggestion_id=suggestion_id, ticket_id=ticket_id
            )
        return suggestion

    def _load_ticket(self, ticket_id: str) -> Ticket:
        try:
            ticket = self.repository.get_ticket(ticket_id)
        except Exception as e:
            raise FetchFailure(
                f"Failed to load ticket {ticket_id}: {e}", ticket_id=ticket_id
            ) from e
        if ticket is None:
            raise TicketNotFound("Ticket not found", ticket_id=ticket_id)
        return ticket

    def _update_status(
        self,
        trace: Trace,
        submission: FeedbackSubmission,
        new_status: SuggestionStatus,
        now: datetime,
    ) -> None:
        """Step A."""
        span = trace.span(
            UPDATE_STATUS_SPAN,
            input={
                "suggestion_id": submission.suggestion_id,
                "new_status": new_status.value,
                "timestamp": now.isoformat(),
            },
        )
        try:
            self.repository.update_suggestion_status(submission.suggestion_id, new_status, now)
        except Exception as e:
            self._fail_step(
                trace, span, e, StatusUpdateFailed,
                f"Error updating suggestion status: {e}",
                suggestion_id=submission.suggestion_id,
                ticket_id=submission.ticket_id,
            )
        span.update(metadata={"level": "success"})
        span.end()

    def _insert_event(
        self,
        trace: Trace,
        submission: FeedbackSubmission,
        suggestion: Suggestion,
        agent_id: str,
        now: datetime,
    ) -> FeedbackEvent:
        """Step B."""
        event = FeedbackEvent(
            id=str(uuid.uuid4()),
            suggestion_id=submission.suggestion_id,
            ticket_id=submission.ticket_id,
            agent_id=agent_id,
            feedback_type=submission.feedback_type,
            feedback_reason=submission.feedback_reason,
            agent_response=submission.agent_response or None,
            time_to_feedback=_as_utc(now) - _as_utc(suggestion.created_at),
            metadata={**submission.metadata, "trace_id": trace.id},
            created_at=now,
            updated_at=now,
        )
        span = trace.span(
            STORE_FEEDBACK_SPAN,
            input=event.model_dump(mode="json", exclude={"id", "created_at", "updated_at"}),
        )
        try:
            self.repository.insert_feedback_event(event)
        except Exception as e:
            self._fail_step(
                trace, span, e, FeedbackInsertFailed,
                f"Error storing feedback event (suggestion status already "
                f"{submission.feedback_type.resulting_status.value}): {e}",
                suggestion_id=submission.suggestion_id,
                ticket_id=submission.ticket_id,
            )
        span.update(metadata={"level": "success"})
        span.end()
        return event

    def _fail_step(
        self,
        trace: Trace,
        span: Span,
        error: Exception,
        error_cls: Type[SuggestionEngineError],
        message: str,
        **context,
    ) -> NoReturn:
        failure = error_cls(message, **context)
        logger.error("%s", message)
        # The step error is what the caller gets, even if reporting it fails.
        try:
            span.update(metadata={"error": str(error), "level": "error"})
            span.end()
            trace.update(
                output={
                    "feedback_result": {
                        "status": "failed",
                        "failed_step": failure.step,
                        "status_committed": getattr(failure, "status_committed", False),
                        "error": str(error),
                    }
                },
                metadata={"environment": self.config.environment},
            )
            trace.end()
            self.collector.flush()
        except Exception:
            logger.exception("Failed to report %s failure to the trace collector", failure.step)
        raise failure from error

    # --- Metrics & trace output ---

    def _compute_metrics(
        self,
        submission: FeedbackSubmission,
        suggestion: Suggestion,
        event: FeedbackEvent,
        processing_time_ms: float,
    ) -> FeedbackMetrics:
        distance = None
        if submission.agent_response:
            distance = edit_distance(suggestion.suggested_response, submission.agent_response)
        return FeedbackMetrics(
            processing_time_ms=processing_time_ms,
            time_to_feedback_ms=event.time_to_feedback.total_seconds() * 1000,
            was_edited=suggestion.was_edited,
            partial_use=bool(submission.metadata.get("partial_use", False)),
            quality_score=1.0 if submission.feedback_type == FeedbackType.APPROVAL else 0.0,
            edit_distance=distance,
        )

    def _trace_input(
        self,
        suggestion: Suggestion,
        ticket: Ticket,
        submission: FeedbackSubmission,
        agent_id: str,
    ) -> dict:
        return {
            "original_suggestion": {
                "id": suggestion.id,
                "content": suggestion.suggested_response,
                "model": suggestion.metadata.model,
                "created_at": suggestion.created_at.isoformat(),
            },
            "ticket_context": {
                "id": ticket.id,
                "title": ticket.title,
                "description": ticket.description,
                "priority": ticket.priority,
                "conversation_history": ticket.conversation_history(),
            },
            "feedback": {
                "type": submission.feedback_type.value,
                "reason": submission.feedback_reason.value if submission.feedback_reason else None,
                "agent_id": agent_id,
            },
        }

    def _close_trace(
        self,
        trace: Trace,
        submission: FeedbackSubmission,
        suggestion: Suggestion,
        new_status: SuggestionStatus,
        metrics: FeedbackMetrics,
        now: datetime,
    ) -> None:
        tokens = suggestion.metadata.tokens_used
        trace.update(
            output={
                "feedback_result": {
                    "status": "processed",
                    "feedback_type": submission.feedback_type.value,
                    "processed_at": now.isoformat(),
                    "processing_time_ms": metrics.processing_time_ms,
                    "metrics": {
                        "time_to_feedback_ms": metrics.time_to_feedback_ms,
                        "was_edited": metrics.was_edited,
                        "partial_use": metrics.partial_use,
                        "quality_score": metrics.quality_score,
                    },
                },
                "suggestion_update": {
                    "new_status": new_status.value,
                    "update_timestamp": now.isoformat(),
                    "was_edited": metrics.was_edited,
                    "agent_response": submission.agent_response,
                    "edit_distance": metrics.edit_distance,
                },
                "performance_analysis": {
                    "response_length": len(suggestion.suggested_response),
                    "response_tokens": tokens.total_tokens if tokens else None,
                    "processing_time_ms": metrics.processing_time_ms,
                    "total_interaction_time_ms": (
                        metrics.time_to_feedback_ms + metrics.processing_time_ms
                    ),
                },
            },
            metadata={
                "completion_time": now.isoformat(),
                "trace_id": trace.id,
                "environment": self.config.environment,
            },
        )
        trace.end()
        self.collector.flush()
