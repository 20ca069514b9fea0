"""Feedback — the immutable audit trail of agent decisions on suggestions."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from suggestion_engine.models.suggestion import SuggestionStatus


class FeedbackType(str, Enum):
    APPROVAL = "approval"
    REJECTION = "rejection"
    REVISION = "revision"

    @property
    def resulting_status(self) -> SuggestionStatus:
        """Approval accepts the suggestion; anything else rejects it."""
        if self == FeedbackType.APPROVAL:
            return SuggestionStatus.ACCEPTED
        return SuggestionStatus.REJECTED


class FeedbackReason(str, Enum):
    IRRELEVANT = "irrelevant"
    INCORRECT_INFORMATION = "incorrect_information"
    WRONG_TONE = "wrong_tone"
    INCOMPLETE = "incomplete"
    TOO_VERBOSE = "too_verbose"
    OTHER = "other"


class FeedbackSubmission(BaseModel):
    """What an agent submits about a suggestion."""

    suggestion_id: str
    ticket_id: str
    feedback_type: FeedbackType
    feedback_reason: Optional[FeedbackReason] = None
    agent_response: Optional[str] = None
    metadata: dict = {}


class FeedbackEvent(BaseModel):
    """
    Audit record of one decision. Frozen: once written there is no
    update or delete path, in memory or in the repository.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    suggestion_id: str
    ticket_id: str
    agent_id: str
    feedback_type: FeedbackType
    feedback_reason: Optional[FeedbackReason] = None
    agent_response: Optional[str] = None
    time_to_feedback: timedelta
    metadata: dict = {}
    created_at: datetime
    updated_at: datetime


class FeedbackMetrics(BaseModel):
    """Derived quality metrics for one feedback event."""

    processing_time_ms: float
    time_to_feedback_ms: float
    was_edited: bool
    partial_use: bool = False
    quality_score: float = Field(ge=0.0, le=1.0)
    edit_distance: Optional[int] = None


class FeedbackResult(BaseModel):
    """Returned by the FeedbackRecorder once both remote steps committed."""

    event: FeedbackEvent
    metrics: FeedbackMetrics
    new_status: SuggestionStatus
    trace_id: str
