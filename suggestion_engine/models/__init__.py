"""Suggestion engine data models."""

from suggestion_engine.models.change_feed import (
    ChangeEvent,
    ChangeEventType,
    ChannelStatus,
)
from suggestion_engine.models.config import EngineConfig
from suggestion_engine.models.feedback import (
    FeedbackEvent,
    FeedbackMetrics,
    FeedbackReason,
    FeedbackResult,
    FeedbackSubmission,
    FeedbackType,
)
from suggestion_engine.models.suggestion import (
    Suggestion,
    SuggestionMetadata,
    SuggestionState,
    SuggestionStatus,
    TokenUsage,
    TransientStatus,
)
from suggestion_engine.models.ticket import AuthorType, Ticket, TicketMessage

__all__ = [
    "AuthorType",
    "ChangeEvent",
    "ChangeEventType",
    "ChannelStatus",
    "EngineConfig",
    "FeedbackEvent",
    "FeedbackMetrics",
    "FeedbackReason",
    "FeedbackResult",
    "FeedbackSubmission",
    "FeedbackType",
    "Suggestion",
    "SuggestionMetadata",
    "SuggestionState",
    "SuggestionStatus",
    "Ticket",
    "TicketMessage",
    "TokenUsage",
    "TransientStatus",
]
