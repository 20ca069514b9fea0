"""Suggestion — an AI-produced candidate reply awaiting human disposition."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (SuggestionStatus.ACCEPTED, SuggestionStatus.REJECTED)

    def can_transition_to(self, target: "SuggestionStatus") -> bool:
        """Only pending → accepted and pending → rejected are valid."""
        return self == SuggestionStatus.PENDING and target.is_terminal


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class SuggestionMetadata(BaseModel):
    """Generation metadata attached by the suggestion-producing service."""

    model_config = ConfigDict(extra="allow", frozen=True)

    model: Optional[str] = None
    trace_id: Optional[str] = None
    tokens_used: Optional[TokenUsage] = None
    partial_use: bool = False


class Suggestion(BaseModel):
    """A suggestion record as held by the remote store."""

    model_config = ConfigDict(frozen=True)

    id: str
    ticket_id: str
    message_id: Optional[str] = None
    suggested_response: str
    status: SuggestionStatus = SuggestionStatus.PENDING
    metadata: SuggestionMetadata = SuggestionMetadata()
    created_at: datetime
    updated_at: datetime

    @property
    def was_edited(self) -> bool:
        return self.updated_at != self.created_at


class TransientStatus(str, Enum):
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class SuggestionState(BaseModel):
    """
    Presentation wrapper for the local mirror.
    Never persisted; exists only inside a SuggestionStore snapshot.
    """

    model_config = ConfigDict(frozen=True)

    suggestion: Suggestion
    status: TransientStatus = TransientStatus.SUCCESS
    error: Optional[str] = None
