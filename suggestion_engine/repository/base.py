"""Remote persistent store interface consumed by the engine."""

from datetime import datetime
from typing import Callable, List, Optional, Protocol

from suggestion_engine.models.change_feed import ChangeEvent, ChannelStatus
from suggestion_engine.models.feedback import FeedbackEvent
from suggestion_engine.models.suggestion import Suggestion, SuggestionStatus
from suggestion_engine.models.ticket import Ticket

StatusCallback = Callable[..., None]


class SuggestionRepository(Protocol):
    """
    Everything the engine needs from the remote store.

    Writes must be visible to subsequent reads, and every suggestion write
    should be delivered to the ticket's change-feed subscribers.
    """

    def list_suggestions(self, ticket_id: str) -> List[Suggestion]:
        """All suggestions for a ticket, creation time ascending."""
        ...

    def get_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        ...

    def subscribe(
        self,
        ticket_id: str,
        handler: Callable[[ChangeEvent], None],
        on_status: Optional[StatusCallback] = None,
    ) -> Callable[[], None]:
        """
        Deliver the ticket's change events serially to handler.
        on_status is called with a ChannelStatus (and an exception for
        CHANNEL_ERROR). Returns the unsubscribe callable.
        """
        ...

    def update_suggestion_status(
        self,
        suggestion_id: str,
        status: SuggestionStatus,
        updated_at: datetime,
    ) -> Suggestion:
        ...

    def insert_feedback_event(self, event: FeedbackEvent) -> FeedbackEvent:
        ...

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """The ticket with its full message history."""
        ...


__all__ = ["ChannelStatus", "StatusCallback", "SuggestionRepository"]
