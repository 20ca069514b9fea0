"""
Subscription Registry — at most one live change-feed subscription per ticket.

Establishing a subscription for a ticket first tears down any prior one for
the same ticket, so events are never delivered twice. close() tears down
everything and is safe to call more than once.
"""

import logging
import threading
from typing import Callable, Dict, Optional

from suggestion_engine.exceptions import ChannelError
from suggestion_engine.models.change_feed import ChangeEvent, ChannelStatus
from suggestion_engine.repository.base import SuggestionRepository

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], None]
ErrorHandler = Callable[[ChannelError], None]


class _Subscription:
    def __init__(self, unsubscribe: Callable[[], None]):
        self.unsubscribe = unsubscribe


class SubscriptionRegistry:
    """Owns change-feed subscription lifetimes, keyed by ticket id."""

    def __init__(self, repository: SuggestionRepository):
        self.repository = repository
        self._subscriptions: Dict[str, _Subscription] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        ticket_id: str,
        handler: ChangeHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Callable[[], None]:
        """
        Subscribe handler to the ticket's change feed, replacing any
        existing subscription for that ticket. Returns a callable that
        tears this subscription down.
        """
        with self._lock:
            previous = self._subscriptions.pop(ticket_id, None)
        if previous is not None:
            logger.info("Cleaning up previous suggestion subscription for ticket %s", ticket_id)
            previous.unsubscribe()

        def on_status(status: ChannelStatus, error: Optional[Exception] = None) -> None:
            self._on_status(ticket_id, status, error, on_error)

        subscription = _Subscription(
            self.repository.subscribe(ticket_id, handler, on_status=on_status)
        )
        with self._lock:
            self._subscriptions[ticket_id] = subscription
        return lambda: self._release(ticket_id, subscription)

    def unsubscribe(self, ticket_id: str) -> bool:
        with self._lock:
            subscription = self._subscriptions.pop(ticket_id, None)
        if subscription is None:
            return False
        subscription.unsubscribe()
        return True

    def is_subscribed(self, ticket_id: str) -> bool:
        with self._lock:
            return ticket_id in self._subscriptions

    def close(self) -> None:
        """Tear down every live subscription."""
        with self._lock:
            pending = list(self._subscriptions.items())
            self._subscriptions.clear()
        for ticket_id, subscription in pending:
            logger.info("Shutting down suggestion subscription for ticket %s", ticket_id)
            subscription.unsubscribe()

    def _release(self, ticket_id: str, subscription: _Subscription) -> None:
        """Tear down one specific subscription; a stale handle is a no-op."""
        with self._lock:
            if self._subscriptions.get(ticket_id) is not subscription:
                return
            del self._subscriptions[ticket_id]
        subscription.unsubscribe()

    def _on_status(
        self,
        ticket_id: str,
        status: ChannelStatus,
        error: Optional[Exception],
        on_error: Optional[ErrorHandler],
    ) -> None:
        if status == ChannelStatus.SUBSCRIBED:
            logger.info("Subscribed to suggestion changes for ticket %s", ticket_id)
        elif status == ChannelStatus.CLOSED:
            logger.info("Suggestion subscription closed for ticket %s", ticket_id)
        elif status == ChannelStatus.CHANNEL_ERROR:
            channel_error = ChannelError(
                f"Error in suggestion subscription for ticket {ticket_id}",
                ticket_id=ticket_id,
                cause=str(error) if error else None,
            )
            logger.error("%s", channel_error)
            if on_error is not None:
                on_error(channel_error)
