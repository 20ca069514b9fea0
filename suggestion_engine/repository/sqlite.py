"""
SQLite Suggestion Repository — reference implementation of the remote store.

Behavioral Contract:
- Suggestions are readable per ticket in creation order.
- Status updates only move a suggestion out of pending (pending → accepted
  or pending → rejected). Anything else raises InvalidStatusTransition.
- Feedback events are append-only. Triggers reject UPDATE and DELETE on
  the feedback table, so there is no mutation path even through raw SQL.
- Every suggestion write is published as a ChangeEvent to the ticket's
  subscribers, serially and in commit order: events are delivered while
  the write lock is still held, so handlers must not block on other writers.
"""

import itertools
import logging
import sqlite3
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from suggestion_engine.exceptions import InvalidStatusTransition
from suggestion_engine.models.change_feed import ChangeEvent, ChannelStatus
from suggestion_engine.models.feedback import FeedbackEvent
from suggestion_engine.models.suggestion import Suggestion, SuggestionStatus
from suggestion_engine.models.ticket import Ticket, TicketMessage
from suggestion_engine.repository.base import StatusCallback

logger = logging.getLogger(__name__)


class _Subscriber:
    def __init__(
        self,
        handler: Callable[[ChangeEvent], None],
        on_status: Optional[StatusCallback],
    ):
        self.handler = handler
        self.on_status = on_status

    def notify(self, status: ChannelStatus, error: Optional[Exception] = None) -> None:
        if self.on_status is None:
            return
        if error is None:
            self.on_status(status)
        else:
            self.on_status(status, error)


class SQLiteSuggestionRepository:
    """
    Suggestion, ticket and feedback storage backed by SQLite, with an
    in-process change feed.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._subscribers: Dict[str, Dict[int, _Subscriber]] = {}
        self._tokens = itertools.count(1)
        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables, indexes and immutability triggers."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS tickets (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                priority TEXT
            );

            CREATE TABLE IF NOT EXISTS ticket_messages (
                id TEXT PRIMARY KEY,
                ticket_id TEXT NOT NULL REFERENCES tickets(id),
                record_json TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS ai_suggestions (
                id TEXT PRIMARY KEY,
                ticket_id TEXT NOT NULL,
                status TEXT NOT NULL,
                record_json TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS ai_feedback_events (
                id TEXT PRIMARY KEY,
                suggestion_id TEXT NOT NULL,
                ticket_id TEXT NOT NULL,
                feedback_type TEXT NOT NULL,
                record_json TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_ticket ON ticket_messages(ticket_id);
            CREATE INDEX IF NOT EXISTS idx_suggestions_ticket ON ai_suggestions(ticket_id);
            CREATE INDEX IF NOT EXISTS idx_feedback_suggestion ON ai_feedback_events(suggestion_id);

            CREATE TRIGGER IF NOT EXISTS feedback_events_no_update
            BEFORE UPDATE ON ai_feedback_events
            BEGIN
                SELECT RAISE(ABORT, 'feedback events are immutable');
            END;

            CREATE TRIGGER IF NOT EXISTS feedback_events_no_delete
            BEFORE DELETE ON ai_feedback_events
            BEGIN
                SELECT RAISE(ABORT, 'feedback events are immutable');
            END;
        """)
        self._conn.commit()

    # --- Suggestions ---

    def add_suggestion(self, suggestion: Suggestion) -> Suggestion:
        """Insert a new suggestion (the external generation trigger's write)."""
        with self._lock:
            self._conn.execute(
                "INSERT INTO ai_suggestions (id, ticket_id, status, record_json) "
                "VALUES (?, ?, ?, ?)",
                (
                    suggestion.id,
                    suggestion.ticket_id,
                    suggestion.status.value,
                    suggestion.model_dump_json(),
                ),
            )
            self._conn.commit()
            self._publish(suggestion.ticket_id, ChangeEvent.insert(suggestion))
        return suggestion

    def list_suggestions(self, ticket_id: str) -> List[Suggestion]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT record_json FROM ai_suggestions WHERE ticket_id = ? ORDER BY rowid",
                (ticket_id,),
            ).fetchall()
        suggestions = [Suggestion.model_validate_json(r["record_json"]) for r in rows]
        return sorted(suggestions, key=lambda s: s.created_at)

    def get_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        with self._lock:
            row = self._conn.execute(
                "SELECT record_json FROM ai_suggestions WHERE id = ?", (suggestion_id,)
            ).fetchone()
        return Suggestion.model_validate_json(row["record_json"]) if row else None

    def update_suggestion_status(
        self,
        suggestion_id: str,
        status: SuggestionStatus,
        updated_at: datetime,
    ) -> Suggestion:
        with self._lock:
            current = self.get_suggestion(suggestion_id)
            if current is None:
                raise LookupError(f"Suggestion {suggestion_id} does not exist")
            if not current.status.can_transition_to(status):
                raise InvalidStatusTransition(
                    f"Cannot move suggestion {suggestion_id} from "
                    f"{current.status.value} to {status.value}",
                    suggestion_id=suggestion_id,
                )
            updated = current.model_copy(update={"status": status, "updated_at": updated_at})
            self._conn.execute(
                "UPDATE ai_suggestions SET status = ?, record_json = ? WHERE id = ?",
                (status.value, updated.model_dump_json(), suggestion_id),
            )
            self._conn.commit()
            self._publish(updated.ticket_id, ChangeEvent.update(updated))
        return updated

    def delete_suggestion(self, suggestion_id: str) -> bool:
        with self._lock:
            current = self.get_suggestion(suggestion_id)
            if current is None:
                return False
            self._conn.execute("DELETE FROM ai_suggestions WHERE id = ?", (suggestion_id,))
            self._conn.commit()
            self._publish(current.ticket_id, ChangeEvent.delete(suggestion_id))
        return True

    # --- Feedback events (append-only) ---

    def insert_feedback_event(self, event: FeedbackEvent) -> FeedbackEvent:
        with self._lock:
            self._conn.execute(
                "INSERT INTO ai_feedback_events "
                "(id, suggestion_id, ticket_id, feedback_type, record_json) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    event.id,
                    event.suggestion_id,
                    event.ticket_id,
                    event.feedback_type.value,
                    event.model_dump_json(),
                ),
            )
            self._conn.commit()
        return event

    def list_feedback_events(self, suggestion_id: Optional[str] = None) -> List[FeedbackEvent]:
        with self._lock:
            if suggestion_id:
                rows = self._conn.execute(
                    "SELECT record_json FROM ai_feedback_events "
                    "WHERE suggestion_id = ? ORDER BY rowid",
                    (suggestion_id,),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT record_json FROM ai_feedback_events ORDER BY rowid"
                ).fetchall()
        return [FeedbackEvent.model_validate_json(r["record_json"]) for r in rows]

    def count_feedback_events(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) as cnt FROM ai_feedback_events"
            ).fetchone()
        return row["cnt"]

    # --- Tickets ---

    def add_ticket(self, ticket: Ticket) -> Ticket:
        with self._lock:
            self._conn.execute(
                "INSERT INTO tickets (id, title, description, priority) VALUES (?, ?, ?, ?)",
                (ticket.id, ticket.title, ticket.description, ticket.priority),
            )
            for message in ticket.messages:
                self._insert_message(message)
            self._conn.commit()
        return ticket

    def add_message(self, message: TicketMessage) -> TicketMessage:
        with self._lock:
            self._insert_message(message)
            self._conn.commit()
        return message

    def _insert_message(self, message: TicketMessage) -> None:
        self._conn.execute(
            "INSERT INTO ticket_messages (id, ticket_id, record_json) VALUES (?, ?, ?)",
            (message.id, message.ticket_id, message.model_dump_json()),
        )

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        with self._lock:
            row = self._conn.execute(
                "SELECT id, title, description, priority FROM tickets WHERE id = ?",
                (ticket_id,),
            ).fetchone()
            if not row:
                return None
            message_rows = self._conn.execute(
                "SELECT record_json FROM ticket_messages WHERE ticket_id = ? ORDER BY rowid",
                (ticket_id,),
            ).fetchall()
        return Ticket(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            priority=row["priority"],
            messages=[TicketMessage.model_validate_json(m["record_json"]) for m in message_rows],
        )

    # --- Change feed ---

    def subscribe(
        self,
        ticket_id: str,
        handler: Callable[[ChangeEvent], None],
        on_status: Optional[StatusCallback] = None,
    ) -> Callable[[], None]:
        token = next(self._tokens)
        subscriber = _Subscriber(handler, on_status)
        with self._lock:
            self._subscribers.setdefault(ticket_id, {})[token] = subscriber
        subscriber.notify(ChannelStatus.SUBSCRIBED)

        def unsubscribe() -> None:
            with self._lock:
                removed = self._subscribers.get(ticket_id, {}).pop(token, None)
            if removed is not None:
                removed.notify(ChannelStatus.CLOSED)

        return unsubscribe

    def subscriber_count(self, ticket_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(ticket_id, {}))

    def _publish(self, ticket_id: str, event: ChangeEvent) -> None:
        """Deliver an event to every subscriber of the ticket, one at a time."""
        with self._lock:
            subscribers = list(self._subscribers.get(ticket_id, {}).values())
            for subscriber in subscribers:
                try:
                    subscriber.handler(event)
                except Exception as e:
                    logger.exception(
                        "Change handler failed for ticket %s (%s event)",
                        ticket_id,
                        event.type.value,
                    )
                    subscriber.notify(ChannelStatus.CHANNEL_ERROR, e)

    def close(self) -> None:
        """Close the database connection and drop all subscribers."""
        with self._lock:
            pending = [s for subs in self._subscribers.values() for s in subs.values()]
            self._subscribers.clear()
            self._conn.close()
        for subscriber in pending:
            subscriber.notify(ChannelStatus.CLOSED)
