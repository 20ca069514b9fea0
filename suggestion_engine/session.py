"""
Ticket Suggestion Session — the caller-facing view of one ticket's suggestions.

Wires the pieces together for a single ticket:
  fetch        → remote active set, plus events delivered while it was read
  change feed  → ChangeFeedReconciler applied to the snapshot, event by event
  accept/reject → OptimisticMutator → FeedbackRecorder

The SuggestionEngine builds the shared collaborators once and hands out
one session per ticket.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from suggestion_engine.exceptions import ChannelError, FetchFailure
from suggestion_engine.feedback.recorder import FeedbackRecorder
from suggestion_engine.generation.client import SuggestionGenerationClient
from suggestion_engine.identity import IdentityResolver
from suggestion_engine.models.change_feed import ChangeEvent
from suggestion_engine.models.config import EngineConfig
from suggestion_engine.models.feedback import FeedbackReason, FeedbackResult
from suggestion_engine.models.suggestion import SuggestionState, SuggestionStatus
from suggestion_engine.mutator.optimistic import OptimisticMutator
from suggestion_engine.observability.tracing import InMemoryTraceCollector, TraceCollector
from suggestion_engine.reconciler.change_feed import ChangeFeedReconciler
from suggestion_engine.reconciler.subscriptions import SubscriptionRegistry
from suggestion_engine.repository.base import SuggestionRepository
from suggestion_engine.suggestion_store.holder import StoreHolder
from suggestion_engine.suggestion_store.store import SuggestionStore

logger = logging.getLogger(__name__)


class TicketSuggestionSession:
    """Live, read-only view of a ticket's pending suggestions plus the agent actions on them."""

    def __init__(
        self,
        ticket_id: str,
        repository: SuggestionRepository,
        recorder: FeedbackRecorder,
        subscriptions: SubscriptionRegistry,
        generator: Optional[SuggestionGenerationClient] = None,
        reconciler: Optional[ChangeFeedReconciler] = None,
    ):
        self.ticket_id = ticket_id
        self.repository = repository
        self.subscriptions = subscriptions
        self.generator = generator
        self.reconciler = reconciler or ChangeFeedReconciler()
        self.holder = StoreHolder()
        # Events delivered while a fetch is in flight, replayed onto its result.
        self._feed_lock = threading.RLock()
        self._fetch_buffers: List[List[ChangeEvent]] = []
        self.mutator = OptimisticMutator(ticket_id, self.holder, recorder)

        self._is_loading = False
        self._error: Optional[Exception] = None
        self._stale = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    # --- Live view ---

    @property
    def suggestions(self) -> Tuple[SuggestionState, ...]:
        return self.holder.store.states()

    @property
    def store(self) -> SuggestionStore:
        return self.holder.store

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def is_stale(self) -> bool:
        """True after a channel error, until the next start()."""
        return self._stale

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    # --- Lifecycle ---

    def start(self) -> "TicketSuggestionSession":
        """Subscribe to the ticket's change feed, then load the current snapshot."""
        logger.info("Setting up suggestion subscription for ticket %s", self.ticket_id)
        self._stale = False
        self._unsubscribe = self.subscriptions.subscribe(
            self.ticket_id, self.handle_change, on_error=self._on_channel_error
        )
        self.fetch_suggestions()
        return self

    def close(self) -> None:
        if self._unsubscribe is not None:
            logger.info("Cleaning up suggestion subscription for ticket %s", self.ticket_id)
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> "TicketSuggestionSession":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- Operations ---

    def fetch_suggestions(self) -> SuggestionStore:
        """
        Replace the local snapshot with the ticket's pending suggestions.
        Change events delivered while the read is in flight are replayed on
        top of the fetched records. On failure the snapshot is left as it was.
        """
        buffered: List[ChangeEvent] = []
        with self._feed_lock:
            self._fetch_buffers.append(buffered)
        self._is_loading = True
        try:
            fetched = self.repository.list_suggestions(self.ticket_id)
        except Exception as e:
            logger.error("Error fetching suggestions for ticket %s: %s", self.ticket_id, e)
            failure = FetchFailure(
                f"Failed to fetch suggestions: {e}", ticket_id=self.ticket_id
            )
            self._error = failure
            with self._feed_lock:
                self._fetch_buffers.remove(buffered)
            raise failure from e
        finally:
            self._is_loading = False

        logger.info("Fetched %d suggestions for ticket %s", len(fetched), self.ticket_id)
        self._error = None
        active = [s for s in fetched if s.status == SuggestionStatus.PENDING]
        fresh = SuggestionStore.from_suggestions(active)
        with self._feed_lock:
            self._fetch_buffers.remove(buffered)
            if buffered:
                logger.debug(
                    "Replaying %d events received during fetch for ticket %s",
                    len(buffered),
                    self.ticket_id,
                )
            return self.holder.replace(self.reconciler.apply_all(fresh, buffered))

    def handle_change(self, event: ChangeEvent) -> None:
        """Change-feed handler: apply one event to the snapshot."""
        logger.debug(
            "Received suggestion %s event for ticket %s", event.type.value, self.ticket_id
        )
        with self._feed_lock:
            for buffered in self._fetch_buffers:
                buffered.append(event)
            self.holder.swap(lambda store: self.reconciler.apply(store, event))

    def trigger_suggestion_generation(self) -> dict:
        if self.generator is None:
            raise RuntimeError("No suggestion generator configured")
        self._is_loading = True
        try:
            return self.generator.generate(self.ticket_id)
        finally:
            self._is_loading = False

    def accept_suggestion(self, suggestion_id: str) -> FeedbackResult:
        return self.mutator.accept(suggestion_id)

    def reject_suggestion(
        self,
        suggestion_id: str,
        reason: Optional[FeedbackReason],
        additional_text: Optional[str] = None,
    ) -> FeedbackResult:
        return self.mutator.reject(suggestion_id, reason, additional_text)

    def _on_channel_error(self, error: ChannelError) -> None:
        self._stale = True
        self._error = error


class SuggestionEngine:
    """
    Builds the shared collaborators and owns one session per ticket.

    Sessions not asked for within config.session_idle_seconds are closed
    (their change-feed subscription torn down) the next time any session is
    requested, or by an explicit evict_idle().
    """

    def __init__(
        self,
        repository: SuggestionRepository,
        collector: Optional[TraceCollector] = None,
        identity: Optional[IdentityResolver] = None,
        generator: Optional[SuggestionGenerationClient] = None,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or EngineConfig()
        self.repository = repository
        self.collector = collector or InMemoryTraceCollector(
            max_retained=self.config.retained_traces
        )
        self.identity = identity or IdentityResolver.from_context(
            retry_delay_seconds=self.config.identity_retry_delay_seconds
        )
        self.generator = generator
        self.recorder = FeedbackRecorder(
            repository=repository,
            collector=self.collector,
            identity=self.identity,
            config=self.config,
        )
        self.subscriptions = SubscriptionRegistry(repository)
        self._sessions: Dict[str, TicketSuggestionSession] = {}
        self._last_used: Dict[str, float] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def session(self, ticket_id: str) -> TicketSuggestionSession:
        """The started session for a ticket, created on first use."""
        with self._lock:
            self._evict_idle_locked(keep=ticket_id)
            session = self._get_or_start(ticket_id)
            self._last_used[ticket_id] = self._clock()
            return session

    def _get_or_start(self, ticket_id: str) -> TicketSuggestionSession:
        session = self._sessions.get(ticket_id)
        if session is None:
            session = TicketSuggestionSession(
                ticket_id=ticket_id,
                repository=self.repository,
                recorder=self.recorder,
                subscriptions=self.subscriptions,
                generator=self.generator,
            )
            try:
                session.start()
            except Exception:
                session.close()
                raise
            self._sessions[ticket_id] = session
        return session

    def close_session(self, ticket_id: str) -> bool:
        with self._lock:
            return self._close_locked(ticket_id)

    def evict_idle(self) -> List[str]:
        """Close every session idle for longer than the configured limit."""
        with self._lock:
            return self._evict_idle_locked()

    def _evict_idle_locked(self, keep: Optional[str] = None) -> List[str]:
        limit = self.config.session_idle_seconds
        if limit is None:
            return []
        now = self._clock()
        idle = [
            ticket_id
            for ticket_id, used in self._last_used.items()
            if ticket_id != keep and now - used > limit
        ]
        for ticket_id in idle:
            logger.info("Closing idle suggestion session for ticket %s", ticket_id)
            self._close_locked(ticket_id)
        return idle

    def _close_locked(self, ticket_id: str) -> bool:
        self._last_used.pop(ticket_id, None)
        session = self._sessions.pop(ticket_id, None)
        if session is None:
            return False
        session.close()
        return True

    @property
    def active_tickets(self) -> list:
        return list(self._sessions)

    def close(self) -> None:
        with self._lock:
            for ticket_id in list(self._sessions):
                self._close_locked(ticket_id)
        self.subscriptions.close()
        if self.generator is not None:
            self.generator.close()
