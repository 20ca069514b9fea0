"""
Optimistic Mutator — agent decisions applied to the local mirror.

Pattern: apply a reversible change locally, attempt the remote call, and
invert the local change if the remote call raises. The error always
propagates to the caller.

  accept  → remote first; local removal only after confirmation
  reject  → local removal first; reinserted if the remote call fails
"""

import logging
from typing import Callable, Optional, TypeVar

from suggestion_engine.feedback.recorder import FeedbackRecorder
from suggestion_engine.models.feedback import (
    FeedbackReason,
    FeedbackResult,
    FeedbackSubmission,
    FeedbackType,
)
from suggestion_engine.models.suggestion import SuggestionState, TransientStatus
from suggestion_engine.suggestion_store.holder import StoreHolder
from suggestion_engine.suggestion_store.store import SuggestionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReversibleChange:
    """A local store change that knows how to undo itself."""

    description = "change"

    def apply(self, store: SuggestionStore) -> SuggestionStore:
        raise NotImplementedError

    def invert(self, store: SuggestionStore) -> SuggestionStore:
        raise NotImplementedError


class RemoveSuggestion(ReversibleChange):
    """Remove an entry, remembering it so it can be put back."""

    def __init__(self, suggestion_id: str):
        self.suggestion_id = suggestion_id
        self.description = f"remove suggestion {suggestion_id}"
        self.removed: Optional[SuggestionState] = None

    def apply(self, store: SuggestionStore) -> SuggestionStore:
        self.removed = store.get_state(self.suggestion_id)
        return store.remove(self.suggestion_id)

    def invert(self, store: SuggestionStore) -> SuggestionStore:
        # A newer copy delivered by the change feed in the meantime wins.
        if self.removed is None or store.contains(self.suggestion_id):
            return store
        return store.put_state(self.removed)


def run_optimistically(
    holder: StoreHolder,
    change: ReversibleChange,
    remote_call: Callable[[], T],
) -> T:
    """Apply change locally, run remote_call, invert the change if it raises."""
    holder.swap(change.apply)
    try:
        return remote_call()
    except Exception:
        logger.exception("Remote call failed, rolling back local %s", change.description)
        holder.swap(change.invert)
        raise


class OptimisticMutator:
    """Accept/reject for one ticket's suggestions."""

    def __init__(self, ticket_id: str, holder: StoreHolder, recorder: FeedbackRecorder):
        self.ticket_id = ticket_id
        self.holder = holder
        self.recorder = recorder

    def accept(self, suggestion_id: str) -> FeedbackResult:
        submission = FeedbackSubmission(
            suggestion_id=suggestion_id,
            ticket_id=self.ticket_id,
            feedback_type=FeedbackType.APPROVAL,
        )
        self.holder.swap(lambda s: s.mark(suggestion_id, TransientStatus.LOADING))
        try:
            result = self.recorder.record(submission)
        except Exception as e:
            self.holder.swap(lambda s: s.mark(suggestion_id, TransientStatus.ERROR, str(e)))
            raise
        self.holder.swap(lambda s: s.remove(suggestion_id))
        return result

    def reject(
        self,
        suggestion_id: str,
        reason: Optional[FeedbackReason],
        additional_text: Optional[str] = None,
    ) -> FeedbackResult:
        submission = FeedbackSubmission(
            suggestion_id=suggestion_id,
            ticket_id=self.ticket_id,
            feedback_type=FeedbackType.REJECTION,
            feedback_reason=reason,
            metadata={"additional_feedback": additional_text} if additional_text else {},
        )
        # Invalid submissions never touch the local mirror.
        FeedbackRecorder.validate(submission)
        return run_optimistically(
            self.holder,
            RemoveSuggestion(suggestion_id),
            lambda: self.recorder.record(submission),
        )
