"""
Change Feed Reconciler — keeps the local mirror consistent with the remote feed.

Maps each insert/update/delete event onto a SuggestionStore operation:
  insert  → discard if the id is already held, else insert
  update  → terminal status (accepted/rejected) removes; otherwise upsert
  delete  → remove; no-op if absent

Events may arrive out of order relative to the initial fetch. The rules
above absorb that: a duplicate insert is dropped, an update for an unknown
id is an upsert, a delete for an unknown id does nothing.
"""

import logging
from typing import Iterable

from suggestion_engine.models.change_feed import ChangeEvent, ChangeEventType
from suggestion_engine.suggestion_store.store import SuggestionStore

logger = logging.getLogger(__name__)


class ChangeFeedReconciler:
    """Stateless event → store mapping."""

    def apply(self, store: SuggestionStore, event: ChangeEvent) -> SuggestionStore:
        """Apply a single change event and return the resulting snapshot."""
        if event.type == ChangeEventType.INSERT:
            return self._apply_insert(store, event)
        if event.type == ChangeEventType.UPDATE:
            return self._apply_update(store, event)
        return store.remove(event.suggestion_id)

    def apply_all(
        self, store: SuggestionStore, events: Iterable[ChangeEvent]
    ) -> SuggestionStore:
        """Apply events serially, in delivery order."""
        for event in events:
            store = self.apply(store, event)
        return store

    def _apply_insert(self, store: SuggestionStore, event: ChangeEvent) -> SuggestionStore:
        if store.contains(event.record.id):
            logger.debug("Discarding duplicate insert for suggestion %s", event.record.id)
            return store
        return store.upsert(event.record)

    def _apply_update(self, store: SuggestionStore, event: ChangeEvent) -> SuggestionStore:
        record = event.record
        if record.status.is_terminal:
            return store.remove(record.id)
        return store.upsert(record)
