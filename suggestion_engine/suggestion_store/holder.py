"""Single logical owner of a ticket's current SuggestionStore snapshot."""

import threading
from typing import Callable, Optional

from suggestion_engine.suggestion_store.store import SuggestionStore


class StoreHolder:
    """
    Holds the current snapshot and serializes every swap behind one lock,
    so fetches, change events and optimistic changes never interleave.
    """

    def __init__(self, store: Optional[SuggestionStore] = None):
        self._store = store if store is not None else SuggestionStore()
        self._lock = threading.RLock()

    @property
    def store(self) -> SuggestionStore:
        return self._store

    def swap(self, change: Callable[[SuggestionStore], SuggestionStore]) -> SuggestionStore:
        """Replace the snapshot with change(current) and return the new one."""
        with self._lock:
            self._store = change(self._store)
            return self._store

    def replace(self, store: SuggestionStore) -> SuggestionStore:
        return self.swap(lambda _: store)
