"""
Suggestion Store — the local mirror of one ticket's active suggestions.

Updated by: initial fetch + change feed + optimistic mutations
Queried by: the session's live view

Behavioral Contract:
- A store is an immutable snapshot. Every operation returns a new store;
  nothing mutates a snapshot in place.
- Entries are unique by suggestion id and ordered by creation time
  (ties keep arrival order).
- No operation raises. Absence is a valid outcome.
"""

from typing import Iterable, Iterator, List, Optional, Tuple

from suggestion_engine.models.suggestion import (
    Suggestion,
    SuggestionState,
    TransientStatus,
)


class SuggestionStore:
    """Ordered, deduplicated, immutable collection of SuggestionStates."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[SuggestionState] = ()):
        ordered: List[SuggestionState] = []
        for state in entries:
            ordered = _place(ordered, state)
        self._entries: Tuple[SuggestionState, ...] = tuple(ordered)

    @classmethod
    def from_suggestions(cls, suggestions: Iterable[Suggestion]) -> "SuggestionStore":
        """Build a snapshot from fetched records, all marked success."""
        return cls(SuggestionState(suggestion=s) for s in suggestions)

    # --- Queries ---

    def list(self) -> List[Suggestion]:
        """The held suggestions in order."""
        return [state.suggestion for state in self._entries]

    def states(self) -> Tuple[SuggestionState, ...]:
        return self._entries

    def get(self, suggestion_id: str) -> Optional[Suggestion]:
        state = self.get_state(suggestion_id)
        return state.suggestion if state else None

    def get_state(self, suggestion_id: str) -> Optional[SuggestionState]:
        for state in self._entries:
            if state.suggestion.id == suggestion_id:
                return state
        return None

    def contains(self, suggestion_id: str) -> bool:
        return self.get_state(suggestion_id) is not None

    def ids(self) -> List[str]:
        return [state.suggestion.id for state in self._entries]

    # --- Transformations ---

    def upsert(self, suggestion: Suggestion) -> "SuggestionStore":
        """Insert if absent; replace the record in place if present."""
        existing = self.get_state(suggestion.id)
        if existing is None:
            return self.put_state(SuggestionState(suggestion=suggestion))
        return self._replace(existing.model_copy(update={"suggestion": suggestion}))

    def put_state(self, state: SuggestionState) -> "SuggestionStore":
        """Insert or replace a whole entry, transient state included."""
        if self.contains(state.suggestion.id):
            return self._replace(state)
        return SuggestionStore._from_ordered(_place(list(self._entries), state))

    def remove(self, suggestion_id: str) -> "SuggestionStore":
        if not self.contains(suggestion_id):
            return self
        return SuggestionStore._from_ordered(
            [s for s in self._entries if s.suggestion.id != suggestion_id]
        )

    def mark(
        self,
        suggestion_id: str,
        status: TransientStatus,
        error: Optional[str] = None,
    ) -> "SuggestionStore":
        """Set the transient status of an entry. No-op when absent."""
        existing = self.get_state(suggestion_id)
        if existing is None:
            return self
        return self._replace(
            existing.model_copy(update={"status": status, "error": error})
        )

    # --- Internals ---

    def _replace(self, state: SuggestionState) -> "SuggestionStore":
        return SuggestionStore._from_ordered(
            [
                state if s.suggestion.id == state.suggestion.id else s
                for s in self._entries
            ]
        )

    @classmethod
    def _from_ordered(cls, entries: List[SuggestionState]) -> "SuggestionStore":
        store = cls.__new__(cls)
        store._entries = tuple(entries)
        return store

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Suggestion]:
        return iter(self.list())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SuggestionStore):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"SuggestionStore(ids={self.ids()!r})"


def _place(entries: List[SuggestionState], state: SuggestionState) -> List[SuggestionState]:
    """Return entries with state inserted by creation time, replacing any same-id entry."""
    entries = [s for s in entries if s.suggestion.id != state.suggestion.id]
    created_at = state.suggestion.created_at
    index = len(entries)
    for i, existing in enumerate(entries):
        if existing.suggestion.created_at > created_at:
            index = i
            break
    return entries[:index] + [state] + entries[index:]
