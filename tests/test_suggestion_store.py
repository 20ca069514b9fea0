"""Tests for the Suggestion Store."""

from datetime import datetime, timedelta, timezone

from suggestion_engine.models.suggestion import (
    Suggestion,
    SuggestionState,
    TransientStatus,
)
from suggestion_engine.suggestion_store.holder import StoreHolder
from suggestion_engine.suggestion_store.store import SuggestionStore

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _make_suggestion(
    suggestion_id: str,
    minutes: int = 0,
    text: str = "Suggested reply",
) -> Suggestion:
    created = T0 + timedelta(minutes=minutes)
    return Suggestion(
        id=suggestion_id,
        ticket_id="ticket_1",
        suggested_response=text,
        created_at=created,
        updated_at=created,
    )


class TestSuggestionStore:
    def test_empty(self):
        store = SuggestionStore()
        assert len(store) == 0
        assert store.list() == []
        assert store.get("missing") is None

    def test_upsert_inserts_by_creation_time(self):
        store = SuggestionStore()
        store = store.upsert(_make_suggestion("s2", minutes=2))
        store = store.upsert(_make_suggestion("s1", minutes=1))
        store = store.upsert(_make_suggestion("s3", minutes=3))
        assert store.ids() == ["s1", "s2", "s3"]

    def test_equal_creation_times_keep_arrival_order(self):
        store = SuggestionStore()
        store = store.upsert(_make_suggestion("a"))
        store = store.upsert(_make_suggestion("b"))
        assert store.ids() == ["a", "b"]

    def test_upsert_replaces_in_place(self):
        store = SuggestionStore.from_suggestions([
            _make_suggestion("s1", minutes=1),
            _make_suggestion("s2", minutes=2),
        ])
        store = store.upsert(_make_suggestion("s1", minutes=1, text="Revised"))
        assert store.ids() == ["s1", "s2"]
        assert store.get("s1").suggested_response == "Revised"
        assert len(store) == 2

    def test_upsert_keeps_transient_state(self):
        store = SuggestionStore.from_suggestions([_make_suggestion("s1")])
        store = store.mark("s1", TransientStatus.LOADING)
        store = store.upsert(_make_suggestion("s1", text="Revised"))
        assert store.get_state("s1").status == TransientStatus.LOADING

    def test_remove(self):
        store = SuggestionStore.from_suggestions([
            _make_suggestion("s1"),
            _make_suggestion("s2", minutes=1),
        ])
        store = store.remove("s1")
        assert store.ids() == ["s2"]

    def test_remove_absent_is_noop(self):
        store = SuggestionStore.from_suggestions([_make_suggestion("s1")])
        assert store.remove("missing") is store

    def test_operations_never_mutate_snapshot(self):
        original = SuggestionStore.from_suggestions([_make_suggestion("s1")])
        original.upsert(_make_suggestion("s2", minutes=1))
        original.remove("s1")
        original.mark("s1", TransientStatus.ERROR, "boom")
        assert original.ids() == ["s1"]
        assert original.get_state("s1").status == TransientStatus.SUCCESS

    def test_from_suggestions_deduplicates(self):
        store = SuggestionStore.from_suggestions([
            _make_suggestion("s1", text="first"),
            _make_suggestion("s1", text="second"),
        ])
        assert len(store) == 1
        assert store.get("s1").suggested_response == "second"

    def test_put_state_restores_position(self):
        s1, s2, s3 = (_make_suggestion(f"s{i}", minutes=i) for i in (1, 2, 3))
        store = SuggestionStore.from_suggestions([s1, s2, s3])
        removed = store.get_state("s2")
        store = store.remove("s2").put_state(removed)
        assert store.ids() == ["s1", "s2", "s3"]

    def test_mark_absent_is_noop(self):
        store = SuggestionStore()
        assert store.mark("missing", TransientStatus.ERROR) is store

    def test_equality(self):
        a = SuggestionStore.from_suggestions([_make_suggestion("s1")])
        b = SuggestionStore([SuggestionState(suggestion=_make_suggestion("s1"))])
        assert a == b


class TestStoreHolder:
    def test_swap_replaces_snapshot(self):
        holder = StoreHolder()
        before = holder.store
        after = holder.swap(lambda s: s.upsert(_make_suggestion("s1")))
        assert holder.store is after
        assert len(before) == 0
        assert after.ids() == ["s1"]

    def test_replace(self):
        holder = StoreHolder()
        store = SuggestionStore.from_suggestions([_make_suggestion("s1")])
        holder.replace(store)
        assert holder.store is store
