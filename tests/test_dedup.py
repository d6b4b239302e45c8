"""Tests for the dedup guard."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from ticket_insights.pipeline.dedup import DEFAULT_ID_FLOOR, AllDuplicatesError, DedupGuard


@dataclass(frozen=True)
class _Candidate:
    id: int
    subject: str = "generated"


class _InMemoryStore:
    def __init__(self, committed: dict[str, set[int]] | None = None):
        self.committed = committed or {}

    def insert_records(self, tenant, records):
        self.committed.setdefault(tenant, set()).update(record.id for record in records)
        return list(records)

    def query_existing_ids(self, tenant, candidate_ids):
        return self.committed.get(tenant, set()).intersection(candidate_ids)

    def get_highest_id(self, tenant):
        ids = self.committed.get(tenant)
        return max(ids) if ids else None


class TestNextStartId:
    def test_empty_ledger_starts_at_floor(self):
        guard = DedupGuard(_InMemoryStore())
        assert guard.next_start_id("acme") == DEFAULT_ID_FLOOR == 10001

    def test_below_floor_history_still_starts_at_floor(self):
        guard = DedupGuard(_InMemoryStore({"acme": {100, 101, 102}}))
        assert guard.next_start_id("acme") == 10001

    def test_continues_after_highest_committed_id(self):
        guard = DedupGuard(_InMemoryStore({"acme": {10001, 10050}}))
        assert guard.next_start_id("acme") == 10051

    def test_tenants_are_isolated(self):
        guard = DedupGuard(_InMemoryStore({"acme": {20000}}), id_floor=1)
        assert guard.next_start_id("globex") == 1


class TestFilterNew:
    def test_drops_ids_already_committed(self):
        guard = DedupGuard(_InMemoryStore({"acme": {100, 101, 102}}))
        candidates = [_Candidate(ticket_id) for ticket_id in (101, 102, 103, 104)]

        kept = guard.filter_new(candidates, "acme")

        assert [candidate.id for candidate in kept] == [103, 104]

    def test_drops_repeats_within_the_batch(self):
        guard = DedupGuard(_InMemoryStore())
        candidates = [_Candidate(5, "first"), _Candidate(5, "second"), _Candidate(6)]

        kept = guard.filter_new(candidates, "acme")

        assert [(candidate.id, candidate.subject) for candidate in kept] == [
            (5, "first"),
            (6, "generated"),
        ]

    def test_all_duplicates_is_an_explicit_error(self):
        guard = DedupGuard(_InMemoryStore({"acme": {100, 101, 102}}))

        with pytest.raises(AllDuplicatesError) as exc_info:
            guard.filter_new([_Candidate(100), _Candidate(101)], "acme")

        assert exc_info.value.tenant == "acme"
        assert exc_info.value.candidate_ids == [100, 101]

    def test_empty_candidates(self):
        assert DedupGuard(_InMemoryStore()).filter_new([], "acme") == []

    def test_custom_key(self):
        guard = DedupGuard(_InMemoryStore({"acme": {1}}))
        kept = guard.filter_new([{"ticket": 1}, {"ticket": 2}], "acme", key=lambda c: c["ticket"])
        assert kept == [{"ticket": 2}]
