"""Tests for the JSONL ticket ledger."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from ticket_insights.io import JsonlTicketStore, TicketStoreError
from ticket_insights.schemas import Ticket


def _ticket(ticket_id: int) -> Ticket:
    created_at = datetime(2025, 1, 1, tzinfo=UTC)
    return Ticket(id=ticket_id, subject=f"T{ticket_id}", created_at=created_at)


class TestJsonlTicketStore:
    def test_empty_tenant(self, tmp_path):
        store = JsonlTicketStore(tmp_path)
        assert store.get_highest_id("acme") is None
        assert store.query_existing_ids("acme", [1, 2]) == set()
        assert store.load("acme") == []

    def test_insert_and_query(self, tmp_path):
        store = JsonlTicketStore(tmp_path)
        store.insert_records("acme", [_ticket(10001), _ticket(10002)])
        store.insert_records("acme", [_ticket(10005)])

        assert store.get_highest_id("acme") == 10005
        assert store.query_existing_ids("acme", [10002, 10003, 10005]) == {10002, 10005}
        assert [ticket.id for ticket in store.load("acme")] == [10001, 10002, 10005]
        assert store.get_highest_id("other") is None

    def test_insert_refuses_committed_ids(self, tmp_path):
        store = JsonlTicketStore(tmp_path)
        store.insert_records("acme", [_ticket(1)])

        with pytest.raises(TicketStoreError, match=r"\[1\]"):
            store.insert_records("acme", [_ticket(2), _ticket(1)])

        assert [ticket.id for ticket in store.load("acme")] == [1]

    def test_invalid_tenant(self, tmp_path):
        store = JsonlTicketStore(tmp_path)
        with pytest.raises(TicketStoreError):
            store.get_highest_id("../escape")

    def test_corrupt_ledger_line(self, tmp_path):
        (tmp_path / "acme.jsonl").write_text('{"id": 1}\n{"subject": "no id"}\n')
        store = JsonlTicketStore(tmp_path)
        with pytest.raises(TicketStoreError, match="line 2"):
            store.get_highest_id("acme")
