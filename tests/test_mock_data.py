"""Tests for mock data generation utilities."""

from __future__ import annotations

import pytest

from ticket_insights.io import load_tickets_jsonl
from ticket_insights.mock_data import generate_mock_tickets, write_mock_tickets


def test_generate_mock_tickets_count_and_shape():
    tickets = generate_mock_tickets(count=25, seed=11)
    assert len(tickets) == 25
    assert [ticket.id for ticket in tickets] == list(range(1, 26))

    first = tickets[0]
    assert first.subject
    assert first.conversation[0].sender == "customer"
    assert first.created_at.tzinfo is not None


def test_generate_mock_tickets_is_deterministic():
    assert generate_mock_tickets(count=40, seed=3) == generate_mock_tickets(count=40, seed=3)
    assert generate_mock_tickets(count=40, seed=3) != generate_mock_tickets(count=40, seed=4)


def test_generate_mock_tickets_status_rules():
    tickets = generate_mock_tickets(count=120, seed=3)
    for ticket in tickets:
        if ticket.status == "new":
            assert ticket.assignee is None
            assert len(ticket.conversation) == 1
        if ticket.status not in {"solved", "closed"}:
            assert ticket.csat_score is None
    assert len({ticket.category for ticket in tickets}) == 6


def test_generate_mock_tickets_start_id():
    tickets = generate_mock_tickets(count=3, seed=1, start_id=500)
    assert [ticket.id for ticket in tickets] == [500, 501, 502]


def test_generate_mock_tickets_rejects_non_positive_count():
    with pytest.raises(ValueError):
        generate_mock_tickets(count=0)


def test_write_mock_tickets_round_trip(tmp_path):
    tickets = generate_mock_tickets(count=10, seed=9)
    path = write_mock_tickets(tmp_path / "mock" / "tickets.jsonl", tickets)
    assert load_tickets_jsonl(path) == tickets
