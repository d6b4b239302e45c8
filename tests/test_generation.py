"""Tests for duplicate-avoiding ticket generation."""

from __future__ import annotations

import json

import pytest

from ticket_insights.config import Settings
from ticket_insights.io import JsonlTicketStore
from ticket_insights.mock_data import generate_mock_tickets
from ticket_insights.models import ModelRequest
from ticket_insights.pipeline import AllDuplicatesError
from ticket_insights.pipeline.generation import generate_records


class _GeneratorInvoker:
    """Returns tickets with the given ids, regardless of the requested start id."""

    def __init__(self, ids: list[int]):
        self.ids = ids
        self.requests: list[ModelRequest] = []

    def invoke(self, request: ModelRequest) -> str:
        self.requests.append(request)
        tickets = [
            {
                "id": ticket_id,
                "subject": f"Generated issue {ticket_id}",
                "status": "Open",
                "category": "Billing",
                "conversation": [{"sender": "customer", "message": "Help please"}],
            }
            for ticket_id in self.ids
        ]
        return json.dumps(tickets)


def _settings() -> Settings:
    return Settings(
        openai_api_key="test",
        client_backoff_seconds=0.0,
        client_backoff_jitter_seconds=0.0,
    )


class TestGenerateRecords:
    def test_first_run_commits_everything_from_the_floor(self, tmp_path):
        store = JsonlTicketStore(tmp_path)
        invoker = _GeneratorInvoker([10001, 10002, 10003])

        result = generate_records(3, "acme", invoker, _settings(), store)

        assert result.start_id == 10001
        assert [ticket.id for ticket in result.committed] == [10001, 10002, 10003]
        assert result.committed[0].status == "open"
        assert store.get_highest_id("acme") == 10003
        assert "10001" in invoker.requests[0].user_prompt

    def test_ids_already_in_the_ledger_are_dropped(self, tmp_path):
        store = JsonlTicketStore(tmp_path)
        store.insert_records("acme", generate_mock_tickets(count=3, seed=1, start_id=100))
        invoker = _GeneratorInvoker([101, 102, 103, 104])

        result = generate_records(4, "acme", invoker, _settings(), store)

        assert [ticket.id for ticket in result.committed] == [103, 104]
        assert result.dropped_count == 2
        assert store.query_existing_ids("acme", [100, 101, 102, 103, 104]) == {
            100,
            101,
            102,
            103,
            104,
        }

    def test_nothing_new_raises_and_commits_nothing(self, tmp_path):
        store = JsonlTicketStore(tmp_path)
        store.insert_records("acme", generate_mock_tickets(count=3, seed=1, start_id=100))
        invoker = _GeneratorInvoker([100, 101, 102])

        with pytest.raises(AllDuplicatesError):
            generate_records(3, "acme", invoker, _settings(), store)

        assert len(store.load("acme")) == 3

    def test_extra_tickets_beyond_the_request_are_not_committed(self, tmp_path):
        store = JsonlTicketStore(tmp_path)
        invoker = _GeneratorInvoker([10001, 10002, 10003, 10004])

        result = generate_records(2, "acme", invoker, _settings(), store)

        assert [ticket.id for ticket in result.committed] == [10001, 10002]
        assert result.dropped_count == 2

    def test_count_out_of_range(self, tmp_path):
        store = JsonlTicketStore(tmp_path)
        with pytest.raises(ValueError):
            generate_records(0, "acme", _GeneratorInvoker([]), _settings(), store)
        with pytest.raises(ValueError):
            generate_records(101, "acme", _GeneratorInvoker([]), _settings(), store)
