"""Tests for ticket JSONL loading and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ticket_insights.io import (
    TicketDatasetError,
    load_tickets_jsonl,
    summarize_tickets,
    validate_tickets_jsonl,
)
from ticket_insights.mock_data import generate_mock_tickets


def _ticket_row(ticket_id: int, **overrides) -> dict:
    row = {
        "id": ticket_id,
        "subject": f"Subject {ticket_id}",
        "status": "open",
        "assignee": "Alice Johnson",
        "created_at": "2025-01-01T00:00:00Z",
    }
    row.update(overrides)
    return row


def _write_lines(path: Path, lines: list[str]) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class TestLoadTickets:
    def test_load_valid_file(self, tmp_path):
        path = _write_lines(
            tmp_path / "tickets.jsonl",
            [json.dumps(_ticket_row(1)), "", json.dumps(_ticket_row(2, sla_breached=True))],
        )
        tickets = load_tickets_jsonl(path)
        assert [ticket.id for ticket in tickets] == [1, 2]
        assert tickets[1].sla_breached is True

    def test_limit(self, tmp_path):
        path = _write_lines(
            tmp_path / "tickets.jsonl", [json.dumps(_ticket_row(i)) for i in range(1, 6)]
        )
        assert len(load_tickets_jsonl(path, limit=2)) == 2
        with pytest.raises(ValueError):
            load_tickets_jsonl(path, limit=0)

    def test_missing_file(self, tmp_path):
        with pytest.raises(TicketDatasetError):
            load_tickets_jsonl(tmp_path / "missing.jsonl")

    def test_duplicate_ids_are_rejected(self, tmp_path):
        path = _write_lines(
            tmp_path / "tickets.jsonl", [json.dumps(_ticket_row(1)), json.dumps(_ticket_row(1))]
        )
        with pytest.raises(TicketDatasetError, match="Duplicate ticket id 1"):
            load_tickets_jsonl(path)

    def test_invalid_line_is_reported_with_line_number(self, tmp_path):
        path = _write_lines(tmp_path / "tickets.jsonl", [json.dumps(_ticket_row(1)), "{oops"])
        with pytest.raises(TicketDatasetError, match="line 2"):
            load_tickets_jsonl(path)

    def test_mock_tickets_round_trip(self, tmp_path):
        from ticket_insights.mock_data import write_mock_tickets

        tickets = generate_mock_tickets(count=12, seed=5)
        path = write_mock_tickets(tmp_path / "mock.jsonl", tickets)
        assert load_tickets_jsonl(path) == tickets


class TestValidateTickets:
    def test_collects_every_problem(self, tmp_path):
        path = _write_lines(
            tmp_path / "tickets.jsonl",
            [
                json.dumps(_ticket_row(1)),
                "not json",
                json.dumps([1, 2]),
                json.dumps(_ticket_row(1)),
                json.dumps(_ticket_row(3, csat_score=9)),
                json.dumps(_ticket_row(4)),
            ],
        )

        report = validate_tickets_jsonl(path, max_errors=2)

        assert report.is_valid is False
        assert report.valid_ticket_count == 2
        assert report.error_count == 4
        assert report.duplicate_id_count == 1
        assert [error.code for error in report.errors] == ["invalid_json", "non_object_line"]
        assert report.dropped_error_count == 2
        assert report.to_dict()["summary"]["ticket_count"] == 2

    def test_empty_file_is_invalid(self, tmp_path):
        path = _write_lines(tmp_path / "tickets.jsonl", [""])
        report = validate_tickets_jsonl(path)
        assert report.is_valid is False
        assert report.errors[0].code == "empty_dataset"

    def test_negative_max_errors(self, tmp_path):
        with pytest.raises(ValueError):
            validate_tickets_jsonl(tmp_path / "x.jsonl", max_errors=-1)


class TestSummarizeTickets:
    def test_summary_counts(self):
        tickets = generate_mock_tickets(count=30, seed=2)
        summary = summarize_tickets(tickets)
        assert summary.ticket_count == 30
        assert sum(summary.status_counts.values()) == 30
        assert summary.agent_count <= 5
        assert 0.0 <= summary.sla_breach_rate <= 1.0

    def test_empty(self):
        summary = summarize_tickets([])
        assert summary.ticket_count == 0
        assert summary.avg_csat_score is None
