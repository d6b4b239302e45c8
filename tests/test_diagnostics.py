"""Tests for the diagnostics ring buffer."""

from __future__ import annotations

import logging

import pytest

from ticket_insights.observability.diagnostics import (
    DiagnosticEntry,
    DiagnosticsBuffer,
    get_diagnostics_buffer,
    init_diagnostics_buffer,
    record_diagnostic,
)


def _entry(flow_name: str) -> DiagnosticEntry:
    return DiagnosticEntry(direction="sent", flow_name=flow_name, payload_size=10)


class TestDiagnosticsBuffer:
    def test_oldest_entries_are_evicted(self):
        buffer = DiagnosticsBuffer(capacity=3)
        for index in range(5):
            buffer.append(_entry(f"flow_{index}"))

        assert len(buffer) == 3
        assert [entry.flow_name for entry in buffer.snapshot()] == ["flow_2", "flow_3", "flow_4"]

    def test_drain_empties_the_buffer(self):
        buffer = DiagnosticsBuffer(capacity=5)
        buffer.append(_entry("a"))
        buffer.append(_entry("b"))

        drained = buffer.drain()

        assert [entry.flow_name for entry in drained] == ["a", "b"]
        assert len(buffer) == 0
        assert buffer.snapshot() == []

    def test_clear(self):
        buffer = DiagnosticsBuffer(capacity=2)
        buffer.append(_entry("a"))
        buffer.clear()
        assert len(buffer) == 0

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            DiagnosticsBuffer(capacity=0)

    def test_entry_to_dict_serializes_timestamp(self):
        row = _entry("a").to_dict()
        assert row["flow_name"] == "a"
        assert isinstance(row["timestamp"], str)


class TestRecordDiagnostic:
    def test_records_entry_and_truncates_detail(self):
        buffer = DiagnosticsBuffer(capacity=5)
        record_diagnostic(
            buffer, direction="error", flow_name="batch_analysis", payload_size=0, detail="x" * 900
        )
        (entry,) = buffer.snapshot()
        assert entry.direction == "error"
        assert len(entry.detail) == 500

    def test_no_buffer_is_a_noop(self):
        record_diagnostic(None, direction="sent", flow_name="a", payload_size=1)

    def test_sink_failure_is_logged_not_raised(self, caplog):
        class _BrokenBuffer(DiagnosticsBuffer):
            def append(self, entry):
                raise RuntimeError("disk full")

        with caplog.at_level(logging.WARNING):
            record_diagnostic(_BrokenBuffer(), direction="sent", flow_name="a", payload_size=1)

        assert "Failed to record diagnostic entry for a" in caplog.text


def test_init_replaces_the_process_buffer():
    first = init_diagnostics_buffer(4)
    assert get_diagnostics_buffer() is first
    assert first.capacity == 4

    second = init_diagnostics_buffer(8)
    assert get_diagnostics_buffer() is second
    assert second is not first
