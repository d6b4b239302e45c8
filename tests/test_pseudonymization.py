"""Tests for pseudonymization and PII scrubbing."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from ticket_insights.pipeline.pseudonymization import (
    Pseudonymizer,
    anonymize_ticket,
    anonymize_tickets,
    scrub_pii,
    truncate_text,
)
from ticket_insights.schemas import ConversationTurn, Ticket


def _ticket(**overrides) -> Ticket:
    fields = {
        "id": 42,
        "subject": "Refund request from ava.mercer@example.test",
        "description": "Call me on 555-010-1234. Alice Johnson promised a refund.",
        "conversation": (
            ConversationTurn(sender="customer", message="Where is my refund?"),
            ConversationTurn(sender="agent", message="Alice Johnson here, it is on its way."),
        ),
        "status": "solved",
        "priority": "high",
        "category": "Billing",
        "assignee": "Alice Johnson",
        "tags": ("billing",),
        "csat_score": 4.0,
        "created_at": datetime(2025, 3, 1, 9, 30, tzinfo=UTC),
    }
    fields.update(overrides)
    return Ticket(**fields)


class TestScrubbing:
    def test_scrub_pii_redacts_email_and_phone(self):
        text = scrub_pii("Mail ava.mercer@example.test or call (555) 010-1234 today.")
        assert "[REDACTED_EMAIL]" in text
        assert "[REDACTED_PHONE]" in text
        assert "example.test" not in text

    def test_scrub_pii_handles_empty_input(self):
        assert scrub_pii(None) == ""
        assert scrub_pii("") == ""

    def test_truncate_text(self):
        assert truncate_text("short", 10) == "short"
        assert truncate_text("abcdefghij", 4) == "abcd..."
        assert truncate_text(None, 4) == ""


class TestPseudonymizer:
    def test_tokens_follow_first_seen_order_and_are_stable(self):
        pseudonymizer = Pseudonymizer()
        assert pseudonymizer.token_for("Bob Smith") == "Agent_1"
        assert pseudonymizer.token_for("Alice Johnson") == "Agent_2"
        assert pseudonymizer.token_for("Bob Smith") == "Agent_1"
        assert len(pseudonymizer) == 2
        assert "Alice Johnson" in pseudonymizer
        assert pseudonymizer.mapping() == {"Bob Smith": "Agent_1", "Alice Johnson": "Agent_2"}

    def test_round_trip_restores_every_issued_token(self):
        pseudonymizer = Pseudonymizer()
        names = ["Alice Johnson", "Bob Smith", "Carol White"]
        tokens = [pseudonymizer.token_for(name) for name in names]

        assert [pseudonymizer.real_for(token) for token in tokens] == names
        text = f"{tokens[2]} outperformed {tokens[0]} while {tokens[1]} was on leave."
        assert pseudonymizer.restore(text) == (
            "Carol White outperformed Alice Johnson while Bob Smith was on leave."
        )

    def test_unknown_token_is_reported_not_raised(self):
        pseudonymizer = Pseudonymizer()
        pseudonymizer.token_for("Alice Johnson")
        assert pseudonymizer.real_for("Agent_9") == "Unknown (Agent_9)"
        assert pseudonymizer.restore("Agent_9 and Agent_1") == "Agent_9 and Alice Johnson"

    def test_restore_does_not_touch_longer_tokens(self):
        pseudonymizer = Pseudonymizer()
        pseudonymizer.token_for("Alice Johnson")
        assert pseudonymizer.restore("Agent_10 is not Agent_1") == (
            "Agent_10 is not Alice Johnson"
        )

    def test_restore_payload_walks_nested_values_and_keys(self):
        pseudonymizer = Pseudonymizer()
        pseudonymizer.token_for("Alice Johnson")
        payload = {
            "summary": "Agent_1 carries the queue.",
            "by_agent": {"Agent_1": {"tickets": 12}},
            "findings": [{"detail": "Agent_1 breached SLA twice", "ticket_ids": [1, 2]}],
            "confidence_score": 0.8,
        }
        restored = pseudonymizer.restore_payload(payload)
        assert restored == {
            "summary": "Alice Johnson carries the queue.",
            "by_agent": {"Alice Johnson": {"tickets": 12}},
            "findings": [{"detail": "Alice Johnson breached SLA twice", "ticket_ids": [1, 2]}],
            "confidence_score": 0.8,
        }

    def test_instances_are_independent(self):
        first = Pseudonymizer()
        second = Pseudonymizer()
        first.token_for("Alice Johnson")
        assert second.token_for("Bob Smith") == "Agent_1"
        assert second.real_for("Agent_1") == "Bob Smith"

    def test_scrub_replaces_known_names(self):
        pseudonymizer = Pseudonymizer()
        pseudonymizer.token_for("Alice Johnson")
        assert pseudonymizer.scrub("Ask Alice Johnson at alice@corp.example") == (
            "Ask Agent_1 at [REDACTED_EMAIL]"
        )

    def test_scrub_only_replaces_whole_names(self):
        pseudonymizer = Pseudonymizer()
        pseudonymizer.token_for("Al")

        scrubbed = pseudonymizer.scrub("Also, Al replied about the Alpha plan")

        assert scrubbed == "Also, Agent_1 replied about the Alpha plan"
        assert pseudonymizer.restore(scrubbed) == "Also, Al replied about the Alpha plan"

    def test_scrub_prefers_the_longest_name(self):
        pseudonymizer = Pseudonymizer()
        pseudonymizer.register(["Ann", "Ann Lee", None])
        assert pseudonymizer.scrub("Ann Lee and Ann") == "Agent_2 and Agent_1"
        assert len(pseudonymizer) == 2

    def test_names_registered_later_are_scrubbed(self):
        pseudonymizer = Pseudonymizer()
        pseudonymizer.token_for("Alice Johnson")
        assert pseudonymizer.scrub("Bob Smith") == "Bob Smith"
        pseudonymizer.token_for("Bob Smith")
        assert pseudonymizer.scrub("Alice Johnson and Bob Smith") == "Agent_1 and Agent_2"

    def test_custom_prefix_and_scrubber(self):
        pseudonymizer = Pseudonymizer(prefix="Rep", scrubber=lambda text: text.upper())
        assert pseudonymizer.token_for("Alice Johnson") == "Rep_1"
        assert pseudonymizer.scrub("hello") == "HELLO"

    def test_empty_prefix_is_rejected(self):
        with pytest.raises(ValueError):
            Pseudonymizer(prefix="")


class TestAnonymizeTicket:
    def test_no_real_identity_leaves_the_process(self):
        pseudonymizer = Pseudonymizer()
        row = anonymize_ticket(_ticket(), pseudonymizer)

        assert row["assignee"] == "Agent_1"
        rendered = repr(row)
        assert "Alice Johnson" not in rendered
        assert "ava.mercer@example.test" not in rendered
        assert "555-010-1234" not in rendered
        assert row["conversation"][1]["message"] == "Agent_1 here, it is on its way."
        assert row["created_at"] == "2025-03-01T09:30:00+00:00"

    def test_description_is_truncated(self):
        row = anonymize_ticket(
            _ticket(description="x" * 50), Pseudonymizer(), description_max_chars=10
        )
        assert row["description"] == "x" * 10 + "..."

    def test_unassigned_ticket_has_no_token(self):
        pseudonymizer = Pseudonymizer()
        row = anonymize_ticket(_ticket(assignee=None), pseudonymizer)
        assert row["assignee"] is None
        assert len(pseudonymizer) == 0

    def test_agents_of_later_tickets_are_scrubbed_from_earlier_ones(self):
        tickets = [
            _ticket(id=1, description="Escalated to Bob Smith", conversation=()),
            _ticket(id=2, assignee="Bob Smith", description="Picked up", conversation=()),
        ]

        rows = anonymize_tickets(tickets, Pseudonymizer())

        assert rows[0]["description"] == "Escalated to Agent_2"
        assert [row["assignee"] for row in rows] == ["Agent_1", "Agent_2"]

    def test_known_names_outside_the_set_are_scrubbed(self):
        pseudonymizer = Pseudonymizer()
        rows = anonymize_tickets(
            [_ticket(description="Carol White took over", conversation=())],
            pseudonymizer,
            known_names=["Carol White", None],
        )
        assert rows[0]["description"] == "Agent_2 took over"
        assert pseudonymizer.real_for("Agent_2") == "Carol White"
