"""Tests for core data schemas."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from ticket_insights.schemas import (
    ConversationTurn,
    DiscoveryOutput,
    HypothesisOutput,
    SynthesisOutput,
    Ticket,
    TicketAnalysis,
)


class TestTicket:
    def test_minimal_ticket(self):
        ticket = Ticket(id=1, subject="Refund", created_at=datetime(2025, 1, 1, tzinfo=UTC))
        assert ticket.status == "open"
        assert ticket.category == "General"
        assert ticket.conversation == ()
        assert ticket.assignee is None

    def test_ticket_is_frozen(self):
        ticket = Ticket(id=1, subject="Refund", created_at=datetime(2025, 1, 1, tzinfo=UTC))
        with pytest.raises(ValidationError):
            ticket.status = "solved"

    def test_conversation_is_coerced_to_turns(self):
        ticket = Ticket(
            id=1,
            subject="Refund",
            conversation=[{"sender": "customer", "message": "Charged twice"}],
            created_at=datetime(2025, 1, 1, tzinfo=UTC),
        )
        turn = ConversationTurn(sender="customer", message="Charged twice")
        assert ticket.conversation == (turn,)

    def test_csat_bounds(self):
        with pytest.raises(ValidationError):
            Ticket(id=1, subject="x", csat_score=6, created_at=datetime(2025, 1, 1, tzinfo=UTC))


class TestAnalysisSchemas:
    def test_sentiment_is_restricted(self):
        analysis = TicketAnalysis(id=1, sentiment="Negative", category="Billing")
        assert analysis.sentiment == "Negative"
        with pytest.raises(ValidationError):
            TicketAnalysis(id=1, sentiment="Angry", category="Billing")

    def test_category_must_be_present(self):
        with pytest.raises(ValidationError):
            TicketAnalysis(id=1, category="")


class TestPhaseOutputs:
    def test_discovery_output_defaults(self):
        output = DiscoveryOutput.model_validate(
            {
                "data_quality": {"completeness": 0.9, "consistency": 0.8},
                "key_metrics": {"total_tickets": 10},
                "confidence_score": 0.7,
            }
        )
        assert output.patterns == []
        assert output.key_metrics.sla_breach_rate == 0.0

    def test_hypothesis_output_requires_hypotheses(self):
        with pytest.raises(ValidationError):
            HypothesisOutput.model_validate({"hypotheses": [], "confidence_score": 0.5})

    def test_confidence_score_is_bounded(self):
        with pytest.raises(ValidationError):
            SynthesisOutput.model_validate({"narrative_insight": "x", "confidence_score": 1.5})
