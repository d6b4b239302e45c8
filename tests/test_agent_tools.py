"""Tests for the deterministic agent analysis tools."""

from ticket_insights.pipeline.agent_tools import (
    agent_load_concentration,
    agent_workload,
    category_distribution,
    csat_by_agent,
    first_contact_resolution_by_agent,
    low_csat_tickets,
    open_high_priority,
    sla_breach_summary,
    status_breakdown,
    tag_frequency,
)


def _row(ticket_id, assignee, status, **overrides):
    row = {
        "id": ticket_id,
        "assignee": assignee,
        "status": status,
        "category": "Billing",
        "priority": "normal",
        "tags": [],
        "sla_breached": False,
        "csat_score": None,
        "conversation": [{"sender": "customer"}, {"sender": "agent"}],
    }
    row.update(overrides)
    return row


ROWS = [
    _row(1, "Agent_1", "solved", csat_score=5.0, tags=["refund"]),
    _row(2, "Agent_1", "open", priority="urgent", sla_breached=True, tags=["refund", "vip"]),
    _row(3, "Agent_1", "open", category="Login", priority="high"),
    _row(4, "Agent_1", "pending", category="Login"),
    _row(5, "Agent_2", "solved", csat_score=1.0, conversation=[{"sender": "agent"}] * 2),
    _row(6, "Agent_3", "open"),
    _row(7, None, "new", category="Shipping", sla_breached=True),
]


def test_category_distribution():
    distribution = category_distribution(ROWS)["distribution"]
    assert distribution[0] == {"value": "Billing", "count": 4, "percentage": 57.1}
    assert {item["value"] for item in distribution} == {"Billing", "Login", "Shipping"}


def test_status_and_tags():
    assert status_breakdown(ROWS)["status_counts"]["open"] == 3
    assert tag_frequency(ROWS)["top_tags"] == {"refund": 2, "vip": 1}


def test_agent_workload():
    result = agent_workload(ROWS)
    assert result["agents"]["Agent_1"] == {"tickets": 4, "resolution_rate": 0.25}
    assert result["agents"]["Agent_2"] == {"tickets": 1, "resolution_rate": 1.0}
    assert result["unassigned"] == 1


def test_csat_by_agent():
    assert csat_by_agent(ROWS)["avg_csat"] == {"Agent_1": 5.0, "Agent_2": 1.0, "Agent_3": None}


def test_sla_breach_summary():
    result = sla_breach_summary(ROWS)
    assert result["breach_rate"] == round(2 / 7, 3)
    assert result["by_priority"]["urgent"] == 1.0
    assert sla_breach_summary([]) == {"breach_rate": 0.0, "by_priority": {}}


def test_open_high_priority():
    assert open_high_priority(ROWS) == {"count": 2, "ticket_ids": [2, 3]}


def test_agent_load_concentration():
    result = agent_load_concentration(ROWS, factor=1.2)
    assert result["mean_open_tickets"] == 2.0
    assert result["overloaded_agents"] == ["Agent_1"]
    assert agent_load_concentration([]) == {"mean_open_tickets": 0.0, "overloaded_agents": []}


def test_first_contact_resolution_by_agent():
    rates = first_contact_resolution_by_agent(ROWS)["first_contact_resolution"]
    assert rates["Agent_1"] == 0.25
    assert rates["Agent_2"] == 0.0


def test_low_csat_tickets():
    assert low_csat_tickets(ROWS) == {
        "count": 1,
        "tickets": [{"id": 5, "assignee": "Agent_2", "category": "Billing"}],
    }
