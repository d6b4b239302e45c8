"""Deterministic analysis tools the specialist agents run before calling the model.

Every tool takes the anonymized ticket rows (see `anonymize_ticket`) and returns a
JSON-serializable summary. Agent names only ever appear as pseudonym tokens here.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Sequence

_RESOLVED = {"solved", "closed"}
_OPEN = {"new", "open", "pending", "on-hold", "hold"}
_HIGH_PRIORITY = {"high", "urgent"}
_MAX_IDS = 20


def category_distribution(rows: Sequence[dict]) -> dict:
    counts = Counter(row["category"] for row in rows)
    total = len(rows) or 1
    return {
        "distribution": [
            {"value": category, "count": count, "percentage": round(100.0 * count / total, 1)}
            for category, count in counts.most_common()
        ]
    }


def status_breakdown(rows: Sequence[dict]) -> dict:
    return {"status_counts": dict(Counter(row["status"] for row in rows).most_common())}


def tag_frequency(rows: Sequence[dict], *, top: int = 15) -> dict:
    counts = Counter(tag for row in rows for tag in row.get("tags", []))
    return {"top_tags": dict(counts.most_common(top))}


def _by_agent(rows: Sequence[dict]) -> dict[str, list[dict]]:
    grouped: dict[str, list[dict]] = defaultdict(list)
    for row in rows:
        if row.get("assignee"):
            grouped[row["assignee"]].append(row)
    return grouped


def agent_workload(rows: Sequence[dict]) -> dict:
    """Ticket count and resolution rate per agent."""

    workload = {}
    for agent, tickets in sorted(_by_agent(rows).items()):
        resolved = sum(1 for row in tickets if row["status"] in _RESOLVED)
        workload[agent] = {
            "tickets": len(tickets),
            "resolution_rate": round(resolved / len(tickets), 3),
        }
    return {"agents": workload, "unassigned": sum(1 for row in rows if not row.get("assignee"))}


def csat_by_agent(rows: Sequence[dict]) -> dict:
    scores = {}
    for agent, tickets in sorted(_by_agent(rows).items()):
        values = [row["csat_score"] for row in tickets if row.get("csat_score") is not None]
        scores[agent] = round(sum(values) / len(values), 2) if values else None
    return {"avg_csat": scores}


def sla_breach_summary(rows: Sequence[dict]) -> dict:
    if not rows:
        return {"breach_rate": 0.0, "by_priority": {}}
    by_priority: dict[str, list[bool]] = defaultdict(list)
    for row in rows:
        by_priority[row.get("priority") or "unset"].append(bool(row["sla_breached"]))
    return {
        "breach_rate": round(sum(1 for row in rows if row["sla_breached"]) / len(rows), 3),
        "by_priority": {
            priority: round(sum(flags) / len(flags), 3)
            for priority, flags in sorted(by_priority.items())
        },
    }


def open_high_priority(rows: Sequence[dict]) -> dict:
    ids = [
        row["id"]
        for row in rows
        if row["status"] in _OPEN and (row.get("priority") or "").lower() in _HIGH_PRIORITY
    ]
    return {"count": len(ids), "ticket_ids": ids[:_MAX_IDS]}


def agent_load_concentration(rows: Sequence[dict], *, factor: float = 1.5) -> dict:
    """Agents carrying more than ``factor`` times the mean open workload."""

    open_counts = Counter(
        row["assignee"] for row in rows if row.get("assignee") and row["status"] in _OPEN
    )
    if not open_counts:
        return {"mean_open_tickets": 0.0, "overloaded_agents": []}
    mean = sum(open_counts.values()) / len(open_counts)
    overloaded = sorted(agent for agent, count in open_counts.items() if count > factor * mean)
    return {"mean_open_tickets": round(mean, 2), "overloaded_agents": overloaded}


def first_contact_resolution_by_agent(rows: Sequence[dict]) -> dict:
    rates = {}
    for agent, tickets in sorted(_by_agent(rows).items()):
        fcr = 0
        for row in tickets:
            replies = sum(1 for turn in row.get("conversation", []) if turn["sender"] == "agent")
            if row["status"] in _RESOLVED and replies == 1:
                fcr += 1
        rates[agent] = round(fcr / len(tickets), 3)
    return {"first_contact_resolution": rates}


def low_csat_tickets(rows: Sequence[dict], *, threshold: float = 2.0) -> dict:
    low = [
        {"id": row["id"], "assignee": row.get("assignee"), "category": row["category"]}
        for row in rows
        if row.get("csat_score") is not None and row["csat_score"] <= threshold
    ]
    return {"count": len(low), "tickets": low[:_MAX_IDS]}
