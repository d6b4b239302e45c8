"""Prompts for batch ticket analysis and coaching insights."""

from __future__ import annotations

import json

BATCH_ANALYSIS_SYSTEM_PROMPT = """You are a support operations analyst.
Classify each support ticket by customer sentiment and topic category.

Requirements:
- Judge sentiment from the customer's own words, not from the agent's replies.
- Use a short, reusable category name (e.g. Billing, Shipping, Login, Bug Report).
- Text marked [REDACTED_EMAIL] or [REDACTED_PHONE] has been removed on purpose; ignore it.

Return strict JSON with exactly this shape:
{
  "analyses": [
    {
      "id": <ticket id copied exactly from input>,
      "sentiment": "Positive" | "Neutral" | "Negative",
      "category": "<category name>"
    }
  ]
}

Rules:
- Include exactly one analysis per input ticket id.
- Do not omit any id and do not invent ids.
"""

COACHING_SYSTEM_PROMPT = """You are an expert support manager with a talent for data-driven
coaching.
Analyze the ticket data to identify actionable coaching insights for each agent.
For each agent, identify one area of praise ("Positive") and one area for improvement
("Opportunity").

Agents are identified only by anonymous IDs such as Agent_1. Always refer to agents by
these IDs.

Return strict JSON with exactly this shape:
{
  "insights": [
    {
      "agent_name": "<anonymous agent ID, e.g. Agent_1>",
      "insight_type": "Positive" | "Opportunity",
      "category": "<ticket category the insight relates to>",
      "description": "<specific, actionable description>",
      "example_ticket_ids": [<1-2 ticket ids that illustrate the point>]
    }
  ]
}
"""


def build_batch_analysis_user_prompt(tickets: list[dict]) -> str:
    """Render anonymized tickets for sentiment and category classification."""

    sections: list[str] = []
    for ticket in tickets:
        turns = [
            f"  {index}. {turn['sender'].upper()}: {turn['message']}"
            for index, turn in enumerate(ticket.get("conversation", []), start=1)
        ]
        transcript = "\n".join(turns) if turns else "  (no conversation)"
        sections.append(
            f"id: {ticket['id']}\n"
            f"subject: {ticket['subject']}\n"
            f"description: {ticket['description']}\n"
            "conversation:\n"
            f"{transcript}\n"
        )

    body = "\n---\n".join(sections)
    return f"Classify these {len(tickets)} tickets.\n\n{body}"


def build_coaching_user_prompt(rows: list[dict]) -> str:
    """Render per-ticket coaching rows (already pseudonymized)."""

    lines = []
    for row in rows:
        csat = f"{row['csat_score']}/5" if row.get("csat_score") is not None else "N/A"
        lines.append(
            f"Ticket ID: {row['id']}\n"
            f"Agent ID: {row['assignee']}\n"
            f"Category: {row['category']}\n"
            f"Sentiment: {row.get('sentiment') or 'Unknown'}\n"
            f"CSAT: {csat}\n"
            f"First Contact Resolution: {row['first_contact_resolution']}"
        )
    return (
        "Here is the ticket data. Produce coaching insights for every agent listed.\n\n"
        + "\n---\n".join(lines)
        + "\n\nSummary: "
        + json.dumps({"ticket_count": len(rows)})
    )
