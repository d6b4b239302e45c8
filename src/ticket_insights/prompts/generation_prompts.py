"""Prompts for synthetic ticket generation."""

from __future__ import annotations

GENERATION_SYSTEM_PROMPT = """You are an expert at generating realistic customer support tickets
that match real-world scenarios.

Requirements:
- Create genuine customer issues with appropriate urgency.
- Cover different support categories: technical issues, account problems (login, billing,
  permissions), feature requests, integration and API issues, product feedback.
- Use logical timestamps and a mix of open, pending, solved and closed tickets.
- Mix SLA-compliant and breached tickets.
- Include a short customer/agent conversation for each ticket.
- Use fictional names only. Never include real e-mail addresses or phone numbers.

Return strict JSON with exactly this shape:
{
  "tickets": [
    {
      "id": <int>,
      "subject": "...",
      "description": "...",
      "status": "open|pending|solved|closed",
      "priority": "low|normal|high|urgent",
      "category": "...",
      "assignee": "<fictional agent name or null>",
      "tags": ["..."],
      "sla_breached": <bool>,
      "csat_score": <1-5 or null>,
      "created_at": "<ISO-8601 timestamp>",
      "conversation": [{"sender": "customer|agent", "message": "..."}]
    }
  ]
}
"""


def build_generation_user_prompt(*, count: int, start_id: int, scenario: str) -> str:
    """Ask for ``count`` tickets numbered sequentially from ``start_id``."""

    return (
        f"Generate {count} realistic support tickets.\n"
        f"Organization scenario: {scenario}\n"
        f"Ticket ids MUST be sequential integers starting at {start_id} "
        f"(i.e. {start_id} through {start_id + count - 1}). Never reuse ids below {start_id}.\n"
    )
