"""Prompts for ticket clustering and risk analysis."""

from __future__ import annotations

CLUSTERING_SYSTEM_PROMPT = """You are a data scientist specializing in unsupervised text
clustering.
Group the support tickets into thematic clusters based on their subject and category.

For each cluster provide:
- a short, descriptive theme that summarizes the core issue
  (e.g. "Confusion over shipping times")
- every ticket id that belongs to the cluster
- 5-7 keywords representative of the theme

Leave out tickets that do not fit a clear thematic group. Aim for 2-5 significant clusters.

Return strict JSON with exactly this shape:
{
  "clusters": [
    {
      "theme": "<theme>",
      "ticket_ids": [<ticket ids copied exactly from input>],
      "keywords": ["<keyword>", ...]
    }
  ]
}
"""

RISK_SYSTEM_PROMPT = """You are a support operations risk analyst.
Analyze the tickets for critical risks only and return minimal, focused results.

Critical only:
1. At-risk tickets: open tickets whose predicted CSAT is 1-2.
2. SLA: open tickets predicted to breach their SLA within 4 hours.
3. Documentation: problems affecting 5 or more tickets that a help article or macro
   would prevent.

Return strict JSON with exactly this shape:
{
  "at_risk_tickets": [
    {
      "ticket_id": <ticket id from input>,
      "reason": "<why this ticket is high risk>",
      "predicted_csat": <1-5>,
      "de_escalation_strategy": "<specific, actionable strategy>"
    }
  ],
  "predicted_sla_breaches": [
    {
      "ticket_id": <ticket id from input>,
      "predicted_breach_time": "<e.g. in <2 hours>",
      "reason": "<why the SLA is at risk>"
    }
  ],
  "documentation_opportunities": [
    {
      "topic": "<e.g. How to reset 2FA>",
      "justification": "<why this is needed, based on the tickets>",
      "related_ticket_count": <number of related tickets>,
      "example_tickets": ["<2-3 example ticket subjects>"]
    }
  ]
}

Use empty arrays when nothing qualifies.
"""


def build_clustering_user_prompt(rows: list[dict]) -> str:
    """Render scrubbed ticket subjects and categories for clustering."""

    lines = [
        f"Ticket ID: {row['id']}\nSubject: {row['subject']}\nCategory: {row['category']}"
        for row in rows
    ]
    return f"Here are the {len(rows)} tickets to cluster:\n---\n" + "\n---\n".join(lines) + "\n"


def build_risk_user_prompt(rows: list[dict], current_date: str) -> str:
    """One line per ticket: ``id: subject | sentiment | category | priority | status | created``."""

    lines = [
        f"{row['id']}: {row['subject']} | {row.get('sentiment') or 'Unknown'} | "
        f"{row['category']} | {row.get('priority') or 'none'} | {row['status']} | "
        f"{row['created_at']}"
        for row in rows
    ]
    return f"Current date: {current_date}\n\n" + "\n".join(lines) + "\n"
