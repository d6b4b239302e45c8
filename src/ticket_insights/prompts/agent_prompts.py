"""Role prompts for the multi-agent coordinator."""

from __future__ import annotations

import json

_REPORT_SHAPE = """Return strict JSON with exactly these keys:
{
  "summary": "<2-4 sentence summary of what you found>",
  "findings": [
    {"title": "...", "detail": "...", "severity": "low|medium|high|critical",
     "ticket_ids": [<int>]}
  ],
  "recommendations": ["..."],
  "confidence_score": <0-1>
}

Agents are identified only by anonymous IDs such as Agent_1; keep using those IDs."""

AGENT_ROLE_PROMPTS: dict[str, str] = {
    "discovery": (
        "You are a Discovery Analyst. Scan the tickets for patterns, clusters and anomalies. "
        "Use the tool outputs to map the landscape of the data.\n\n" + _REPORT_SHAPE
    ),
    "performance": (
        "You are a Performance Analyst. Focus on workload, benchmarking across agents and "
        "identifying improvement opportunities.\n\n" + _REPORT_SHAPE
    ),
    "risk": (
        "You are a Risk Analyst. Identify SLA risks, escalation needs and signs of agent "
        "burnout.\n\n" + _REPORT_SHAPE
    ),
    "coaching": (
        "You are a Coaching Analyst. Generate actionable coaching and quality insights for "
        "individual agents.\n\n" + _REPORT_SHAPE
    ),
    "synthesis": (
        "You are a Synthesis Analyst. Combine the findings of every other analyst into a "
        "strategic, executive-level report. Some analysts may have failed; their entries carry "
        "an error instead of a report. Say which perspectives are missing and lower your "
        "confidence accordingly.\n\n" + _REPORT_SHAPE
    ),
}


def build_agent_user_prompt(
    *,
    goal: str,
    ticket_count: int,
    tool_outputs: dict,
    upstream: dict | None = None,
) -> str:
    """Render the shared goal, this agent's tool outputs and any upstream agent results."""

    sections = [
        f"Goal: {goal}",
        f"Tickets in scope: {ticket_count}",
        "Tool outputs:\n" + json.dumps(tool_outputs, ensure_ascii=True, indent=2, default=str),
    ]
    if upstream:
        sections.append(
            "Results from other analysts:\n"
            + json.dumps(upstream, ensure_ascii=True, indent=2, default=str)
        )
    return "\n\n".join(sections) + "\n"
