"""Generate synthetic support tickets for development and testing."""

from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta
from pathlib import Path

from ticket_insights.io import save_jsonl
from ticket_insights.schemas import Ticket


def _scenario(
    *,
    category: str,
    subject: str,
    description: str,
    agent_reply: str,
    tags: tuple[str, ...],
    priority: str,
) -> dict:
    return {
        "category": category,
        "subject": subject,
        "description": description,
        "agent_reply": agent_reply,
        "tags": tags,
        "priority": priority,
    }


_SCENARIOS: list[dict] = [
    _scenario(
        category="Billing",
        subject="Charged twice for invoice {variant}",
        description="I was billed twice this month for invoice {variant}. Please refund one.",
        agent_reply="I have refunded the duplicate charge; it will post in 3-5 business days.",
        tags=("billing", "refund"),
        priority="high",
    ),
    _scenario(
        category="Login",
        subject="Cannot sign in after password reset",
        description="The reset link for workspace {variant} expires before I can use it.",
        agent_reply="I issued a fresh reset link with a longer expiry. Please try again now.",
        tags=("login", "password"),
        priority="normal",
    ),
    _scenario(
        category="Bug Report",
        subject="Export to CSV fails for report {variant}",
        description="Exporting report {variant} shows a spinner and never finishes.",
        agent_reply="Engineering confirmed the export bug; a fix ships in the next release.",
        tags=("bug", "export"),
        priority="high",
    ),
    _scenario(
        category="Shipping",
        subject="Order {variant} has not arrived",
        description="Tracking for order {variant} has not updated for a week. Contact me at "
        "{email} or {phone}.",
        agent_reply="The carrier lost the parcel; a replacement ships today with express.",
        tags=("shipping", "delay"),
        priority="urgent",
    ),
    _scenario(
        category="Feature Request",
        subject="Dark mode for the dashboard",
        description="Our team ({variant} seats) would love a dark theme for late shifts.",
        agent_reply="Thanks, I added your vote to the dark mode request on our roadmap.",
        tags=("feature", "ui"),
        priority="low",
    ),
    _scenario(
        category="Account",
        subject="Transfer ownership of account {variant}",
        description="Our admin left the company. How do we move ownership of account {variant}?",
        agent_reply="Ownership is transferred. The new owner received a confirmation email.",
        tags=("account", "admin"),
        priority="normal",
    ),
]

_AGENTS = ["Alice Johnson", "Bob Smith", "Carol White", "David Brown", "Eve Davis"]
_CUSTOMERS = ["Ava Mercer", "Liam Turner", "Noah Ellis", "Mia Patel", "Zoe Carter"]
_STATUSES = ["solved", "solved", "closed", "open", "pending", "new"]
_FOLLOW_UPS = [
    "That did not work, I still see the same problem.",
    "Any update on this? It has been two days.",
]
_FOLLOW_UP_REPLIES = [
    "Sorry about that. I escalated this to our tier 2 team.",
    "Thanks for your patience. This is now resolved on our side.",
]


def _build_conversation(
    template: dict, *, description: str, rng: random.Random
) -> list[dict]:
    """Customer opener plus one or more agent replies."""

    turns = [
        {"sender": "customer", "message": description},
        {"sender": "agent", "message": template["agent_reply"]},
    ]
    if rng.random() < 0.35:
        pick = rng.randrange(len(_FOLLOW_UPS))
        turns.append({"sender": "customer", "message": _FOLLOW_UPS[pick]})
        turns.append({"sender": "agent", "message": _FOLLOW_UP_REPLIES[pick]})
    return turns


def generate_mock_tickets(count: int = 240, seed: int = 7, start_id: int = 1) -> list[Ticket]:
    """Generate a deterministic list of mock tickets.

    The same ``(count, seed, start_id)`` always produces the same tickets.
    """

    if count <= 0:
        raise ValueError(f"count must be positive, got {count}.")

    rng = random.Random(seed)
    start = datetime(2025, 1, 10, 8, 0, tzinfo=UTC)
    tickets: list[Ticket] = []

    for index in range(count):
        template = _SCENARIOS[index % len(_SCENARIOS)]
        variant = start_id + index
        customer = _CUSTOMERS[variant % len(_CUSTOMERS)]
        description = template["description"].format(
            variant=variant,
            email=f"{customer.lower().replace(' ', '.')}@example.test",
            phone=f"555-010-{variant % 10000:04d}",
        )
        status = rng.choice(_STATUSES)
        resolved = status in {"solved", "closed"}
        assignee = None if status == "new" else rng.choice(_AGENTS)
        conversation = _build_conversation(template, description=description, rng=rng)
        if assignee is None:
            conversation = conversation[:1]
        tickets.append(
            Ticket(
                id=variant,
                subject=template["subject"].format(variant=variant),
                description=description,
                conversation=tuple(conversation),
                status=status,
                priority=template["priority"],
                category=template["category"],
                assignee=assignee,
                tags=template["tags"],
                sla_breached=rng.random() < (0.1 if resolved else 0.3),
                csat_score=float(rng.randint(1, 5)) if resolved else None,
                created_at=start + timedelta(minutes=index * 37),
            )
        )

    return tickets


def write_mock_tickets(path: str | Path, tickets: list[Ticket]) -> Path:
    """Write generated tickets to JSONL."""

    return save_jsonl(path, tickets)
