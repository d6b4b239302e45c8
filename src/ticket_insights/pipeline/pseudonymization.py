"""Reversible pseudonymization of agent identities and PII scrubbing of free text."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from ticket_insights.schemas import Ticket

_EMAIL_RE = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
_PHONE_RE = re.compile(r"(\+\d{1,2}\s?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}")

Scrubber = Callable[[str], str]


def scrub_pii(text: str | None) -> str:
    """Replace e-mail addresses and phone numbers with placeholders."""

    if not text:
        return ""
    scrubbed = _EMAIL_RE.sub("[REDACTED_EMAIL]", text)
    return _PHONE_RE.sub("[REDACTED_PHONE]", scrubbed)


def truncate_text(text: str | None, max_chars: int) -> str:
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


class Pseudonymizer:
    """Per-request bidirectional mapping between real identifiers and anonymous tokens.

    Tokens are issued in first-seen order as ``<prefix>_1``, ``<prefix>_2``, ... and are
    stable for the lifetime of the instance. Create one instance per request and discard it.
    """

    def __init__(self, prefix: str = "Agent", scrubber: Scrubber = scrub_pii) -> None:
        if not prefix:
            raise ValueError("prefix must be non-empty.")
        self._prefix = prefix
        self._scrubber = scrubber
        self._real_to_token: dict[str, str] = {}
        self._token_to_real: dict[str, str] = {}
        self._token_re = re.compile(rf"\b{re.escape(prefix)}_\d+\b")
        self._name_re: re.Pattern[str] | None = None

    def __len__(self) -> int:
        return len(self._real_to_token)

    def __contains__(self, real: object) -> bool:
        return real in self._real_to_token

    def token_for(self, real: str) -> str:
        """Return the token for ``real``, issuing the next one on first sight."""

        token = self._real_to_token.get(real)
        if token is None:
            token = f"{self._prefix}_{len(self._real_to_token) + 1}"
            self._real_to_token[real] = token
            self._token_to_real[token] = real
            self._name_re = None
        return token

    def register(self, reals: Iterable[str | None]) -> None:
        """Issue tokens for every identifier up front so `scrub` knows all of them."""

        for real in reals:
            if real:
                self.token_for(real)

    def real_for(self, token: str) -> str:
        """Return the real identifier, or ``Unknown (<token>)`` for tokens never issued."""

        real = self._token_to_real.get(token)
        if real is None:
            return f"Unknown ({token})"
        return real

    def mapping(self) -> dict[str, str]:
        """Copy of the real -> token mapping."""

        return dict(self._real_to_token)

    def scrub(self, text: str | None) -> str:
        """Scrub PII and replace every known real identifier with its token."""

        scrubbed = self._scrubber(text or "")
        pattern = self._name_pattern()
        if pattern is None:
            return scrubbed
        return pattern.sub(lambda match: self._real_to_token[match.group(0)], scrubbed)

    def _name_pattern(self) -> re.Pattern[str] | None:
        # Longest names first so "Ann Lee" wins over "Ann"; whole words only.
        if self._name_re is None:
            names = sorted((real for real in self._real_to_token if real), key=len, reverse=True)
            if not names:
                return None
            alternation = "|".join(re.escape(name) for name in names)
            self._name_re = re.compile(rf"(?<!\w)(?:{alternation})(?!\w)")
        return self._name_re

    def restore(self, text: str) -> str:
        """Replace issued tokens in free text with the real identifiers."""

        def _swap(match: re.Match[str]) -> str:
            return self._token_to_real.get(match.group(0), match.group(0))

        return self._token_re.sub(_swap, text)

    def restore_payload(self, value: Any) -> Any:
        """Apply `restore` to every string (and dict key) of a JSON-like value."""

        if isinstance(value, str):
            return self.restore(value)
        if isinstance(value, list):
            return [self.restore_payload(item) for item in value]
        if isinstance(value, dict):
            return {
                self.restore(key) if isinstance(key, str) else key: self.restore_payload(item)
                for key, item in value.items()
            }
        return value


def anonymize_ticket(
    ticket: Ticket,
    pseudonymizer: Pseudonymizer,
    *,
    description_max_chars: int = 500,
) -> dict:
    """Prompt-ready view of a ticket with the assignee tokenized and free text scrubbed.

    Only identifiers already known to ``pseudonymizer`` are replaced in free text; use
    `anonymize_tickets` when other tickets may mention this one's agents.
    """

    assignee = pseudonymizer.token_for(ticket.assignee) if ticket.assignee else None
    return {
        "id": ticket.id,
        "subject": pseudonymizer.scrub(ticket.subject),
        "description": pseudonymizer.scrub(
            truncate_text(ticket.description, description_max_chars)
        ),
        "conversation": [
            {"sender": turn.sender, "message": pseudonymizer.scrub(turn.message)}
            for turn in ticket.conversation
        ],
        "status": ticket.status,
        "priority": ticket.priority,
        "category": ticket.category,
        "assignee": assignee,
        "tags": list(ticket.tags),
        "sla_breached": ticket.sla_breached,
        "csat_score": ticket.csat_score,
        "created_at": ticket.created_at.isoformat(),
    }


def anonymize_tickets(
    tickets: Sequence[Ticket],
    pseudonymizer: Pseudonymizer,
    *,
    description_max_chars: int = 500,
    known_names: Iterable[str | None] = (),
) -> list[dict]:
    """Anonymize a set of tickets after registering every assignee in ticket order.

    ``known_names`` are registered afterwards so names from tickets outside the set are
    scrubbed too.
    """

    pseudonymizer.register(ticket.assignee for ticket in tickets)
    pseudonymizer.register(known_names)
    return [
        anonymize_ticket(ticket, pseudonymizer, description_max_chars=description_max_chars)
        for ticket in tickets
    ]
