"""Loaders for support-ticket datasets."""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from pathlib import Path

from pydantic import ValidationError

from ticket_insights.schemas import Ticket

INPUT_JSONL_SCHEMA_VERSION = "1.0.0"


class TicketDatasetError(ValueError):
    """Raised when a ticket dataset fails schema or integrity checks."""


@dataclass(frozen=True)
class DatasetSummary:
    """Aggregate summary for a set of tickets."""

    ticket_count: int
    assigned_ticket_count: int
    agent_count: int
    sla_breach_rate: float
    avg_csat_score: float | None
    status_counts: dict[str, int] = field(default_factory=dict)
    category_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationErrorRecord:
    """One validation error discovered while scanning a JSONL input file."""

    line_number: int
    code: str
    message: str


@dataclass(frozen=True)
class InputValidationReport:
    """Validation results for a ticket JSONL file."""

    schema_version: str
    input_path: str
    total_lines: int
    non_empty_lines: int
    valid_ticket_count: int
    duplicate_id_count: int
    error_count: int
    dropped_error_count: int
    is_valid: bool
    summary: DatasetSummary
    errors: list[ValidationErrorRecord]

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["summary"] = asdict(self.summary)
        return payload


def summarize_tickets(tickets: Iterable[Ticket]) -> DatasetSummary:
    """Compute counts and rates used by reports and prompts."""

    rows = list(tickets)
    if not rows:
        return DatasetSummary(
            ticket_count=0,
            assigned_ticket_count=0,
            agent_count=0,
            sla_breach_rate=0.0,
            avg_csat_score=None,
        )

    assignees = [ticket.assignee for ticket in rows if ticket.assignee]
    csat_scores = [ticket.csat_score for ticket in rows if ticket.csat_score is not None]
    return DatasetSummary(
        ticket_count=len(rows),
        assigned_ticket_count=len(assignees),
        agent_count=len(set(assignees)),
        sla_breach_rate=sum(1 for ticket in rows if ticket.sla_breached) / len(rows),
        avg_csat_score=sum(csat_scores) / len(csat_scores) if csat_scores else None,
        status_counts=dict(Counter(ticket.status for ticket in rows).most_common()),
        category_counts=dict(Counter(ticket.category for ticket in rows).most_common()),
    )


def _parse_line(stripped: str) -> tuple[Ticket | None, str, str]:
    """Parse one JSONL line into a ticket, or return (None, error code, message)."""

    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError as exc:
        return None, "invalid_json", exc.msg

    if not isinstance(payload, dict):
        return None, "non_object_line", f"Expected JSON object, got {type(payload).__name__}."

    try:
        return Ticket.model_validate(payload), "", ""
    except ValidationError as exc:
        return None, "schema_validation_failed", str(exc)


def validate_tickets_jsonl(path: str | Path, *, max_errors: int = 100) -> InputValidationReport:
    """Scan a JSONL file and report every problem instead of stopping at the first one."""

    if max_errors < 0:
        raise ValueError(f"max_errors must be >= 0, got {max_errors}.")

    file_path = Path(path)
    if not file_path.exists():
        raise TicketDatasetError(f"Ticket file does not exist: {file_path}")

    total_lines = 0
    non_empty_lines = 0
    duplicate_id_count = 0
    error_count = 0
    errors: list[ValidationErrorRecord] = []
    tickets: list[Ticket] = []
    seen_ids: set[int] = set()

    with file_path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            total_lines += 1
            stripped = line.strip()
            if not stripped:
                continue
            non_empty_lines += 1

            ticket, code, message = _parse_line(stripped)
            if ticket is not None and ticket.id in seen_ids:
                duplicate_id_count += 1
                ticket, code, message = None, "duplicate_ticket_id", f"Duplicate id {ticket.id}."
            if ticket is None:
                error_count += 1
                if len(errors) < max_errors:
                    errors.append(ValidationErrorRecord(line_number, code, message))
                continue

            seen_ids.add(ticket.id)
            tickets.append(ticket)

    if non_empty_lines == 0:
        error_count += 1
        if len(errors) < max_errors:
            errors.append(
                ValidationErrorRecord(0, "empty_dataset", f"No tickets found in {file_path}.")
            )

    return InputValidationReport(
        schema_version=INPUT_JSONL_SCHEMA_VERSION,
        input_path=str(file_path),
        total_lines=total_lines,
        non_empty_lines=non_empty_lines,
        valid_ticket_count=len(tickets),
        duplicate_id_count=duplicate_id_count,
        error_count=error_count,
        dropped_error_count=error_count - len(errors),
        is_valid=error_count == 0,
        summary=summarize_tickets(tickets),
        errors=errors,
    )


def load_tickets_jsonl(path: str | Path, *, limit: int | None = None) -> list[Ticket]:
    """Load and validate tickets; ids must be unique within the file."""

    if limit is not None and limit <= 0:
        raise ValueError(f"limit must be positive when provided, got {limit}.")

    file_path = Path(path)
    if not file_path.exists():
        raise TicketDatasetError(f"Ticket file does not exist: {file_path}")

    tickets: list[Ticket] = []
    seen_ids: set[int] = set()
    with file_path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            stripped = line.strip()
            if not stripped:
                continue

            ticket, code, message = _parse_line(stripped)
            if ticket is None:
                raise TicketDatasetError(
                    f"{code} on line {line_number} of {file_path}: {message}"
                )
            if ticket.id in seen_ids:
                raise TicketDatasetError(
                    f"Duplicate ticket id {ticket.id} on line {line_number} of {file_path}."
                )

            seen_ids.add(ticket.id)
            tickets.append(ticket)
            if limit is not None and len(tickets) >= limit:
                break

    if not tickets:
        raise TicketDatasetError(f"No tickets found in file: {file_path}")
    return tickets
