"""I/O utilities for reading tickets and writing pipeline artifacts."""

from ticket_insights.io.load import (
    INPUT_JSONL_SCHEMA_VERSION,
    DatasetSummary,
    InputValidationReport,
    TicketDatasetError,
    ValidationErrorRecord,
    load_tickets_jsonl,
    summarize_tickets,
    validate_tickets_jsonl,
)
from ticket_insights.io.save import (
    append_jsonl,
    ensure_directory,
    new_run_id,
    save_json,
    save_jsonl,
)
from ticket_insights.io.ticket_store import JsonlTicketStore, TicketStoreError

__all__ = [
    "INPUT_JSONL_SCHEMA_VERSION",
    "DatasetSummary",
    "InputValidationReport",
    "JsonlTicketStore",
    "TicketDatasetError",
    "TicketStoreError",
    "ValidationErrorRecord",
    "append_jsonl",
    "ensure_directory",
    "load_tickets_jsonl",
    "new_run_id",
    "save_json",
    "save_jsonl",
    "summarize_tickets",
    "validate_tickets_jsonl",
]
