"""File-backed ticket ledger: one JSONL file per tenant."""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Iterable, Sequence
from pathlib import Path

from ticket_insights.io.save import append_jsonl, ensure_directory
from ticket_insights.schemas import Ticket

logger = logging.getLogger(__name__)

_TENANT_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class TicketStoreError(ValueError):
    """Raised when the ledger cannot be read or a write would violate its invariants."""


class JsonlTicketStore:
    """Committed tickets stored under ``<root>/<tenant>.jsonl``."""

    def __init__(self, root: str | Path) -> None:
        self._root = ensure_directory(root)
        self._lock = threading.Lock()

    def _path(self, tenant: str) -> Path:
        if not _TENANT_RE.match(tenant):
            raise TicketStoreError(f"Invalid tenant id: {tenant!r}")
        return self._root / f"{tenant}.jsonl"

    def _read_ids(self, tenant: str) -> set[int]:
        path = self._path(tenant)
        if not path.exists():
            return set()
        ids: set[int] = set()
        with path.open(encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    ids.add(int(json.loads(stripped)["id"]))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                    raise TicketStoreError(
                        f"Corrupt ledger line {line_number} in {path}: {exc}"
                    ) from exc
        return ids

    def load(self, tenant: str) -> list[Ticket]:
        path = self._path(tenant)
        if not path.exists():
            return []
        with path.open(encoding="utf-8") as handle:
            return [Ticket.model_validate_json(line) for line in handle if line.strip()]

    def get_highest_id(self, tenant: str) -> int | None:
        with self._lock:
            ids = self._read_ids(tenant)
        return max(ids) if ids else None

    def query_existing_ids(self, tenant: str, candidate_ids: Iterable[int]) -> set[int]:
        with self._lock:
            existing = self._read_ids(tenant)
        return existing.intersection(candidate_ids)

    def insert_records(self, tenant: str, records: Sequence[Ticket]) -> list[Ticket]:
        """Append tickets; refuses the whole write if any id is already committed."""

        with self._lock:
            existing = self._read_ids(tenant)
            clashes = sorted(existing.intersection(record.id for record in records))
            if clashes:
                raise TicketStoreError(
                    f"Tenant '{tenant}' already has ticket ids {clashes[:10]}."
                )
            append_jsonl(self._path(tenant), list(records))
        logger.info("Committed %d ticket(s) for tenant %s.", len(records), tenant)
        return list(records)
