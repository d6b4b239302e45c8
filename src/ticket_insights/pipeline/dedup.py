"""Dedup guard: safe identifier offsets and duplicate filtering against the ticket ledger."""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Sequence
from typing import Any, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ID_FLOOR = 10001


class AllDuplicatesError(ValueError):
    """Raised when every generated candidate already exists in the ledger."""

    def __init__(self, tenant: str, candidate_ids: Sequence[Hashable]) -> None:
        sample = list(candidate_ids)[:10]
        super().__init__(
            f"All {len(candidate_ids)} candidate(s) for tenant '{tenant}' already exist "
            f"(sample ids: {sample}). The generator ignored the requested starting id."
        )
        self.tenant = tenant
        self.candidate_ids = list(candidate_ids)


class TicketStore(Protocol):
    """Persistence collaborator holding previously committed tickets per tenant."""

    def insert_records(self, tenant: str, records: Sequence[Any]) -> list[Any]:
        """Commit records and return what was committed."""

    def query_existing_ids(self, tenant: str, candidate_ids: Iterable[int]) -> set[int]:
        """Return the subset of ``candidate_ids`` already committed for ``tenant``."""

    def get_highest_id(self, tenant: str) -> int | None:
        """Return the highest committed id for ``tenant`` or None if there is none."""


class DedupGuard:
    """Computes the next safe id for a tenant and filters candidates already in the ledger."""

    def __init__(self, store: TicketStore, *, id_floor: int = DEFAULT_ID_FLOOR) -> None:
        self._store = store
        self._id_floor = id_floor

    def next_start_id(self, tenant: str) -> int:
        """One greater than the highest committed id, or the floor for an empty ledger."""

        highest = self._store.get_highest_id(tenant)
        if highest is None:
            return self._id_floor
        return max(highest + 1, self._id_floor)

    def filter_new(
        self,
        candidates: Sequence[T],
        tenant: str,
        *,
        key: Callable[[T], int] = lambda item: item.id,
    ) -> list[T]:
        """Drop candidates whose id is already committed or repeated within the batch.

        Raises:
            AllDuplicatesError: if candidates were given but none are new.
        """

        if not candidates:
            return []

        candidate_ids = [key(candidate) for candidate in candidates]
        existing = self._store.query_existing_ids(tenant, candidate_ids)

        unique: list[T] = []
        seen: set[int] = set()
        repeated: list[int] = []
        for candidate, candidate_id in zip(candidates, candidate_ids, strict=True):
            if candidate_id in existing:
                continue
            if candidate_id in seen:
                repeated.append(candidate_id)
                continue
            seen.add(candidate_id)
            unique.append(candidate)

        if not unique:
            raise AllDuplicatesError(tenant, candidate_ids)

        dropped = len(candidates) - len(unique)
        if dropped:
            logger.warning(
                "Dropped %d duplicate candidate(s) for tenant %s (%d already committed, "
                "%d repeated in batch).",
                dropped,
                tenant,
                len(existing),
                len(repeated),
            )
        return unique
