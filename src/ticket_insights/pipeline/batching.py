"""Chunk batcher: bounded chunks, concurrent dispatch, per-chunk isolation, keyed merge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from ticket_insights.pipeline.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

R = TypeVar("R")
F = TypeVar("F")

_SAMPLE_IDS = 10


class AllChunksFailedError(RuntimeError):
    """Raised when every chunk of a batch failed."""

    def __init__(self, operation_name: str, outcomes: Sequence[ChunkOutcome]) -> None:
        errors = sorted({outcome.error or "unknown error" for outcome in outcomes})
        super().__init__(
            f"{operation_name}: all {len(outcomes)} chunk(s) failed. Errors: {errors[:3]}"
        )
        self.operation_name = operation_name
        self.outcomes = list(outcomes)


@dataclass(frozen=True)
class ChunkOutcome(Generic[F]):
    """Result of one chunk: its fragments on success, its error on failure."""

    index: int
    record_ids: tuple[Hashable, ...]
    attempts: int
    fragments: tuple[F, ...] = ()
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class BatchResult(Generic[F]):
    fragments: list[F] = field(default_factory=list)
    failed_chunk_indices: list[int] = field(default_factory=list)
    missing_ids: list[Hashable] = field(default_factory=list)
    duplicate_ids: list[Hashable] = field(default_factory=list)
    unexpected_ids: list[Hashable] = field(default_factory=list)
    outcomes: list[ChunkOutcome[F]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def attempts_for(self, index: int) -> int:
        return self.outcomes[index].attempts


def partition(records: Sequence[R], chunk_size: int) -> list[list[R]]:
    """Split records into ordered chunks of at most ``chunk_size``."""

    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}.")
    return [
        list(records[start : start + chunk_size]) for start in range(0, len(records), chunk_size)
    ]


def _default_id(item: Any) -> Hashable:
    return item.id


def _merge(
    outcomes: list[ChunkOutcome[F]],
    ordered_ids: list[Hashable],
    fragment_id: Callable[[F], Hashable],
) -> tuple[list[F], list[Hashable], list[Hashable], list[Hashable]]:
    merged: dict[Hashable, F] = {}
    duplicates: list[Hashable] = []
    unexpected: list[Hashable] = []
    expected: set[Hashable] = set()

    for outcome in outcomes:
        if not outcome.succeeded:
            continue
        chunk_ids = set(outcome.record_ids)
        expected.update(chunk_ids)
        for fragment in outcome.fragments:
            key = fragment_id(fragment)
            if key not in chunk_ids:
                unexpected.append(key)
            elif key in merged:
                duplicates.append(key)
            else:
                merged[key] = fragment

    fragments = [merged[key] for key in ordered_ids if key in merged]
    missing = [key for key in ordered_ids if key in expected and key not in merged]
    return fragments, missing, duplicates, unexpected


async def process_chunks(
    records: Sequence[R],
    chunk_size: int,
    per_chunk_op: Callable[[list[R]], Awaitable[Sequence[F]]],
    *,
    retry_policy: RetryPolicy | None = None,
    record_id: Callable[[R], Hashable] = _default_id,
    fragment_id: Callable[[F], Hashable] | None = _default_id,
    max_concurrency: int = 8,
    deadline_seconds: float | None = None,
    operation_name: str = "batch",
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> BatchResult[F]:
    """Run ``per_chunk_op`` over every chunk concurrently and merge the fragments.

    Each chunk is retried independently under ``retry_policy``. A failed chunk contributes
    no fragments and its index is reported; sibling chunks are unaffected. Fragments are
    merged by identifier (``fragment_id``), so completion order never matters. Pass
    ``fragment_id=None`` for fragments that are not keyed by record (they are concatenated
    in chunk order and no coverage check is done).

    Raises:
        AllChunksFailedError: if every chunk failed.
        ValueError: on invalid arguments or duplicate record identifiers.
    """

    if max_concurrency <= 0:
        raise ValueError(f"max_concurrency must be positive, got {max_concurrency}.")
    policy = retry_policy or RetryPolicy()
    chunks = partition(records, chunk_size)
    ordered_ids = [record_id(record) for record in records]
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValueError("Record identifiers within a batch must be unique.")
    if not chunks:
        return BatchResult()

    semaphore = asyncio.Semaphore(max_concurrency)
    attempt_counts = [0] * len(chunks)

    async def _run_chunk(index: int, chunk: list[R]) -> ChunkOutcome[F]:
        chunk_ids = tuple(record_id(record) for record in chunk)

        async def _attempt() -> Sequence[F]:
            attempt_counts[index] += 1
            return await per_chunk_op(chunk)

        async with semaphore:
            logger.debug("%s chunk %d started (%d records).", operation_name, index, len(chunk))
            try:
                fragments = await run_with_retry(
                    _attempt,
                    policy,
                    operation_name=f"{operation_name} chunk {index}",
                    sleep=sleep,
                )
            except Exception as exc:
                logger.warning(
                    "%s chunk %d failed after %d attempt(s): %s",
                    operation_name,
                    index,
                    attempt_counts[index],
                    exc,
                )
                return ChunkOutcome(
                    index=index,
                    record_ids=chunk_ids,
                    attempts=attempt_counts[index],
                    error=f"{type(exc).__name__}: {exc}",
                )

        logger.debug(
            "%s chunk %d finished with %d fragment(s).", operation_name, index, len(fragments)
        )
        return ChunkOutcome(
            index=index,
            record_ids=chunk_ids,
            attempts=attempt_counts[index],
            fragments=tuple(fragments),
        )

    tasks = [asyncio.create_task(_run_chunk(index, chunk)) for index, chunk in enumerate(chunks)]
    _, pending = await asyncio.wait(tasks, timeout=deadline_seconds)

    warnings: list[str] = []
    if pending:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        message = (
            f"{operation_name}: deadline of {deadline_seconds}s elapsed with "
            f"{len(pending)} chunk(s) outstanding; their results were discarded."
        )
        logger.warning(message)
        warnings.append(message)

    outcomes: list[ChunkOutcome[F]] = []
    for index, task in enumerate(tasks):
        if task in pending:
            outcomes.append(
                ChunkOutcome(
                    index=index,
                    record_ids=tuple(record_id(record) for record in chunks[index]),
                    attempts=attempt_counts[index],
                    error="deadline exceeded",
                )
            )
        else:
            outcomes.append(task.result())

    failed = [outcome.index for outcome in outcomes if not outcome.succeeded]
    if len(failed) == len(outcomes):
        raise AllChunksFailedError(operation_name, outcomes)
    if failed:
        message = f"{operation_name}: {len(failed)}/{len(outcomes)} chunk(s) failed: {failed}."
        logger.warning(message)
        warnings.append(message)

    if fragment_id is None:
        fragments = [fragment for outcome in outcomes for fragment in outcome.fragments]
        logger.info(
            "%s merged %d fragment(s) from %d chunk(s).",
            operation_name,
            len(fragments),
            len(outcomes),
        )
        return BatchResult(
            fragments=fragments,
            failed_chunk_indices=failed,
            outcomes=outcomes,
            warnings=warnings,
        )

    fragments, missing, duplicates, unexpected = _merge(outcomes, ordered_ids, fragment_id)
    if missing:
        message = f"{operation_name}: {len(missing)} record(s) missing from model output."
        logger.warning("%s Sample ids: %s", message, missing[:_SAMPLE_IDS])
        warnings.append(message)
    if duplicates:
        message = f"{operation_name}: dropped {len(duplicates)} duplicate fragment(s)."
        logger.warning("%s Sample ids: %s", message, duplicates[:_SAMPLE_IDS])
        warnings.append(message)
    if unexpected:
        message = f"{operation_name}: dropped {len(unexpected)} fragment(s) with unknown ids."
        logger.warning("%s Sample ids: %s", message, unexpected[:_SAMPLE_IDS])
        warnings.append(message)

    logger.info(
        "%s merged %d/%d record(s) from %d chunk(s).",
        operation_name,
        len(fragments),
        len(ordered_ids),
        len(outcomes),
    )
    return BatchResult(
        fragments=fragments,
        failed_chunk_indices=failed,
        missing_ids=missing,
        duplicate_ids=duplicates,
        unexpected_ids=unexpected,
        outcomes=outcomes,
        warnings=warnings,
    )
