"""Batch sentiment/category analysis and coaching insights over chunked tickets."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field

from pydantic import BaseModel, Field

from ticket_insights.config import Settings
from ticket_insights.models import ModelInvoker
from ticket_insights.observability import DiagnosticsBuffer
from ticket_insights.pipeline.batching import process_chunks
from ticket_insights.pipeline.invocation import InvocationContext, invoke_once
from ticket_insights.pipeline.normalizer import ExpectedShape
from ticket_insights.pipeline.pseudonymization import Pseudonymizer, anonymize_tickets
from ticket_insights.prompts import (
    BATCH_ANALYSIS_SYSTEM_PROMPT,
    COACHING_SYSTEM_PROMPT,
    build_batch_analysis_user_prompt,
    build_coaching_user_prompt,
)
from ticket_insights.schemas import CoachingInsight, Sentiment, Ticket, TicketAnalysis

logger = logging.getLogger(__name__)

_RESOLVED_STATUSES = {"solved", "closed"}


class _AnalysisBatchPayload(BaseModel):
    analyses: list[TicketAnalysis]


class _CoachingItemPayload(BaseModel):
    agent_name: str = Field(min_length=1)
    insight_type: str
    category: str
    description: str
    example_ticket_ids: list[int] = Field(default_factory=list)


class _CoachingBatchPayload(BaseModel):
    insights: list[_CoachingItemPayload]


_ANALYSIS_SHAPE = ExpectedShape(_AnalysisBatchPayload, collection_key="analyses")
_COACHING_SHAPE = ExpectedShape(_CoachingBatchPayload, collection_key="insights")


@dataclass
class BatchAnalysisResult:
    """Merged per-ticket analyses. Empty lists, never None, when there is nothing to report."""

    analyses: list[TicketAnalysis] = field(default_factory=list)
    failed_chunk_indices: list[int] = field(default_factory=list)
    missing_ids: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    chunk_attempts: list[int] = field(default_factory=list)

    def by_id(self) -> dict[int, TicketAnalysis]:
        return {analysis.id: analysis for analysis in self.analyses}

    def to_dict(self) -> dict:
        return {
            "analyses": [analysis.model_dump(mode="json") for analysis in self.analyses],
            "failed_chunk_indices": list(self.failed_chunk_indices),
            "missing_ids": list(self.missing_ids),
            "warnings": list(self.warnings),
            "chunk_attempts": list(self.chunk_attempts),
        }


@dataclass
class CoachingInsightsResult:
    insights: list[CoachingInsight] = field(default_factory=list)
    failed_chunk_indices: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sampled_ticket_count: int = 0
    agent_count: int = 0

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["insights"] = [insight.model_dump(mode="json") for insight in self.insights]
        return payload


async def analyze_tickets_async(
    tickets: Sequence[Ticket],
    context: InvocationContext,
    *,
    chunk_size: int = 200,
    description_max_chars: int = 500,
    max_concurrency: int = 8,
    deadline_seconds: float | None = None,
) -> BatchAnalysisResult:
    """Classify sentiment and category for every ticket, one model call per chunk.

    Raises:
        AllChunksFailedError: if no chunk could be analyzed.
    """

    if not tickets:
        return BatchAnalysisResult()

    pseudonymizer = Pseudonymizer()
    rows = anonymize_tickets(tickets, pseudonymizer, description_max_chars=description_max_chars)
    rows_by_id = {row["id"]: row for row in rows}

    async def _analyze_chunk(chunk: list[Ticket]) -> list[TicketAnalysis]:
        request = context.request(
            flow_name="batch_analysis",
            system_prompt=BATCH_ANALYSIS_SYSTEM_PROMPT,
            user_prompt=build_batch_analysis_user_prompt([rows_by_id[t.id] for t in chunk]),
            expected=_ANALYSIS_SHAPE,
        )
        payload = await invoke_once(context, request, _ANALYSIS_SHAPE)
        return payload.analyses

    batch = await process_chunks(
        list(tickets),
        chunk_size,
        _analyze_chunk,
        retry_policy=context.retry_policy,
        max_concurrency=max_concurrency,
        deadline_seconds=deadline_seconds,
        operation_name="batch_analysis",
        sleep=context.sleep,
    )
    return BatchAnalysisResult(
        analyses=list(batch.fragments),
        failed_chunk_indices=batch.failed_chunk_indices,
        missing_ids=[int(ticket_id) for ticket_id in batch.missing_ids],
        warnings=batch.warnings,
        chunk_attempts=[outcome.attempts for outcome in batch.outcomes],
    )


def first_contact_resolution(ticket: Ticket) -> bool:
    """Solved or closed with exactly one agent reply."""

    agent_replies = sum(1 for turn in ticket.conversation if turn.sender == "agent")
    return ticket.status.lower() in _RESOLVED_STATUSES and agent_replies == 1


def sample_coaching_tickets(tickets: Sequence[Ticket], limit: int) -> list[Ticket]:
    """Most recent assigned tickets first, at most ``limit``."""

    assigned = [ticket for ticket in tickets if ticket.assignee]
    assigned.sort(key=lambda ticket: ticket.created_at, reverse=True)
    return assigned[:limit]


async def coaching_insights_async(
    tickets: Sequence[Ticket],
    context: InvocationContext,
    *,
    analyses: Mapping[int, TicketAnalysis] | None = None,
    ticket_limit: int = 200,
    batch_size: int = 50,
    min_tickets: int = 5,
    max_concurrency: int = 8,
    deadline_seconds: float | None = None,
) -> CoachingInsightsResult:
    """Per-agent praise and coaching opportunities with agent names pseudonymized in transit."""

    sampled = sample_coaching_tickets(tickets, ticket_limit)
    if len(sampled) < min_tickets:
        logger.info(
            "Only %d assigned ticket(s) available (need %d); skipping coaching insights.",
            len(sampled),
            min_tickets,
        )
        return CoachingInsightsResult(sampled_ticket_count=len(sampled))

    analyses = analyses or {}
    pseudonymizer = Pseudonymizer()
    rows: list[dict] = []
    for ticket in sampled:
        analysis = analyses.get(ticket.id)
        sentiment: Sentiment | None = analysis.sentiment if analysis else None
        rows.append(
            {
                "id": ticket.id,
                "assignee": pseudonymizer.token_for(ticket.assignee),
                "category": analysis.category if analysis else ticket.category,
                "sentiment": sentiment,
                "csat_score": ticket.csat_score,
                "first_contact_resolution": "Yes" if first_contact_resolution(ticket) else "No",
            }
        )
    logger.info(
        "Pseudonymized %d agent(s) across %d coaching ticket(s).", len(pseudonymizer), len(rows)
    )

    async def _coach_chunk(chunk: list[dict]) -> list[_CoachingItemPayload]:
        request = context.request(
            flow_name="coaching_insights",
            system_prompt=COACHING_SYSTEM_PROMPT,
            user_prompt=build_coaching_user_prompt(chunk),
            expected=_COACHING_SHAPE,
        )
        payload = await invoke_once(context, request, _COACHING_SHAPE)
        return payload.insights

    batch = await process_chunks(
        rows,
        batch_size,
        _coach_chunk,
        retry_policy=context.retry_policy,
        record_id=lambda row: row["id"],
        fragment_id=None,
        max_concurrency=max_concurrency,
        deadline_seconds=deadline_seconds,
        operation_name="coaching_insights",
        sleep=context.sleep,
    )

    insights: list[CoachingInsight] = []
    for item in batch.fragments:
        positive = item.insight_type.strip().lower() == "positive"
        insight_type = "Positive" if positive else "Opportunity"
        insights.append(
            CoachingInsight(
                agent_name=pseudonymizer.real_for(item.agent_name.strip()),
                insight_type=insight_type,
                category=item.category,
                description=pseudonymizer.restore(item.description),
                example_ticket_ids=item.example_ticket_ids,
            )
        )
    if not insights:
        logger.warning("Model returned no coaching insights from any batch.")

    return CoachingInsightsResult(
        insights=insights,
        failed_chunk_indices=batch.failed_chunk_indices,
        warnings=batch.warnings,
        sampled_ticket_count=len(sampled),
        agent_count=len(pseudonymizer),
    )


def _context(
    invoker: ModelInvoker,
    settings: Settings,
    diagnostics: DiagnosticsBuffer | None,
) -> InvocationContext:
    return InvocationContext.from_settings(invoker, settings, diagnostics=diagnostics)


def run_batch_analysis(
    tickets: Sequence[Ticket],
    invoker: ModelInvoker,
    settings: Settings,
    *,
    chunk_size: int | None = None,
    diagnostics: DiagnosticsBuffer | None = None,
) -> BatchAnalysisResult:
    """Synchronous entry point for batch analysis."""

    return asyncio.run(
        analyze_tickets_async(
            tickets,
            _context(invoker, settings, diagnostics),
            chunk_size=chunk_size or settings.chunk_size,
            description_max_chars=settings.description_max_chars,
            max_concurrency=settings.chunk_max_concurrency,
            deadline_seconds=settings.pipeline_deadline_seconds,
        )
    )


def run_coaching_insights(
    tickets: Sequence[Ticket],
    invoker: ModelInvoker,
    settings: Settings,
    *,
    analyses: Mapping[int, TicketAnalysis] | None = None,
    diagnostics: DiagnosticsBuffer | None = None,
) -> CoachingInsightsResult:
    """Synchronous entry point for coaching insights."""

    return asyncio.run(
        coaching_insights_async(
            tickets,
            _context(invoker, settings, diagnostics),
            analyses=analyses,
            ticket_limit=settings.coaching_ticket_limit,
            batch_size=settings.coaching_batch_size,
            min_tickets=settings.coaching_min_tickets,
            max_concurrency=settings.chunk_max_concurrency,
            deadline_seconds=settings.pipeline_deadline_seconds,
        )
    )
