"""Thematic clustering and risk analysis over chunked, scrubbed tickets.

Both flows degrade to an empty result instead of raising when every chunk fails, so a
full analysis run keeps its other artifacts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from ticket_insights.config import Settings
from ticket_insights.models import ModelInvoker
from ticket_insights.observability import DiagnosticsBuffer
from ticket_insights.pipeline.batching import AllChunksFailedError, process_chunks
from ticket_insights.pipeline.invocation import InvocationContext, invoke_once
from ticket_insights.pipeline.normalizer import ExpectedShape
from ticket_insights.pipeline.pseudonymization import Pseudonymizer, anonymize_tickets
from ticket_insights.prompts import (
    CLUSTERING_SYSTEM_PROMPT,
    RISK_SYSTEM_PROMPT,
    build_clustering_user_prompt,
    build_risk_user_prompt,
)
from ticket_insights.schemas import (
    AtRiskTicket,
    DocumentationOpportunity,
    PredictedSlaBreach,
    Ticket,
    TicketAnalysis,
    TicketCluster,
)

logger = logging.getLogger(__name__)

_MAX_KEYWORDS = 7
_MAX_EXAMPLES = 3


class _ClusterPayload(BaseModel):
    theme: str = Field(min_length=1)
    ticket_ids: list[int] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)


class _ClusterBatchPayload(BaseModel):
    clusters: list[_ClusterPayload]


class _RiskBatchPayload(BaseModel):
    at_risk_tickets: list[AtRiskTicket] = Field(default_factory=list)
    predicted_sla_breaches: list[PredictedSlaBreach] = Field(default_factory=list)
    documentation_opportunities: list[DocumentationOpportunity] = Field(default_factory=list)


_CLUSTER_SHAPE = ExpectedShape(_ClusterBatchPayload, collection_key="clusters")
_RISK_SHAPE = ExpectedShape(_RiskBatchPayload)


@dataclass
class ClusteringResult:
    clusters: list[TicketCluster] = field(default_factory=list)
    failed_chunk_indices: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sampled_ticket_count: int = 0

    def to_dict(self) -> dict:
        return {
            "clusters": [cluster.model_dump(mode="json") for cluster in self.clusters],
            "failed_chunk_indices": list(self.failed_chunk_indices),
            "warnings": list(self.warnings),
            "sampled_ticket_count": self.sampled_ticket_count,
        }


@dataclass
class RiskAnalysisResult:
    """At-risk tickets, predicted SLA breaches and documentation gaps. Empty lists, never None."""

    at_risk_tickets: list[AtRiskTicket] = field(default_factory=list)
    predicted_sla_breaches: list[PredictedSlaBreach] = field(default_factory=list)
    documentation_opportunities: list[DocumentationOpportunity] = field(default_factory=list)
    failed_chunk_indices: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    analyzed_ticket_count: int = 0

    def to_dict(self) -> dict:
        return {
            "at_risk_tickets": [item.model_dump(mode="json") for item in self.at_risk_tickets],
            "predicted_sla_breaches": [
                item.model_dump(mode="json") for item in self.predicted_sla_breaches
            ],
            "documentation_opportunities": [
                item.model_dump(mode="json") for item in self.documentation_opportunities
            ],
            "failed_chunk_indices": list(self.failed_chunk_indices),
            "warnings": list(self.warnings),
            "analyzed_ticket_count": self.analyzed_ticket_count,
        }


def _theme_key(text: str) -> str:
    return " ".join(text.lower().split())


def _all_failed(exc: AllChunksFailedError) -> tuple[list[int], list[str]]:
    logger.warning("%s; returning an empty result.", exc)
    return [outcome.index for outcome in exc.outcomes], [str(exc)]


def merge_clusters(fragments: Sequence[_ClusterPayload]) -> list[TicketCluster]:
    """Merge per-chunk clusters that share a theme and number them from 1 in first-seen order."""

    merged: dict[str, _ClusterPayload] = {}
    for fragment in fragments:
        key = _theme_key(fragment.theme)
        if not key:
            continue
        entry = merged.setdefault(key, _ClusterPayload(theme=fragment.theme.strip()))
        for ticket_id in fragment.ticket_ids:
            if ticket_id not in entry.ticket_ids:
                entry.ticket_ids.append(ticket_id)
        seen = {keyword.lower() for keyword in entry.keywords}
        for keyword in fragment.keywords:
            keyword = keyword.strip()
            if keyword and keyword.lower() not in seen:
                seen.add(keyword.lower())
                entry.keywords.append(keyword)

    return [
        TicketCluster(
            cluster_id=index,
            theme=entry.theme,
            ticket_ids=entry.ticket_ids,
            keywords=entry.keywords[:_MAX_KEYWORDS],
        )
        for index, entry in enumerate(merged.values(), start=1)
    ]


async def cluster_tickets_async(
    tickets: Sequence[Ticket],
    context: InvocationContext,
    *,
    ticket_limit: int = 200,
    batch_size: int = 50,
    min_tickets: int = 5,
    max_concurrency: int = 8,
    deadline_seconds: float | None = None,
) -> ClusteringResult:
    """Group the first ``ticket_limit`` tickets into themes, one model call per batch."""

    sampled = list(tickets[:ticket_limit])
    if len(sampled) < min_tickets:
        logger.info(
            "Only %d ticket(s) available (need %d); skipping clustering.",
            len(sampled),
            min_tickets,
        )
        return ClusteringResult(sampled_ticket_count=len(sampled))

    pseudonymizer = Pseudonymizer()
    rows = [
        {"id": row["id"], "subject": row["subject"], "category": row["category"]}
        for row in anonymize_tickets(sampled, pseudonymizer)
    ]

    async def _cluster_chunk(chunk: list[dict]) -> list[_ClusterPayload]:
        request = context.request(
            flow_name="ticket_clustering",
            system_prompt=CLUSTERING_SYSTEM_PROMPT,
            user_prompt=build_clustering_user_prompt(chunk),
            expected=_CLUSTER_SHAPE,
        )
        payload = await invoke_once(context, request, _CLUSTER_SHAPE)
        chunk_ids = {row["id"] for row in chunk}
        kept = []
        for cluster in payload.clusters:
            ticket_ids = [ticket_id for ticket_id in cluster.ticket_ids if ticket_id in chunk_ids]
            if len(ticket_ids) < len(cluster.ticket_ids):
                logger.debug("Dropped unknown ticket ids from cluster %r.", cluster.theme)
            if ticket_ids:
                kept.append(cluster.model_copy(update={"ticket_ids": ticket_ids}))
        return kept

    try:
        batch = await process_chunks(
            rows,
            batch_size,
            _cluster_chunk,
            retry_policy=context.retry_policy,
            record_id=lambda row: row["id"],
            fragment_id=None,
            max_concurrency=max_concurrency,
            deadline_seconds=deadline_seconds,
            operation_name="ticket_clustering",
            sleep=context.sleep,
        )
    except AllChunksFailedError as exc:
        failed, warnings = _all_failed(exc)
        return ClusteringResult(
            failed_chunk_indices=failed, warnings=warnings, sampled_ticket_count=len(sampled)
        )

    restored = [
        fragment.model_copy(
            update={
                "theme": pseudonymizer.restore(fragment.theme),
                "keywords": [pseudonymizer.restore(keyword) for keyword in fragment.keywords],
            }
        )
        for fragment in batch.fragments
    ]
    clusters = merge_clusters(restored)
    if not clusters:
        logger.warning("Model returned no clusters from any batch.")
    else:
        logger.info("Built %d cluster(s) from %d ticket(s).", len(clusters), len(sampled))
    return ClusteringResult(
        clusters=clusters,
        failed_chunk_indices=batch.failed_chunk_indices,
        warnings=batch.warnings,
        sampled_ticket_count=len(sampled),
    )


def _merge_documentation(
    items: Sequence[DocumentationOpportunity],
) -> list[DocumentationOpportunity]:
    merged: dict[str, DocumentationOpportunity] = {}
    for item in items:
        key = _theme_key(item.topic)
        existing = merged.get(key)
        if existing is None:
            merged[key] = item.model_copy(
                update={"example_tickets": item.example_tickets[:_MAX_EXAMPLES]}
            )
            continue
        examples = list(existing.example_tickets)
        for example in item.example_tickets:
            if example not in examples and len(examples) < _MAX_EXAMPLES:
                examples.append(example)
        merged[key] = existing.model_copy(
            update={
                "related_ticket_count": existing.related_ticket_count
                + item.related_ticket_count,
                "example_tickets": examples,
            }
        )
    return list(merged.values())


async def identify_ticket_risks_async(
    tickets: Sequence[Ticket],
    context: InvocationContext,
    *,
    analyses: Mapping[int, TicketAnalysis] | None = None,
    chunk_size: int = 150,
    max_concurrency: int = 8,
    deadline_seconds: float | None = None,
    now: datetime | None = None,
) -> RiskAnalysisResult:
    """Flag at-risk tickets, SLA breaches and documentation gaps, one model call per chunk.

    Descriptions are not sent; subjects are scrubbed. Items naming a ticket outside their
    chunk are dropped, and the first report for a ticket wins.
    """

    if not tickets:
        return RiskAnalysisResult()

    analyses = analyses or {}
    pseudonymizer = Pseudonymizer()
    rows = []
    for row in anonymize_tickets(tickets, pseudonymizer):
        analysis = analyses.get(row["id"])
        rows.append(
            {
                "id": row["id"],
                "subject": row["subject"],
                "sentiment": analysis.sentiment if analysis else None,
                "category": analysis.category if analysis else row["category"],
                "priority": row["priority"],
                "status": row["status"],
                "created_at": row["created_at"],
            }
        )
    current_date = (now or datetime.now(UTC)).date().isoformat()

    async def _risk_chunk(chunk: list[dict]) -> list[_RiskBatchPayload]:
        request = context.request(
            flow_name="ticket_risks",
            system_prompt=RISK_SYSTEM_PROMPT,
            user_prompt=build_risk_user_prompt(chunk, current_date),
            expected=_RISK_SHAPE,
        )
        payload = await invoke_once(context, request, _RISK_SHAPE)
        chunk_ids = {row["id"] for row in chunk}
        return [
            payload.model_copy(
                update={
                    "at_risk_tickets": [
                        item for item in payload.at_risk_tickets if item.ticket_id in chunk_ids
                    ],
                    "predicted_sla_breaches": [
                        item
                        for item in payload.predicted_sla_breaches
                        if item.ticket_id in chunk_ids
                    ],
                }
            )
        ]

    try:
        batch = await process_chunks(
            rows,
            chunk_size,
            _risk_chunk,
            retry_policy=context.retry_policy,
            record_id=lambda row: row["id"],
            fragment_id=None,
            max_concurrency=max_concurrency,
            deadline_seconds=deadline_seconds,
            operation_name="ticket_risks",
            sleep=context.sleep,
        )
    except AllChunksFailedError as exc:
        failed, warnings = _all_failed(exc)
        return RiskAnalysisResult(
            failed_chunk_indices=failed, warnings=warnings, analyzed_ticket_count=len(tickets)
        )

    subjects = {ticket.id: ticket.subject for ticket in tickets}
    at_risk: dict[int, AtRiskTicket] = {}
    breaches: dict[int, PredictedSlaBreach] = {}
    documentation: list[DocumentationOpportunity] = []
    for fragment in batch.fragments:
        for item in fragment.at_risk_tickets:
            at_risk.setdefault(
                item.ticket_id,
                item.model_copy(
                    update={
                        "subject": subjects[item.ticket_id],
                        "reason": pseudonymizer.restore(item.reason),
                        "de_escalation_strategy": pseudonymizer.restore(
                            item.de_escalation_strategy
                        ),
                    }
                ),
            )
        for item in fragment.predicted_sla_breaches:
            breaches.setdefault(
                item.ticket_id,
                item.model_copy(
                    update={
                        "subject": subjects[item.ticket_id],
                        "reason": pseudonymizer.restore(item.reason),
                    }
                ),
            )
        documentation.extend(
            DocumentationOpportunity.model_validate(
                pseudonymizer.restore_payload(item.model_dump())
            )
            for item in fragment.documentation_opportunities
        )

    result = RiskAnalysisResult(
        at_risk_tickets=list(at_risk.values()),
        predicted_sla_breaches=list(breaches.values()),
        documentation_opportunities=_merge_documentation(documentation),
        failed_chunk_indices=batch.failed_chunk_indices,
        warnings=batch.warnings,
        analyzed_ticket_count=len(tickets),
    )
    logger.info(
        "Risk analysis found %d at-risk ticket(s), %d SLA breach(es) and %d documentation "
        "opportunity(ies).",
        len(result.at_risk_tickets),
        len(result.predicted_sla_breaches),
        len(result.documentation_opportunities),
    )
    return result


def run_ticket_clustering(
    tickets: Sequence[Ticket],
    invoker: ModelInvoker,
    settings: Settings,
    *,
    diagnostics: DiagnosticsBuffer | None = None,
) -> ClusteringResult:
    """Synchronous entry point for ticket clustering."""

    return asyncio.run(
        cluster_tickets_async(
            tickets,
            InvocationContext.from_settings(invoker, settings, diagnostics=diagnostics),
            ticket_limit=settings.cluster_ticket_limit,
            batch_size=settings.cluster_batch_size,
            min_tickets=settings.cluster_min_tickets,
            max_concurrency=settings.chunk_max_concurrency,
            deadline_seconds=settings.pipeline_deadline_seconds,
        )
    )


def run_risk_analysis(
    tickets: Sequence[Ticket],
    invoker: ModelInvoker,
    settings: Settings,
    *,
    analyses: Mapping[int, TicketAnalysis] | None = None,
    diagnostics: DiagnosticsBuffer | None = None,
) -> RiskAnalysisResult:
    """Synchronous entry point for risk analysis."""

    return asyncio.run(
        identify_ticket_risks_async(
            tickets,
            InvocationContext.from_settings(invoker, settings, diagnostics=diagnostics),
            analyses=analyses,
            chunk_size=settings.risk_chunk_size,
            max_concurrency=settings.chunk_max_concurrency,
            deadline_seconds=settings.pipeline_deadline_seconds,
        )
    )
