"""Duplicate-avoiding synthetic ticket generation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from ticket_insights.config import Settings
from ticket_insights.models import ModelInvoker
from ticket_insights.observability import DiagnosticsBuffer
from ticket_insights.pipeline.dedup import DedupGuard, TicketStore
from ticket_insights.pipeline.invocation import InvocationContext, invoke_structured
from ticket_insights.pipeline.normalizer import ExpectedShape
from ticket_insights.prompts import GENERATION_SYSTEM_PROMPT, build_generation_user_prompt
from ticket_insights.schemas import ConversationTurn, Ticket

logger = logging.getLogger(__name__)

DEFAULT_SCENARIO = "SaaS platform customer support"


class _GeneratedTicketPayload(BaseModel):
    id: int
    subject: str = Field(min_length=1)
    description: str = ""
    status: str = "open"
    priority: str | None = None
    category: str = "General"
    assignee: str | None = None
    tags: list[str] = Field(default_factory=list)
    sla_breached: bool = False
    csat_score: float | None = Field(default=None, ge=0.0, le=5.0)
    created_at: datetime | None = None
    conversation: list[ConversationTurn] = Field(default_factory=list)


class _GenerationPayload(BaseModel):
    tickets: list[_GeneratedTicketPayload]


_GENERATION_SHAPE = ExpectedShape(_GenerationPayload, collection_key="tickets")


@dataclass
class GenerationResult:
    tenant: str
    requested_count: int
    start_id: int
    committed: list[Ticket] = field(default_factory=list)
    dropped_count: int = 0

    def to_dict(self) -> dict:
        return {
            "tenant": self.tenant,
            "requested_count": self.requested_count,
            "start_id": self.start_id,
            "committed_count": len(self.committed),
            "dropped_count": self.dropped_count,
            "committed_ids": [ticket.id for ticket in self.committed],
        }


def _to_ticket(item: _GeneratedTicketPayload, now: datetime) -> Ticket:
    return Ticket(
        id=item.id,
        subject=item.subject,
        description=item.description,
        conversation=tuple(item.conversation),
        status=item.status.lower(),
        priority=item.priority,
        category=item.category,
        assignee=item.assignee or None,
        tags=tuple(item.tags),
        sla_breached=item.sla_breached,
        csat_score=item.csat_score,
        created_at=item.created_at or now,
    )


async def generate_records_async(
    count: int,
    tenant: str,
    context: InvocationContext,
    store: TicketStore,
    *,
    scenario: str = DEFAULT_SCENARIO,
    id_floor: int = 10001,
    max_count: int = 100,
) -> GenerationResult:
    """Generate ``count`` tickets, drop ids already in the ledger and commit the rest.

    Raises:
        AllDuplicatesError: if every generated ticket is already committed.
    """

    if not 1 <= count <= max_count:
        raise ValueError(f"count must be between 1 and {max_count}, got {count}.")

    guard = DedupGuard(store, id_floor=id_floor)
    start_id = guard.next_start_id(tenant)
    logger.info("Generating %d ticket(s) for tenant %s starting at id %d.", count, tenant, start_id)

    request = context.request(
        flow_name="ticket_generation",
        system_prompt=GENERATION_SYSTEM_PROMPT,
        user_prompt=build_generation_user_prompt(
            count=count, start_id=start_id, scenario=scenario
        ),
        expected=_GENERATION_SHAPE,
    )
    payload = await invoke_structured(context, request, _GENERATION_SHAPE)

    now = datetime.now(UTC)
    candidates = [_to_ticket(item, now) for item in payload.tickets]
    if not candidates:
        logger.warning("Generator returned no tickets for tenant %s.", tenant)
        return GenerationResult(tenant=tenant, requested_count=count, start_id=start_id)

    unique = guard.filter_new(candidates, tenant)[:count]
    committed = store.insert_records(tenant, unique)
    return GenerationResult(
        tenant=tenant,
        requested_count=count,
        start_id=start_id,
        committed=list(committed),
        dropped_count=len(candidates) - len(committed),
    )


def generate_records(
    count: int,
    tenant: str,
    invoker: ModelInvoker,
    settings: Settings,
    store: TicketStore,
    *,
    scenario: str = DEFAULT_SCENARIO,
    diagnostics: DiagnosticsBuffer | None = None,
) -> GenerationResult:
    """Synchronous entry point for ticket generation."""

    return asyncio.run(
        generate_records_async(
            count,
            tenant,
            InvocationContext.from_settings(invoker, settings, diagnostics=diagnostics),
            store,
            scenario=scenario,
            id_floor=settings.generation_id_floor,
            max_count=settings.generation_max_count,
        )
    )
