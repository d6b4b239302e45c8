"""Five-phase agentic analysis pipeline.

Phases run strictly in order. Each phase reads the accumulated outputs of the phases before
it plus the immutable shared context, and the pipeline state is folded forward one phase at
a time. The first failing phase stops the run with a `PhaseExecutionError` naming it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

from ticket_insights.config import Settings
from ticket_insights.io.load import summarize_tickets
from ticket_insights.models import ModelInvoker
from ticket_insights.observability import DiagnosticsBuffer
from ticket_insights.pipeline.invocation import InvocationContext, invoke_structured
from ticket_insights.pipeline.normalizer import ExpectedShape
from ticket_insights.pipeline.pseudonymization import Pseudonymizer, anonymize_tickets
from ticket_insights.prompts import (
    CROSS_VALIDATION_SYSTEM_PROMPT,
    DISCOVERY_SYSTEM_PROMPT,
    HYPOTHESIS_SYSTEM_PROMPT,
    SYNTHESIS_SYSTEM_PROMPT,
    TARGETED_ANALYSIS_SYSTEM_PROMPT,
    build_cross_validation_user_prompt,
    build_discovery_user_prompt,
    build_hypothesis_user_prompt,
    build_synthesis_user_prompt,
    build_targeted_analysis_user_prompt,
)
from ticket_insights.schemas import (
    CrossValidationOutput,
    DiscoveryOutput,
    HypothesisOutput,
    SynthesisOutput,
    TargetedAnalysisOutput,
    Ticket,
)

logger = logging.getLogger(__name__)

ANALYSIS_TOOLS = [
    "distribution_analysis",
    "cohort_comparison",
    "trend_analysis",
    "correlation_analysis",
    "sla_breach_analysis",
]
VALIDATION_METHODS = [
    "independent_sample_recheck",
    "segment_consistency_check",
    "historical_comparison",
    "counterfactual_reasoning",
]
_TARGETED_SAMPLE_SIZE = 100
_TARGETED_SAMPLE_FIELDS = (
    "id",
    "category",
    "priority",
    "status",
    "created_at",
    "tags",
    "sla_breached",
    "csat_score",
    "assignee",
)


class Phase(str, Enum):
    DISCOVERY = "Discovery"
    HYPOTHESIS = "Hypothesis"
    TARGETED_ANALYSIS = "TargetedAnalysis"
    CROSS_VALIDATION = "CrossValidation"
    SYNTHESIS = "Synthesis"


class PhaseExecutionError(RuntimeError):
    """Raised when a phase fails; later phases are not run."""

    def __init__(self, phase: str, message: str) -> None:
        super().__init__(f"Phase {phase} failed: {message}")
        self.phase = phase


class PhaseInputMissingError(PhaseExecutionError):
    """Raised when a phase needs the output of a phase that has not completed."""

    def __init__(self, phase: str, missing: Phase) -> None:
        super().__init__(phase, f"required {missing.value} output is missing")
        self.missing = missing


@dataclass(frozen=True)
class BusinessContext:
    priorities: tuple[str, ...] = ()
    constraints: tuple[str, ...] = ()
    goals: tuple[str, ...] = ()
    stakeholders: tuple[str, ...] = ()
    timeline: str = ""

    def to_dict(self) -> dict:
        return {
            "priorities": list(self.priorities),
            "constraints": list(self.constraints),
            "goals": list(self.goals),
            "stakeholders": list(self.stakeholders),
            "timeline": self.timeline,
        }


@dataclass(frozen=True)
class SharedContext:
    """Inputs every phase may read. Never modified during a run."""

    total_ticket_count: int
    sample_rows: tuple[dict, ...]
    ticket_summary: dict
    business_context: BusinessContext = BusinessContext()


@dataclass(frozen=True)
class PipelineState:
    """Outputs of the completed phases, in completion order."""

    outputs: tuple[tuple[Phase, BaseModel], ...] = ()

    @property
    def completed(self) -> tuple[Phase, ...]:
        return tuple(phase for phase, _ in self.outputs)

    def output(self, phase: Phase, *, required_by: Phase) -> Any:
        for completed_phase, output in self.outputs:
            if completed_phase is phase:
                return output
        raise PhaseInputMissingError(required_by.value, phase)

    def advance(self, phase: Phase, output: BaseModel) -> PipelineState:
        return PipelineState(outputs=(*self.outputs, (phase, output)))


PromptBuilder = Callable[[PipelineState, SharedContext], str]


@dataclass(frozen=True)
class PhaseStep:
    phase: Phase
    output_model: type[BaseModel]
    system_prompt: str
    build_prompt: PromptBuilder

    async def run(
        self,
        state: PipelineState,
        shared: SharedContext,
        context: InvocationContext,
    ) -> PipelineState:
        user_prompt = self.build_prompt(state, shared)
        shape = ExpectedShape(self.output_model)
        request = context.request(
            flow_name=f"agentic_{self.phase.value}",
            system_prompt=self.system_prompt,
            user_prompt=user_prompt,
            expected=shape,
        )
        output = await invoke_structured(context, request, shape)
        return state.advance(self.phase, output)


def _discovery_prompt(state: PipelineState, shared: SharedContext) -> str:
    return build_discovery_user_prompt(list(shared.sample_rows), shared.total_ticket_count)


def _hypothesis_prompt(state: PipelineState, shared: SharedContext) -> str:
    discovery = state.output(Phase.DISCOVERY, required_by=Phase.HYPOTHESIS)
    return build_hypothesis_user_prompt(
        discovery.model_dump(mode="json"), shared.business_context.to_dict()
    )


def _targeted_analysis_prompt(state: PipelineState, shared: SharedContext) -> str:
    hypotheses = state.output(Phase.HYPOTHESIS, required_by=Phase.TARGETED_ANALYSIS)
    sample = [
        {key: row[key] for key in _TARGETED_SAMPLE_FIELDS}
        for row in shared.sample_rows[:_TARGETED_SAMPLE_SIZE]
    ]
    return build_targeted_analysis_user_prompt(
        hypotheses.model_dump(mode="json"), shared.ticket_summary, sample, ANALYSIS_TOOLS
    )


def _cross_validation_prompt(state: PipelineState, shared: SharedContext) -> str:
    analysis = state.output(Phase.TARGETED_ANALYSIS, required_by=Phase.CROSS_VALIDATION)
    discovery = state.output(Phase.DISCOVERY, required_by=Phase.CROSS_VALIDATION)
    return build_cross_validation_user_prompt(
        analysis.model_dump(mode="json"),
        VALIDATION_METHODS,
        [pattern.pattern for pattern in discovery.patterns],
    )


def _synthesis_prompt(state: PipelineState, shared: SharedContext) -> str:
    validation = state.output(Phase.CROSS_VALIDATION, required_by=Phase.SYNTHESIS)
    confidences = {phase.value: output.confidence_score for phase, output in state.outputs}
    return build_synthesis_user_prompt(
        validation.model_dump(mode="json"), confidences, shared.business_context.to_dict()
    )


DEFAULT_PHASES: tuple[PhaseStep, ...] = (
    PhaseStep(Phase.DISCOVERY, DiscoveryOutput, DISCOVERY_SYSTEM_PROMPT, _discovery_prompt),
    PhaseStep(Phase.HYPOTHESIS, HypothesisOutput, HYPOTHESIS_SYSTEM_PROMPT, _hypothesis_prompt),
    PhaseStep(
        Phase.TARGETED_ANALYSIS,
        TargetedAnalysisOutput,
        TARGETED_ANALYSIS_SYSTEM_PROMPT,
        _targeted_analysis_prompt,
    ),
    PhaseStep(
        Phase.CROSS_VALIDATION,
        CrossValidationOutput,
        CROSS_VALIDATION_SYSTEM_PROMPT,
        _cross_validation_prompt,
    ),
    PhaseStep(Phase.SYNTHESIS, SynthesisOutput, SYNTHESIS_SYSTEM_PROMPT, _synthesis_prompt),
)


async def run_phases(
    steps: Sequence[PhaseStep],
    shared: SharedContext,
    context: InvocationContext,
    *,
    deadline_seconds: float | None = None,
) -> PipelineState:
    """Fold the pipeline state through ``steps`` in order."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + deadline_seconds if deadline_seconds is not None else None
    state = PipelineState()

    for step in steps:
        remaining = None if deadline is None else deadline - loop.time()
        if remaining is not None and remaining <= 0:
            raise PhaseExecutionError(step.phase.value, "deadline exceeded before start")

        logger.info("Phase %s started.", step.phase.value)
        try:
            state = await asyncio.wait_for(step.run(state, shared, context), timeout=remaining)
        except PhaseExecutionError:
            logger.error("Phase %s could not run; stopping pipeline.", step.phase.value)
            raise
        except TimeoutError as exc:
            if deadline is not None and loop.time() >= deadline:
                logger.error("Phase %s exceeded the pipeline deadline.", step.phase.value)
                raise PhaseExecutionError(step.phase.value, "deadline exceeded") from exc
            logger.error("Phase %s failed: %s", step.phase.value, exc)
            raise PhaseExecutionError(step.phase.value, f"{type(exc).__name__}: {exc}") from exc
        except Exception as exc:
            logger.error("Phase %s failed: %s", step.phase.value, exc)
            raise PhaseExecutionError(step.phase.value, f"{type(exc).__name__}: {exc}") from exc
        logger.info("Phase %s completed.", step.phase.value)

    return state


@dataclass
class AgenticResult:
    """Terminal pipeline state: the synthesis plus its own holistic confidence."""

    synthesis: SynthesisOutput
    confidence: float
    phase_outputs: dict[str, dict] = field(default_factory=dict)

    @property
    def completed_phases(self) -> list[str]:
        return list(self.phase_outputs)

    def to_dict(self) -> dict:
        return {
            "confidence": self.confidence,
            "synthesis": self.synthesis.model_dump(mode="json"),
            "phase_outputs": self.phase_outputs,
        }


def build_shared_context(
    tickets: Sequence[Ticket],
    pseudonymizer: Pseudonymizer,
    *,
    business_context: BusinessContext | None = None,
    sample_size: int = 500,
    description_max_chars: int = 500,
) -> SharedContext:
    """Sample the most recent tickets and anonymize them for every phase."""

    sample = sorted(tickets, key=lambda ticket: ticket.created_at, reverse=True)[:sample_size]
    rows = anonymize_tickets(
        sample,
        pseudonymizer,
        description_max_chars=description_max_chars,
        known_names=(ticket.assignee for ticket in tickets),
    )
    for row in rows:
        row.pop("conversation")

    summary = summarize_tickets(tickets)
    created = [ticket.created_at for ticket in tickets]
    return SharedContext(
        total_ticket_count=len(tickets),
        sample_rows=tuple(rows),
        ticket_summary={
            "total_tickets": summary.ticket_count,
            "categories": list(summary.category_counts),
            "time_range": f"{min(created).isoformat()} to {max(created).isoformat()}",
            "key_metrics": {
                "sla_breach_rate": round(summary.sla_breach_rate, 4),
                "avg_csat_score": summary.avg_csat_score,
                "status_counts": summary.status_counts,
                "agent_count": summary.agent_count,
            },
        },
        business_context=business_context or BusinessContext(),
    )


async def run_agentic_pipeline_async(
    tickets: Sequence[Ticket],
    context: InvocationContext,
    *,
    business_context: BusinessContext | None = None,
    sample_size: int = 500,
    description_max_chars: int = 500,
    deadline_seconds: float | None = None,
    steps: Sequence[PhaseStep] = DEFAULT_PHASES,
) -> AgenticResult:
    """Run every phase and return the synthesis with agent names restored.

    Raises:
        PhaseExecutionError: naming the first phase that failed or could not run.
    """

    if not tickets:
        raise PhaseExecutionError(Phase.DISCOVERY.value, "no tickets to analyze")

    pseudonymizer = Pseudonymizer()
    shared = build_shared_context(
        tickets,
        pseudonymizer,
        business_context=business_context,
        sample_size=sample_size,
        description_max_chars=description_max_chars,
    )
    state = await run_phases(steps, shared, context, deadline_seconds=deadline_seconds)

    synthesis = state.output(Phase.SYNTHESIS, required_by=Phase.SYNTHESIS)
    restored = SynthesisOutput.model_validate(
        pseudonymizer.restore_payload(synthesis.model_dump(mode="json"))
    )
    return AgenticResult(
        synthesis=restored,
        confidence=restored.confidence_score,
        phase_outputs={
            phase.value: pseudonymizer.restore_payload(output.model_dump(mode="json"))
            for phase, output in state.outputs
        },
    )


def run_agentic_pipeline(
    tickets: Sequence[Ticket],
    invoker: ModelInvoker,
    settings: Settings,
    *,
    business_context: BusinessContext | None = None,
    diagnostics: DiagnosticsBuffer | None = None,
) -> AgenticResult:
    """Synchronous entry point for the five-phase pipeline."""

    return asyncio.run(
        run_agentic_pipeline_async(
            tickets,
            InvocationContext.from_settings(invoker, settings, diagnostics=diagnostics),
            business_context=business_context,
            sample_size=settings.discovery_sample_size,
            description_max_chars=settings.description_max_chars,
            deadline_seconds=settings.pipeline_deadline_seconds,
        )
    )
