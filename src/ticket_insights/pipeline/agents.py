"""Multi-agent coordinator: concurrent specialist agents with per-agent failure isolation."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from ticket_insights.config import Settings
from ticket_insights.models import ModelInvoker
from ticket_insights.observability import (
    AgentMetricsStore,
    DiagnosticsBuffer,
    get_agent_metrics_store,
)
from ticket_insights.pipeline import agent_tools
from ticket_insights.pipeline.invocation import InvocationContext, invoke_structured
from ticket_insights.pipeline.normalizer import ExpectedShape
from ticket_insights.pipeline.pseudonymization import Pseudonymizer, anonymize_tickets
from ticket_insights.prompts import AGENT_ROLE_PROMPTS, build_agent_user_prompt
from ticket_insights.schemas import AgentResult, PerformanceRecord, Ticket

logger = logging.getLogger(__name__)

DEFAULT_GOAL = "comprehensive support operations analysis"


class AgentExecutionError(RuntimeError):
    """Failure of a single agent. Captured into its AgentResult, never raised to the caller."""

    def __init__(self, agent_name: str, message: str) -> None:
        super().__init__(f"Agent {agent_name} failed: {message}")
        self.agent_name = agent_name


@dataclass(frozen=True)
class AgentPayload:
    """Input shared by every agent in a run. Rows are anonymized."""

    goal: str
    rows: tuple[dict, ...]


ToolFunc = Callable[[Sequence[dict]], Any]


@dataclass(frozen=True)
class AgentTool:
    name: str
    description: str
    func: ToolFunc


@dataclass(frozen=True)
class AgentTask:
    name: str
    role_prompt: str
    model: str
    tools: tuple[AgentTool, ...] = ()


class _Finding(BaseModel):
    title: str
    detail: str = ""
    severity: str = "medium"
    ticket_ids: list[int] = Field(default_factory=list)


class _AgentReport(BaseModel):
    summary: str = Field(min_length=1)
    findings: list[_Finding] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    confidence_score: float = Field(ge=0.0, le=1.0)


_REPORT_SHAPE = ExpectedShape(_AgentReport)


@dataclass
class MultiAgentResult:
    """Aggregate of every agent run, including failed ones."""

    results: dict[str, AgentResult] = field(default_factory=dict)
    metrics: list[PerformanceRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def failed_agents(self) -> list[str]:
        return [name for name, result in self.results.items() if not result.success]

    def to_dict(self) -> dict:
        return {
            "results": {
                name: result.model_dump(mode="json") for name, result in self.results.items()
            },
            "metrics": [record.model_dump(mode="json") for record in self.metrics],
            "warnings": list(self.warnings),
        }


async def run_tools(tools: Sequence[AgentTool], payload: AgentPayload) -> dict[str, Any]:
    """Run every tool concurrently; a failing tool yields an error payload under its name."""

    async def _run(tool: AgentTool) -> tuple[str, Any]:
        try:
            if inspect.iscoroutinefunction(tool.func):
                return tool.name, await tool.func(payload.rows)
            return tool.name, await asyncio.to_thread(tool.func, payload.rows)
        except Exception as exc:
            logger.warning("Tool %s failed: %s", tool.name, exc)
            return tool.name, {"error": f"{type(exc).__name__}: {exc}"}

    pairs = await asyncio.gather(*(_run(tool) for tool in tools))
    return dict(pairs)


def _error_payload(exc: BaseException) -> dict:
    return {"error_type": type(exc).__name__, "message": str(exc)}


def upstream_view(results: dict[str, AgentResult]) -> dict[str, dict]:
    """What later agents see of earlier ones: the report, or the error payload."""

    return {
        name: result.payload if result.success else {"error": result.error}
        for name, result in results.items()
    }


class MultiAgentCoordinator:
    """Runs agent groups concurrently and records a PerformanceRecord for every agent run."""

    def __init__(
        self,
        context: InvocationContext,
        *,
        metrics_store: AgentMetricsStore | None = None,
    ) -> None:
        self._context = context
        self._metrics_store = metrics_store

    def _record(self, result: AgentResult) -> PerformanceRecord:
        record = PerformanceRecord(
            agent_name=result.agent_name,
            model=result.model,
            started_at=result.started_at,
            ended_at=result.ended_at,
            duration_ms=result.duration_ms,
            success=result.success,
            error=result.error["message"] if result.error else None,
        )
        if self._metrics_store is not None:
            self._metrics_store.append(record)
        return record

    async def run_agent(
        self,
        task: AgentTask,
        payload: AgentPayload,
        upstream: dict[str, dict] | None = None,
    ) -> AgentResult:
        """Run one agent. Failures are returned as an error payload, not raised."""

        started_at = datetime.now(UTC)
        started = time.perf_counter()
        tool_outputs: dict[str, Any] = {}
        report: dict | None = None
        error: dict | None = None
        try:
            tool_outputs = await run_tools(task.tools, payload)
            request = self._context.request(
                flow_name=f"agent_{task.name}",
                system_prompt=task.role_prompt,
                user_prompt=build_agent_user_prompt(
                    goal=payload.goal,
                    ticket_count=len(payload.rows),
                    tool_outputs=tool_outputs,
                    upstream=upstream,
                ),
                expected=_REPORT_SHAPE,
                model=task.model,
            )
            parsed = await invoke_structured(self._context, request, _REPORT_SHAPE)
            report = parsed.model_dump(mode="json")
        except Exception as exc:
            failure = AgentExecutionError(task.name, f"{type(exc).__name__}: {exc}")
            logger.warning("%s", failure)
            error = _error_payload(failure)

        duration_ms = max(0.0, (time.perf_counter() - started) * 1000.0)
        return AgentResult(
            agent_name=task.name,
            model=task.model,
            success=error is None,
            payload=report,
            error=error,
            tool_outputs=tool_outputs,
            started_at=started_at,
            ended_at=datetime.now(UTC),
            duration_ms=duration_ms,
        )

    async def run_agents(
        self,
        tasks: Sequence[AgentTask],
        payload: AgentPayload,
        *,
        upstream: dict[str, dict] | None = None,
        timeout: float | None = None,
    ) -> MultiAgentResult:
        """Run ``tasks`` as one parallel group and wait for all of them to settle.

        Agents still running when ``timeout`` elapses are cancelled and reported as failed.
        """

        names = [task.name for task in tasks]
        if len(set(names)) != len(names):
            raise ValueError(f"Agent names within a group must be unique: {names}")
        if not tasks:
            return MultiAgentResult()

        group_started = datetime.now(UTC)
        pending: set[asyncio.Task] = set()
        if timeout is not None and timeout <= 0:
            runs: list[asyncio.Task] = []
        else:
            runs = [
                asyncio.create_task(self.run_agent(task, payload, upstream)) for task in tasks
            ]
            _, pending = await asyncio.wait(runs, timeout=timeout)
            for run in pending:
                run.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        aggregate = MultiAgentResult()
        for index, task in enumerate(tasks):
            run = runs[index] if runs else None
            if run is None or run in pending:
                now = datetime.now(UTC)
                result = AgentResult(
                    agent_name=task.name,
                    model=task.model,
                    success=False,
                    error=_error_payload(AgentExecutionError(task.name, "deadline exceeded")),
                    started_at=group_started,
                    ended_at=now,
                    duration_ms=max(0.0, (now - group_started).total_seconds() * 1000.0),
                )
            else:
                result = run.result()
            aggregate.results[task.name] = result
            aggregate.metrics.append(self._record(result))
            if not result.success:
                aggregate.warnings.append(f"Agent {task.name} failed: {result.error['message']}")
        return aggregate


def default_agent_tasks(settings: Settings) -> dict[str, AgentTask]:
    """Specialist agents with their role prompts, routed models and tools."""

    def _tool(func: ToolFunc, description: str) -> AgentTool:
        return AgentTool(name=func.__name__, description=description, func=func)

    tools = {
        "discovery": (
            _tool(agent_tools.category_distribution, "Ticket share per category"),
            _tool(agent_tools.status_breakdown, "Ticket count per status"),
            _tool(agent_tools.tag_frequency, "Most frequent tags"),
        ),
        "performance": (
            _tool(agent_tools.agent_workload, "Ticket count and resolution rate per agent"),
            _tool(agent_tools.csat_by_agent, "Average CSAT per agent"),
        ),
        "risk": (
            _tool(agent_tools.sla_breach_summary, "SLA breach rate overall and per priority"),
            _tool(agent_tools.open_high_priority, "Open high and urgent priority tickets"),
            _tool(agent_tools.agent_load_concentration, "Agents with unusually high open load"),
        ),
        "coaching": (
            _tool(
                agent_tools.first_contact_resolution_by_agent,
                "First-contact resolution rate per agent",
            ),
            _tool(agent_tools.low_csat_tickets, "Tickets with CSAT of 2 or lower"),
        ),
        "synthesis": (),
    }
    return {
        name: AgentTask(
            name=name,
            role_prompt=AGENT_ROLE_PROMPTS[name],
            model=settings.model_for_agent(name),
            tools=task_tools,
        )
        for name, task_tools in tools.items()
    }


def _remaining(deadline: float | None, loop: asyncio.AbstractEventLoop) -> float | None:
    return None if deadline is None else deadline - loop.time()


def _merge(target: MultiAgentResult, part: MultiAgentResult) -> None:
    target.results.update(part.results)
    target.metrics.extend(part.metrics)
    target.warnings.extend(part.warnings)


async def run_multi_agent_async(
    tickets: Sequence[Ticket],
    context: InvocationContext,
    tasks: dict[str, AgentTask],
    *,
    goal: str = DEFAULT_GOAL,
    metrics_store: AgentMetricsStore | None = None,
    description_max_chars: int = 500,
    deadline_seconds: float | None = None,
) -> MultiAgentResult:
    """Discovery, then performance/risk/coaching in parallel, then synthesis over everything.

    A failed agent degrades the result but never aborts the run; synthesis always sees the
    full aggregate, including error payloads.
    """

    pseudonymizer = Pseudonymizer()
    payload = AgentPayload(
        goal=goal,
        rows=tuple(
            anonymize_tickets(
                tickets, pseudonymizer, description_max_chars=description_max_chars
            )
        ),
    )
    coordinator = MultiAgentCoordinator(context, metrics_store=metrics_store)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + deadline_seconds if deadline_seconds is not None else None

    aggregate = MultiAgentResult()
    _merge(
        aggregate,
        await coordinator.run_agents(
            [tasks["discovery"]], payload, timeout=_remaining(deadline, loop)
        ),
    )

    parallel_group = [tasks[name] for name in ("performance", "risk", "coaching") if name in tasks]
    _merge(
        aggregate,
        await coordinator.run_agents(
            parallel_group,
            payload,
            upstream=upstream_view(aggregate.results),
            timeout=_remaining(deadline, loop),
        ),
    )

    _merge(
        aggregate,
        await coordinator.run_agents(
            [tasks["synthesis"]],
            payload,
            upstream=upstream_view(aggregate.results),
            timeout=_remaining(deadline, loop),
        ),
    )

    for name, result in aggregate.results.items():
        aggregate.results[name] = AgentResult.model_validate(
            pseudonymizer.restore_payload(result.model_dump(mode="json"))
        )
    return aggregate


def run_multi_agent(
    tickets: Sequence[Ticket],
    invoker: ModelInvoker,
    settings: Settings,
    *,
    goal: str = DEFAULT_GOAL,
    metrics_store: AgentMetricsStore | None = None,
    diagnostics: DiagnosticsBuffer | None = None,
) -> MultiAgentResult:
    """Synchronous entry point for the multi-agent flow."""

    return asyncio.run(
        run_multi_agent_async(
            tickets,
            InvocationContext.from_settings(invoker, settings, diagnostics=diagnostics),
            default_agent_tasks(settings),
            goal=goal,
            metrics_store=metrics_store or get_agent_metrics_store(settings.metrics_buffer_size),
            description_max_chars=settings.description_max_chars,
            deadline_seconds=settings.pipeline_deadline_seconds,
        )
    )
