"""Tests for the multi-agent coordinator."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from ticket_insights.config import Settings
from ticket_insights.models import InvocationErrorKind, ModelInvocationError, ModelRequest
from ticket_insights.observability import AgentMetricsStore
from ticket_insights.pipeline.agents import (
    AgentPayload,
    AgentTask,
    AgentTool,
    MultiAgentCoordinator,
    default_agent_tasks,
    run_multi_agent,
    run_multi_agent_async,
    run_tools,
    upstream_view,
)
from ticket_insights.pipeline.invocation import InvocationContext
from ticket_insights.pipeline.retry import RetryPolicy
from ticket_insights.schemas import ConversationTurn, Ticket


def _report(summary: str) -> dict:
    return {
        "summary": summary,
        "findings": [{"title": "Queue imbalance", "severity": "high", "ticket_ids": [1]}],
        "recommendations": ["Rebalance assignments"],
        "confidence_score": 0.7,
    }


class _AgentInvoker:
    """Answers ``agent_<name>`` flows; ``fail`` and ``slow`` select misbehaving agents."""

    def __init__(self, fail: set[str] | None = None, slow: set[str] | None = None):
        self.fail = fail or set()
        self.slow = slow or set()
        self.requests: list[ModelRequest] = []

    def by_flow(self, flow_name: str) -> ModelRequest:
        return next(request for request in self.requests if request.flow_name == flow_name)

    def invoke(self, request: ModelRequest) -> str:
        self.requests.append(request)
        name = request.flow_name.removeprefix("agent_")
        if name in self.slow:
            time.sleep(0.3)
        if name in self.fail:
            raise ModelInvocationError(InvocationErrorKind.REJECTED, f"{name} rejected")
        summary = "Agent_1 carries most of the open queue." if name == "discovery" else name
        return json.dumps(_report(summary))


def _settings() -> Settings:
    return Settings(
        openai_api_key="test",
        client_backoff_seconds=0.0,
        client_backoff_jitter_seconds=0.0,
    )


def _tickets() -> list[Ticket]:
    owners = ["Alice Johnson", "Bob Smith", "Alice Johnson", None]
    return [
        Ticket(
            id=index,
            subject=f"Ticket {index}",
            conversation=(ConversationTurn(sender="agent", message="Resolved."),),
            status="solved" if index % 2 else "open",
            priority="high",
            assignee=owner,
            sla_breached=index == 2,
            csat_score=2.0 if index == 3 else None,
            created_at=datetime(2025, 4, 1, tzinfo=UTC) + timedelta(hours=index),
        )
        for index, owner in enumerate(owners, start=1)
    ]


def _context(invoker) -> InvocationContext:
    async def no_sleep(_: float) -> None:
        return None

    return InvocationContext(
        invoker=invoker,
        timeout=5.0,
        retry_policy=RetryPolicy(max_attempts=2, base_delay=0.0, jitter=0.0),
        sleep=no_sleep,
    )


def _payload() -> AgentPayload:
    return AgentPayload(goal="test", rows=({"id": 1, "assignee": "Agent_1"},))


class TestMultiAgentFlow:
    def test_every_agent_runs_and_is_measured(self):
        invoker = _AgentInvoker()
        store = AgentMetricsStore()

        result = run_multi_agent(_tickets(), invoker, _settings(), metrics_store=store)

        assert list(result.results) == ["discovery", "performance", "risk", "coaching", "synthesis"]
        assert result.failed_agents == []
        assert len(result.metrics) == 5
        assert {row.agent_name for row in store.records()} == set(result.results)
        assert invoker.requests[0].flow_name == "agent_discovery"
        assert invoker.requests[-1].flow_name == "agent_synthesis"

    def test_each_agent_uses_its_routed_model(self):
        invoker = _AgentInvoker()
        settings = _settings()

        result = run_multi_agent(
            _tickets(), invoker, settings, metrics_store=AgentMetricsStore()
        )

        assert invoker.by_flow("agent_coaching").model == settings.model_for_agent("coaching")
        assert result.results["synthesis"].model == "gpt-4.1"

    def test_failed_agent_is_isolated_and_visible_to_synthesis(self):
        invoker = _AgentInvoker(fail={"risk"})
        store = AgentMetricsStore()

        result = run_multi_agent(_tickets(), invoker, _settings(), metrics_store=store)

        assert result.failed_agents == ["risk"]
        risk = result.results["risk"]
        assert risk.payload is None
        assert risk.error["error_type"] == "AgentExecutionError"
        assert "risk rejected" in risk.error["message"]
        assert result.results["performance"].success
        assert result.results["synthesis"].success
        assert store.success_rate("risk") == 0.0
        assert any("risk" in warning for warning in result.warnings)

        synthesis_prompt = invoker.by_flow("agent_synthesis").user_prompt
        assert "risk rejected" in synthesis_prompt
        assert "Rebalance assignments" in synthesis_prompt

    def test_discovery_failure_does_not_abort_the_run(self):
        invoker = _AgentInvoker(fail={"discovery"})

        result = run_multi_agent(
            _tickets(), invoker, _settings(), metrics_store=AgentMetricsStore()
        )

        assert result.failed_agents == ["discovery"]
        assert result.results["synthesis"].success

    def test_real_names_never_leave_and_are_restored(self):
        invoker = _AgentInvoker()

        result = run_multi_agent(
            _tickets(), invoker, _settings(), metrics_store=AgentMetricsStore()
        )

        for request in invoker.requests:
            assert "Alice Johnson" not in request.user_prompt
            assert "Bob Smith" not in request.user_prompt
        # Ticket 1 is tokenized first, so Alice Johnson is Agent_1.
        discovery = result.results["discovery"]
        assert discovery.payload["summary"] == "Alice Johnson carries most of the open queue."
        workload = result.results["performance"].tool_outputs["agent_workload"]["agents"]
        assert set(workload) == {"Alice Johnson", "Bob Smith"}

    def test_agent_mentioned_before_their_own_ticket_is_scrubbed(self):
        tickets = _tickets()
        tickets[0] = tickets[0].model_copy(update={"description": "Escalated to Bob Smith"})
        invoker = _AgentInvoker()
        notes = AgentTool("notes", "descriptions", lambda rows: [r["description"] for r in rows])
        tasks = default_agent_tasks(_settings())
        tasks["discovery"] = replace(tasks["discovery"], tools=(notes,))

        asyncio.run(run_multi_agent_async(tickets, _context(invoker), tasks))

        discovery_prompt = invoker.by_flow("agent_discovery").user_prompt
        assert "Bob Smith" not in discovery_prompt
        assert "Escalated to Agent_2" in discovery_prompt


class TestCoordinator:
    def test_deadline_marks_outstanding_agents_failed(self):
        invoker = _AgentInvoker(slow={"slow"})
        coordinator = MultiAgentCoordinator(_context(invoker))
        tasks = [AgentTask("fast", "role", "m"), AgentTask("slow", "role", "m")]

        result = asyncio.run(coordinator.run_agents(tasks, _payload(), timeout=0.05))

        assert result.results["fast"].success
        slow = result.results["slow"]
        assert not slow.success
        assert "deadline exceeded" in slow.error["message"]
        assert len(result.metrics) == 2

    def test_non_positive_timeout_fails_every_agent(self):
        invoker = _AgentInvoker()
        coordinator = MultiAgentCoordinator(_context(invoker))

        result = asyncio.run(
            coordinator.run_agents([AgentTask("a", "role", "m")], _payload(), timeout=0)
        )

        assert result.failed_agents == ["a"]
        assert invoker.requests == []

    def test_duplicate_agent_names_are_rejected(self):
        coordinator = MultiAgentCoordinator(_context(_AgentInvoker()))
        tasks = [AgentTask("a", "role", "m"), AgentTask("a", "role", "m")]

        with pytest.raises(ValueError):
            asyncio.run(coordinator.run_agents(tasks, _payload()))

    def test_metrics_store_receives_every_record(self):
        store = AgentMetricsStore()
        coordinator = MultiAgentCoordinator(
            _context(_AgentInvoker(fail={"b"})), metrics_store=store
        )
        tasks = [AgentTask("a", "role", "m1"), AgentTask("b", "role", "m2")]

        asyncio.run(coordinator.run_agents(tasks, _payload()))

        assert store.success_rate("a") == 1.0
        assert store.success_rate("b") == 0.0
        assert set(store.average_duration_ms()) == {"a:m1", "b:m2"}


class TestTools:
    def test_tool_failures_become_error_payloads(self):
        def broken(rows):
            raise KeyError("category")

        async def counted(rows):
            return {"rows": len(rows)}

        tools = [
            AgentTool("broken", "always fails", broken),
            AgentTool("counted", "async tool", counted),
            AgentTool("sync", "plain function", lambda rows: sorted(row["id"] for row in rows)),
        ]

        outputs = asyncio.run(run_tools(tools, _payload()))

        assert outputs["broken"] == {"error": "KeyError: 'category'"}
        assert outputs["counted"] == {"rows": 1}
        assert outputs["sync"] == [1]

    def test_default_tasks_cover_every_role(self):
        tasks = default_agent_tasks(_settings())
        assert set(tasks) == {"discovery", "performance", "risk", "coaching", "synthesis"}
        assert tasks["synthesis"].tools == ()
        assert {tool.name for tool in tasks["risk"].tools} >= {"sla_breach_summary"}

    def test_upstream_view_exposes_errors(self):
        invoker = _AgentInvoker(fail={"b"})
        coordinator = MultiAgentCoordinator(_context(invoker))
        tasks = [AgentTask("a", "role", "m"), AgentTask("b", "role", "m")]

        result = asyncio.run(coordinator.run_agents(tasks, _payload()))
        view = upstream_view(result.results)

        assert view["a"]["summary"] == "a"
        assert view["b"]["error"]["error_type"] == "AgentExecutionError"
