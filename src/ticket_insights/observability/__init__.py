"""Observability helpers."""

from ticket_insights.observability.diagnostics import (
    DiagnosticEntry,
    DiagnosticsBuffer,
    get_diagnostics_buffer,
    init_diagnostics_buffer,
    record_diagnostic,
)
from ticket_insights.observability.langsmith import (
    TracingStatus,
    get_tracing_status,
    maybe_wrap_openai_client,
)
from ticket_insights.observability.metrics import AgentMetricsStore, get_agent_metrics_store

__all__ = [
    "AgentMetricsStore",
    "DiagnosticEntry",
    "DiagnosticsBuffer",
    "TracingStatus",
    "get_agent_metrics_store",
    "get_diagnostics_buffer",
    "get_tracing_status",
    "init_diagnostics_buffer",
    "maybe_wrap_openai_client",
    "record_diagnostic",
]
