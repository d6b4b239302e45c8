"""Pipeline stage implementations."""

from ticket_insights.pipeline.agents import (
    AgentExecutionError,
    AgentPayload,
    AgentTask,
    AgentTool,
    MultiAgentCoordinator,
    MultiAgentResult,
    default_agent_tasks,
    run_multi_agent,
    run_multi_agent_async,
)
from ticket_insights.pipeline.batch_analysis import (
    BatchAnalysisResult,
    CoachingInsightsResult,
    analyze_tickets_async,
    coaching_insights_async,
    run_batch_analysis,
    run_coaching_insights,
)
from ticket_insights.pipeline.batching import (
    AllChunksFailedError,
    BatchResult,
    ChunkOutcome,
    partition,
    process_chunks,
)
from ticket_insights.pipeline.dedup import AllDuplicatesError, DedupGuard, TicketStore
from ticket_insights.pipeline.generation import (
    GenerationResult,
    generate_records,
    generate_records_async,
)
from ticket_insights.pipeline.invocation import (
    InvocationContext,
    invoke_once,
    invoke_structured,
)
from ticket_insights.pipeline.normalizer import (
    ExpectedShape,
    ParsedPayload,
    Unparseable,
    UnparseableResponseError,
    detect_shape,
    normalize,
)
from ticket_insights.pipeline.phases import (
    AgenticResult,
    BusinessContext,
    Phase,
    PhaseExecutionError,
    PhaseInputMissingError,
    run_agentic_pipeline,
    run_agentic_pipeline_async,
    run_phases,
)
from ticket_insights.pipeline.pseudonymization import (
    Pseudonymizer,
    anonymize_ticket,
    anonymize_tickets,
    scrub_pii,
)
from ticket_insights.pipeline.retry import RetryPolicy, is_retryable_error, run_with_retry
from ticket_insights.pipeline.themes import (
    ClusteringResult,
    RiskAnalysisResult,
    cluster_tickets_async,
    identify_ticket_risks_async,
    merge_clusters,
    run_risk_analysis,
    run_ticket_clustering,
)

__all__ = [
    "AgentExecutionError",
    "AgentPayload",
    "AgentTask",
    "AgentTool",
    "AgenticResult",
    "AllChunksFailedError",
    "AllDuplicatesError",
    "BatchAnalysisResult",
    "BatchResult",
    "BusinessContext",
    "ChunkOutcome",
    "ClusteringResult",
    "CoachingInsightsResult",
    "DedupGuard",
    "ExpectedShape",
    "GenerationResult",
    "InvocationContext",
    "MultiAgentCoordinator",
    "MultiAgentResult",
    "ParsedPayload",
    "Phase",
    "PhaseExecutionError",
    "PhaseInputMissingError",
    "Pseudonymizer",
    "RetryPolicy",
    "RiskAnalysisResult",
    "TicketStore",
    "Unparseable",
    "UnparseableResponseError",
    "analyze_tickets_async",
    "anonymize_ticket",
    "anonymize_tickets",
    "cluster_tickets_async",
    "coaching_insights_async",
    "default_agent_tasks",
    "detect_shape",
    "generate_records",
    "generate_records_async",
    "identify_ticket_risks_async",
    "invoke_once",
    "invoke_structured",
    "is_retryable_error",
    "merge_clusters",
    "normalize",
    "partition",
    "process_chunks",
    "run_agentic_pipeline",
    "run_agentic_pipeline_async",
    "run_batch_analysis",
    "run_coaching_insights",
    "run_multi_agent",
    "run_multi_agent_async",
    "run_phases",
    "run_risk_analysis",
    "run_ticket_clustering",
    "run_with_retry",
    "scrub_pii",
]
