"""Core data schemas for the ticket insights pipeline."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Sentiment = Literal["Positive", "Neutral", "Negative"]


class ConversationTurn(BaseModel):
    """A single message exchanged on a ticket."""

    model_config = ConfigDict(frozen=True)

    sender: Literal["customer", "agent"]
    message: str


class Ticket(BaseModel):
    """A support ticket record. Immutable for the duration of a pipeline run."""

    model_config = ConfigDict(frozen=True)

    id: int
    subject: str
    description: str = ""
    conversation: tuple[ConversationTurn, ...] = ()
    status: str = "open"
    priority: str | None = None
    category: str = "General"
    assignee: str | None = None
    tags: tuple[str, ...] = ()
    sla_breached: bool = False
    csat_score: float | None = Field(default=None, ge=0.0, le=5.0)
    created_at: datetime


class TicketAnalysis(BaseModel):
    """Sentiment and category analysis for one ticket."""

    id: int
    sentiment: Sentiment | None = None
    category: str = Field(min_length=1)


class CoachingInsight(BaseModel):
    """Coaching insight for one agent, with the real agent name restored."""

    agent_name: str
    insight_type: Literal["Positive", "Opportunity"]
    category: str
    description: str
    example_ticket_ids: list[int] = Field(default_factory=list)


class TicketCluster(BaseModel):
    """A thematic group of tickets. Cluster ids are unique within one clustering run."""

    cluster_id: int = Field(ge=1)
    theme: str = Field(min_length=1)
    ticket_ids: list[int] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)


class AtRiskTicket(BaseModel):
    ticket_id: int
    subject: str = ""
    reason: str
    predicted_csat: float = Field(ge=1.0, le=5.0)
    de_escalation_strategy: str = ""


class PredictedSlaBreach(BaseModel):
    ticket_id: int
    subject: str = ""
    predicted_breach_time: str
    reason: str


class DocumentationOpportunity(BaseModel):
    topic: str = Field(min_length=1)
    justification: str = ""
    related_ticket_count: int = Field(default=0, ge=0)
    example_tickets: list[str] = Field(default_factory=list)


class PerformanceRecord(BaseModel):
    """Duration and outcome of one agent execution."""

    agent_name: str
    model: str
    started_at: datetime
    ended_at: datetime
    duration_ms: float = Field(ge=0.0)
    success: bool
    error: str | None = None


class AgentResult(BaseModel):
    """Outcome of one agent run: a payload on success, an error payload on failure."""

    agent_name: str
    model: str
    success: bool
    payload: dict | None = None
    error: dict | None = None
    tool_outputs: dict = Field(default_factory=dict)
    started_at: datetime
    ended_at: datetime
    duration_ms: float = Field(ge=0.0)


# Agentic phase outputs.

Level = Literal["low", "medium", "high", "critical"]


class DataQuality(BaseModel):
    completeness: float = Field(ge=0.0, le=1.0)
    consistency: float = Field(ge=0.0, le=1.0)
    issues: list[str] = Field(default_factory=list)


class PatternInsight(BaseModel):
    pattern: str
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: list[str] = Field(default_factory=list)
    impact: str = "medium"
    ticket_ids: list[int] = Field(default_factory=list)


class KeyMetrics(BaseModel):
    total_tickets: int
    sla_breach_rate: float = 0.0
    avg_csat_score: float | None = None
    top_categories: list[str] = Field(default_factory=list)
    top_agents: list[str] = Field(default_factory=list)


class Anomaly(BaseModel):
    type: str
    description: str
    severity: str = "medium"
    affected_tickets: list[int] = Field(default_factory=list)


class DiscoveryOutput(BaseModel):
    data_quality: DataQuality
    patterns: list[PatternInsight] = Field(default_factory=list)
    key_metrics: KeyMetrics
    anomalies: list[Anomaly] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    confidence_score: float = Field(ge=0.0, le=1.0)


class InvestigationStrategy(BaseModel):
    approach: str
    metrics: list[str] = Field(default_factory=list)


class Hypothesis(BaseModel):
    id: str = Field(min_length=1)
    title: str
    description: str = ""
    type: str = "performance"
    priority: str = "medium"
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: list[str] = Field(default_factory=list)
    test_strategy: InvestigationStrategy | None = None
    expected_outcome: str = ""
    business_impact: str = ""


class PriorityCell(BaseModel):
    hypothesis_id: str
    impact_score: float = Field(ge=0.0, le=10.0)
    effort_score: float = Field(ge=0.0, le=10.0)


class HypothesisOutput(BaseModel):
    hypotheses: list[Hypothesis] = Field(min_length=1)
    priority_matrix: list[PriorityCell] = Field(default_factory=list)
    confidence_score: float = Field(ge=0.0, le=1.0)


class Finding(BaseModel):
    finding: str
    evidence: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)


class MeasuredMetric(BaseModel):
    metric: str
    value: float
    unit: str = ""


class HypothesisValidation(BaseModel):
    hypothesis_supported: bool
    support_level: str = "moderate"


class RecommendedAction(BaseModel):
    action: str
    priority: str = "medium"
    impact: str = ""
    effort: str = "medium"


class AnalysisResult(BaseModel):
    hypothesis_id: str
    findings: list[Finding] = Field(default_factory=list)
    metrics: list[MeasuredMetric] = Field(default_factory=list)
    validation: HypothesisValidation
    recommended_actions: list[RecommendedAction] = Field(default_factory=list)


class CrossHypothesisInsight(BaseModel):
    insight: str
    related_hypotheses: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)


class PriorityFinding(BaseModel):
    finding: str
    urgency: str = "medium"
    action_required: str = ""
    timeline: str = ""


class TargetedAnalysisOutput(BaseModel):
    analysis_results: list[AnalysisResult] = Field(min_length=1)
    cross_hypothesis_insights: list[CrossHypothesisInsight] = Field(default_factory=list)
    priority_findings: list[PriorityFinding] = Field(default_factory=list)
    confidence_score: float = Field(ge=0.0, le=1.0)


class ValidationResult(BaseModel):
    original_finding: str
    validation_method: str
    validation_outcome: Literal["confirmed", "partially_confirmed", "refuted", "inconclusive"]
    original_confidence: float = Field(ge=0.0, le=1.0)
    validated_confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""


class ConsensusFinding(BaseModel):
    finding: str
    confidence: float = Field(ge=0.0, le=1.0)
    business_implication: str = ""


class ConflictingFinding(BaseModel):
    original_finding: str
    conflicting_evidence: str
    resolution: str = ""


class ReliabilityAssessment(BaseModel):
    overall_reliability: float = Field(ge=0.0, le=1.0)
    methodology_strength: str = "moderate"
    limitations: list[str] = Field(default_factory=list)


class StrengthenedRecommendation(BaseModel):
    recommendation: str
    confidence: float = Field(ge=0.0, le=1.0)
    risk_assessment: str = ""


class CrossValidationOutput(BaseModel):
    validation_results: list[ValidationResult] = Field(default_factory=list)
    consensus_findings: list[ConsensusFinding] = Field(default_factory=list)
    conflicting_findings: list[ConflictingFinding] = Field(default_factory=list)
    reliability: ReliabilityAssessment
    strengthened_recommendations: list[StrengthenedRecommendation] = Field(default_factory=list)
    confidence_score: float = Field(ge=0.0, le=1.0)


class SynthesizedInsight(BaseModel):
    id: str
    title: str
    description: str
    category: str = "operational"
    supporting_findings: list[str] = Field(default_factory=list)
    impact_magnitude: Level = "medium"
    timeframe: str = "short_term"


class ActionItem(BaseModel):
    action: str
    owner: str = ""
    timeline: str = ""
    priority: Level = "medium"


class SynthesisOutput(BaseModel):
    narrative_insight: str = Field(min_length=1)
    synthesized_insights: list[SynthesizedInsight] = Field(default_factory=list)
    strategic_implications: list[str] = Field(default_factory=list)
    action_plan: list[ActionItem] = Field(default_factory=list)
    confidence_score: float = Field(ge=0.0, le=1.0)
