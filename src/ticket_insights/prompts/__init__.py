"""Prompt builders for the ticket insights pipeline."""

from ticket_insights.prompts.agent_prompts import AGENT_ROLE_PROMPTS, build_agent_user_prompt
from ticket_insights.prompts.agentic_prompts import (
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
from ticket_insights.prompts.analysis_prompts import (
    BATCH_ANALYSIS_SYSTEM_PROMPT,
    COACHING_SYSTEM_PROMPT,
    build_batch_analysis_user_prompt,
    build_coaching_user_prompt,
)
from ticket_insights.prompts.generation_prompts import (
    GENERATION_SYSTEM_PROMPT,
    build_generation_user_prompt,
)
from ticket_insights.prompts.theme_prompts import (
    CLUSTERING_SYSTEM_PROMPT,
    RISK_SYSTEM_PROMPT,
    build_clustering_user_prompt,
    build_risk_user_prompt,
)

__all__ = [
    "AGENT_ROLE_PROMPTS",
    "BATCH_ANALYSIS_SYSTEM_PROMPT",
    "CLUSTERING_SYSTEM_PROMPT",
    "COACHING_SYSTEM_PROMPT",
    "CROSS_VALIDATION_SYSTEM_PROMPT",
    "DISCOVERY_SYSTEM_PROMPT",
    "GENERATION_SYSTEM_PROMPT",
    "HYPOTHESIS_SYSTEM_PROMPT",
    "RISK_SYSTEM_PROMPT",
    "SYNTHESIS_SYSTEM_PROMPT",
    "TARGETED_ANALYSIS_SYSTEM_PROMPT",
    "build_agent_user_prompt",
    "build_batch_analysis_user_prompt",
    "build_clustering_user_prompt",
    "build_coaching_user_prompt",
    "build_cross_validation_user_prompt",
    "build_discovery_user_prompt",
    "build_generation_user_prompt",
    "build_hypothesis_user_prompt",
    "build_risk_user_prompt",
    "build_synthesis_user_prompt",
    "build_targeted_analysis_user_prompt",
]
