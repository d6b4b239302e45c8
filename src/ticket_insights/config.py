"""Configuration management for the ticket insights pipeline."""

from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_AGENT_MODELS = {
    "discovery": "gpt-4.1-mini",
    "performance": "gpt-4.1-mini",
    "risk": "gpt-4.1-mini",
    "coaching": "gpt-4.1",
    "synthesis": "gpt-4.1",
}


class Settings(BaseSettings):
    """Pipeline settings, loaded from env vars and optionally overridden by a YAML config file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API keys / endpoints
    openai_api_key: str = ""
    openai_base_url: str = ""
    azure_openai_api_key: str = ""
    azure_openai_endpoint: str = ""
    azure_openai_deployment: str = ""

    # Model config
    openai_model: str = "gpt-4.1-mini"
    openai_temperature: float = 0.0
    agent_models: dict[str, str] = Field(default_factory=lambda: dict(_DEFAULT_AGENT_MODELS))

    # Invocation and retry
    request_timeout_seconds: float = 60.0
    client_max_attempts: int = 3
    client_backoff_seconds: float = 1.0
    client_backoff_jitter_seconds: float = 1.0
    client_backoff_max_seconds: float = 60.0

    # Batching
    chunk_size: int = 200
    chunk_max_concurrency: int = 8
    description_max_chars: int = 500
    pipeline_deadline_seconds: float | None = 600.0

    # Analysis flows
    discovery_sample_size: int = 500
    coaching_ticket_limit: int = 200
    coaching_batch_size: int = 50
    coaching_min_tickets: int = 5
    cluster_ticket_limit: int = 200
    cluster_batch_size: int = 50
    cluster_min_tickets: int = 5
    risk_chunk_size: int = 150

    # Observability
    diagnostics_buffer_size: int = 100
    metrics_buffer_size: int = 1000
    log_level: str = "INFO"

    # Generation
    generation_id_floor: int = 10001
    generation_max_count: int = 100

    # Paths
    input_tickets_path: Path = Field(default=Path("data/tickets.jsonl"))
    data_dir: Path = Field(default=Path("data"))
    output_dir: Path = Field(default=Path("runs"))

    @classmethod
    def from_yaml(cls, config_path: str | Path, **overrides) -> "Settings":
        """Load settings from a YAML config file, with env vars and overrides applied on top."""
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_config = yaml.safe_load(f) or {}
        else:
            yaml_config = {}
        merged = {**yaml_config, **overrides}
        return cls(**merged)

    def resolved_openai_base_url(self) -> str:
        """Resolve effective base URL, preferring an explicit base URL over the Azure endpoint."""

        candidate = self.openai_base_url.strip() or self.azure_openai_endpoint.strip()
        if not candidate:
            return ""

        normalized = candidate.rstrip("/")
        if "azure.com" in normalized.lower() and "openai/v1" not in normalized:
            normalized = f"{normalized}/openai/v1"
        return f"{normalized}/"

    def uses_azure_openai(self) -> bool:
        return "azure.com" in self.resolved_openai_base_url().lower()

    def resolved_openai_api_key(self) -> str:
        """Resolve the API key; an Azure endpoint only accepts the Azure key."""

        if self.uses_azure_openai():
            return self.azure_openai_api_key.strip()
        return self.openai_api_key.strip() or self.azure_openai_api_key.strip()

    def resolved_openai_model(self) -> str:
        if self.uses_azure_openai() and self.azure_openai_deployment.strip():
            return self.azure_openai_deployment.strip()
        return self.openai_model.strip()

    def model_for_agent(self, agent_name: str) -> str:
        """Return the model bound to an agent, falling back to the default model."""

        candidate = self.agent_models.get(agent_name, "").strip()
        return candidate or self.resolved_openai_model()
