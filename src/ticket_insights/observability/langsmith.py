"""Optional LangSmith tracing for the OpenAI client."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class TracingStatus:
    """Effective LangSmith tracing configuration read from the environment."""

    enabled: bool
    project: str
    endpoint: str
    api_key_present: bool

    @property
    def active(self) -> bool:
        return self.enabled and self.api_key_present


def get_tracing_status() -> TracingStatus:
    """Read LangSmith settings, accepting the legacy LANGCHAIN_* names."""

    flag = os.getenv("LANGSMITH_TRACING") or os.getenv("LANGCHAIN_TRACING_V2") or ""
    return TracingStatus(
        enabled=flag.strip().lower() in _TRUTHY,
        project=os.getenv("LANGSMITH_PROJECT") or os.getenv("LANGCHAIN_PROJECT") or "",
        endpoint=os.getenv("LANGSMITH_ENDPOINT") or os.getenv("LANGCHAIN_ENDPOINT") or "",
        api_key_present=bool(os.getenv("LANGSMITH_API_KEY") or os.getenv("LANGCHAIN_API_KEY")),
    )


def maybe_wrap_openai_client(client: Any) -> tuple[Any, bool]:
    """Wrap the client with the LangSmith tracer when tracing is active and installed."""

    if not get_tracing_status().active:
        return client, False

    try:
        from langsmith.wrappers import wrap_openai
    except ImportError:
        logger.info("LangSmith tracing requested but the langsmith package is not installed.")
        return client, False

    try:
        return wrap_openai(client), True
    except Exception:
        logger.warning("LangSmith wrapping failed; continuing without tracing.", exc_info=True)
        return client, False
