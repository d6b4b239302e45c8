"""OpenAI chat-completions invoker used by every pipeline flow."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    InternalServerError,
    OpenAI,
    RateLimitError,
)

from ticket_insights.observability import maybe_wrap_openai_client


class InvocationErrorKind(str, Enum):
    """Classification of a failed model invocation."""

    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    REJECTED = "rejected"

    @property
    def retryable(self) -> bool:
        return self is not InvocationErrorKind.REJECTED


class ModelInvocationError(RuntimeError):
    """Raised when a single outbound model call fails."""

    def __init__(self, kind: InvocationErrorKind, message: str) -> None:
        super().__init__(f"[{kind.value}] {message}")
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


@dataclass(frozen=True)
class ModelRequest:
    """Typed input for one model call. Prompt text is opaque to the core."""

    flow_name: str
    system_prompt: str
    user_prompt: str
    timeout: float
    json_schema: dict | None = None
    schema_name: str | None = None
    model: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}.")

    @property
    def payload_size(self) -> int:
        return len(self.system_prompt) + len(self.user_prompt)


class ModelInvoker(Protocol):
    """Protocol for a single, non-retrying call to an inference backend."""

    def invoke(self, request: ModelRequest) -> Any:
        """Return the raw response for one request or raise ModelInvocationError."""


def classify_openai_error(exc: BaseException) -> ModelInvocationError:
    """Map an OpenAI SDK exception onto the invocation error taxonomy."""

    if isinstance(exc, RateLimitError):
        return ModelInvocationError(InvocationErrorKind.RATE_LIMIT, str(exc))
    if isinstance(exc, APITimeoutError):
        return ModelInvocationError(InvocationErrorKind.TIMEOUT, str(exc))
    if isinstance(exc, (APIConnectionError, InternalServerError)):
        return ModelInvocationError(InvocationErrorKind.NETWORK, str(exc))
    return ModelInvocationError(InvocationErrorKind.REJECTED, str(exc))


class OpenAIModelInvoker:
    """Exactly one chat-completion request per invocation; SDK retries are disabled."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.0,
    ) -> None:
        base_client = OpenAI(api_key=api_key, base_url=base_url or None, max_retries=0)
        self._client, self._tracing_enabled = maybe_wrap_openai_client(base_client)
        self._model = model
        self._temperature = temperature
        self._metrics_lock = threading.Lock()
        self._request_count = 0
        self._error_count = 0
        self._prompt_tokens = 0
        self._completion_tokens = 0

    def _response_format(self, request: ModelRequest) -> dict:
        if request.json_schema is None:
            return {"type": "json_object"}
        return {
            "type": "json_schema",
            "json_schema": {
                "name": request.schema_name or "structured_output",
                "schema": request.json_schema,
                "strict": False,
            },
        }

    def invoke(self, request: ModelRequest) -> str:
        """Send one request and return the raw message text."""

        try:
            response = self._client.chat.completions.create(
                model=request.model or self._model,
                temperature=self._temperature,
                response_format=self._response_format(request),
                messages=[
                    {"role": "system", "content": request.system_prompt},
                    {"role": "user", "content": request.user_prompt},
                ],
                timeout=request.timeout,
            )
        except APIError as exc:
            with self._metrics_lock:
                self._error_count += 1
            raise classify_openai_error(exc) from exc

        usage = getattr(response, "usage", None)
        with self._metrics_lock:
            self._request_count += 1
            self._prompt_tokens += int(getattr(usage, "prompt_tokens", 0) or 0)
            self._completion_tokens += int(getattr(usage, "completion_tokens", 0) or 0)

        content = response.choices[0].message.content
        return content or ""

    def metrics_snapshot(self) -> dict:
        """Return cumulative request/usage metrics for this invoker instance."""

        with self._metrics_lock:
            return {
                "request_count": self._request_count,
                "error_count": self._error_count,
                "prompt_tokens": self._prompt_tokens,
                "completion_tokens": self._completion_tokens,
                "model": self._model,
                "tracing_enabled": self._tracing_enabled,
            }
