"""Single-call helper shared by every flow: invoke, record diagnostics, normalize."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ticket_insights.config import Settings
from ticket_insights.models import ModelInvoker, ModelRequest
from ticket_insights.observability import DiagnosticsBuffer, record_diagnostic
from ticket_insights.pipeline.normalizer import (
    ExpectedShape,
    Unparseable,
    UnparseableResponseError,
    normalize,
)
from ticket_insights.pipeline.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvocationContext:
    """Everything a flow needs to call the model: the invoker, timeout, retry policy and sinks."""

    invoker: ModelInvoker
    timeout: float
    retry_policy: RetryPolicy = RetryPolicy()
    diagnostics: DiagnosticsBuffer | None = None
    sleep: Callable[[float], Awaitable[None]] | None = None

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}.")

    @classmethod
    def from_settings(
        cls,
        invoker: ModelInvoker,
        settings: Settings,
        *,
        diagnostics: DiagnosticsBuffer | None = None,
    ) -> InvocationContext:
        return cls(
            invoker=invoker,
            timeout=settings.request_timeout_seconds,
            retry_policy=RetryPolicy.from_settings(settings),
            diagnostics=diagnostics,
        )

    def request(
        self,
        *,
        flow_name: str,
        system_prompt: str,
        user_prompt: str,
        expected: ExpectedShape | None = None,
        model: str | None = None,
    ) -> ModelRequest:
        json_schema = expected.model.model_json_schema() if expected is not None else None
        return ModelRequest(
            flow_name=flow_name,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            timeout=self.timeout,
            json_schema=json_schema,
            schema_name=flow_name if json_schema is not None else None,
            model=model,
        )


def _response_size(raw: Any) -> int:
    if isinstance(raw, (str, bytes)):
        return len(raw)
    return len(repr(raw))


async def invoke_once(
    context: InvocationContext,
    request: ModelRequest,
    expected: ExpectedShape | None = None,
) -> Any:
    """One model call followed by normalization. Raises on transport or parse failure."""

    record_diagnostic(
        context.diagnostics,
        direction="sent",
        flow_name=request.flow_name,
        payload_size=request.payload_size,
    )
    started = time.perf_counter()
    try:
        raw = await asyncio.to_thread(context.invoker.invoke, request)
    except Exception as exc:
        record_diagnostic(
            context.diagnostics,
            direction="error",
            flow_name=request.flow_name,
            payload_size=0,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            detail=str(exc),
        )
        raise

    duration_ms = (time.perf_counter() - started) * 1000.0
    record_diagnostic(
        context.diagnostics,
        direction="received",
        flow_name=request.flow_name,
        payload_size=_response_size(raw),
        duration_ms=duration_ms,
    )

    result = normalize(raw, expected)
    if isinstance(result, Unparseable):
        logger.warning(
            "%s returned an unparseable %s response (%s): %.200s",
            request.flow_name,
            result.shape,
            result.reason,
            result.original_text,
        )
        record_diagnostic(
            context.diagnostics,
            direction="error",
            flow_name=request.flow_name,
            payload_size=len(result.original_text),
            duration_ms=duration_ms,
            detail=f"unparseable: {result.reason}",
        )
        raise UnparseableResponseError(request.flow_name, result)

    if result.repairs:
        logger.info("%s response repaired with %s.", request.flow_name, ", ".join(result.repairs))
    return result.data


async def invoke_structured(
    context: InvocationContext,
    request: ModelRequest,
    expected: ExpectedShape | None = None,
) -> Any:
    """``invoke_once`` wrapped in the retry policy."""

    return await run_with_retry(
        lambda: invoke_once(context, request, expected),
        context.retry_policy,
        operation_name=request.flow_name,
        sleep=context.sleep,
    )
