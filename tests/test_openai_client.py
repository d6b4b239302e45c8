"""Tests for the OpenAI invoker and its error taxonomy."""

from __future__ import annotations

import httpx
import pytest
from openai import (
    APIConnectionError,
    APITimeoutError,
    BadRequestError,
    InternalServerError,
    RateLimitError,
)

from ticket_insights.models import (
    InvocationErrorKind,
    ModelInvocationError,
    ModelRequest,
    OpenAIModelInvoker,
    classify_openai_error,
)

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=_REQUEST)


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (RateLimitError("slow down", response=_response(429), body=None), "rate_limit"),
        (APITimeoutError(request=_REQUEST), "timeout"),
        (APIConnectionError(request=_REQUEST), "network"),
        (InternalServerError("oops", response=_response(500), body=None), "network"),
        (BadRequestError("context length", response=_response(400), body=None), "rejected"),
    ],
)
def test_classify_openai_error(exc, kind):
    error = classify_openai_error(exc)
    assert error.kind is InvocationErrorKind(kind)
    assert error.retryable is (kind != "rejected")


def test_model_request_requires_positive_timeout():
    with pytest.raises(ValueError):
        ModelRequest(flow_name="a", system_prompt="s", user_prompt="u", timeout=0)
    request = ModelRequest(flow_name="a", system_prompt="sys", user_prompt="user", timeout=1.0)
    assert request.payload_size == 7


class _FakeCompletions:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class _Message:
    content = '{"ok": true}'


class _Choice:
    message = _Message()


class _Usage:
    prompt_tokens = 12
    completion_tokens = 3


class _Completion:
    choices = [_Choice()]
    usage = _Usage()


def _invoker(outcome) -> tuple[OpenAIModelInvoker, _FakeCompletions]:
    invoker = OpenAIModelInvoker(api_key="test", model="gpt-4.1-mini")
    completions = _FakeCompletions(outcome)
    invoker._client = type("_Client", (), {"chat": type("_Chat", (), {"completions": completions})})
    return invoker, completions


def test_invoke_sends_one_request_with_schema_and_timeout():
    invoker, completions = _invoker(_Completion())
    request = ModelRequest(
        flow_name="batch_analysis",
        system_prompt="sys",
        user_prompt="user",
        timeout=60.0,
        json_schema={"type": "object"},
        schema_name="analyses",
        model="gpt-4.1",
    )

    assert invoker.invoke(request) == '{"ok": true}'

    (call,) = completions.calls
    assert call["timeout"] == 60.0
    assert call["model"] == "gpt-4.1"
    assert call["response_format"]["json_schema"]["name"] == "analyses"
    snapshot = invoker.metrics_snapshot()
    assert snapshot["request_count"] == 1
    assert snapshot["prompt_tokens"] == 12


def test_invoke_classifies_sdk_errors():
    invoker, _ = _invoker(APITimeoutError(request=_REQUEST))
    request = ModelRequest(flow_name="a", system_prompt="s", user_prompt="u", timeout=1.0)

    with pytest.raises(ModelInvocationError) as exc_info:
        invoker.invoke(request)

    assert exc_info.value.kind is InvocationErrorKind.TIMEOUT
    assert invoker.metrics_snapshot()["error_count"] == 1
