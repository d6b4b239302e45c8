"""Model invocation abstractions."""

from ticket_insights.models.openai_client import (
    InvocationErrorKind,
    ModelInvocationError,
    ModelInvoker,
    ModelRequest,
    OpenAIModelInvoker,
    classify_openai_error,
)

__all__ = [
    "InvocationErrorKind",
    "ModelInvocationError",
    "ModelInvoker",
    "ModelRequest",
    "OpenAIModelInvoker",
    "classify_openai_error",
]
