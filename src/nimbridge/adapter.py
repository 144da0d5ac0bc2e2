"""Build the backend request from an inbound chat completion request."""

from typing import Optional

from .config import ProxyConfig
from .diagnostics import DiagnosticSink
from .models import ChatCompletionRequest, OutboundRequest

THINKING_EXTRA_BODY = {"chat_template_kwargs": {"thinking": True}}


def is_reasoning_family(backend_model: str, config: ProxyConfig) -> bool:
    """True when the backend id belongs to a family that emits reasoning."""
    return any(family in backend_model for family in config.reasoning_families)


def token_budget(
    max_tokens: Optional[int], reasoning_family: bool, config: ProxyConfig
) -> int:
    """
    Generation budget for the backend.

    Reasoning models spend tokens thinking before they answer, so they get at
    least min_reasoning_tokens; everything else gets the caller's value or the
    default.
    """
    if reasoning_family:
        return max(max_tokens or 0, config.min_reasoning_tokens)
    return max_tokens or config.default_max_tokens


def adapt_request(
    request: ChatCompletionRequest,
    backend_model: str,
    config: ProxyConfig,
    sink: DiagnosticSink,
    request_id: Optional[str] = None,
) -> OutboundRequest:
    reasoning_family = is_reasoning_family(backend_model, config)
    thinking = config.enable_thinking_mode and reasoning_family
    max_tokens = token_budget(request.max_tokens, reasoning_family, config)

    sink.emit(
        "info",
        "config",
        "Request configuration",
        {
            "requestId": request_id,
            "nimModel": backend_model,
            "isReasoningFamily": reasoning_family,
            "thinkingMode": thinking,
            "maxTokens": max_tokens,
            "originalMaxTokens": request.max_tokens,
        },
    )

    temperature = request.temperature
    if temperature is None:
        temperature = config.default_temperature

    outbound = OutboundRequest(
        model=backend_model,
        messages=[m.model_dump(exclude_unset=True) for m in request.messages],
        temperature=temperature,
        max_tokens=max_tokens,
        stream=bool(request.stream),
        extra_body=THINKING_EXTRA_BODY if thinking else None,
    )

    if thinking:
        sink.emit(
            "info",
            "feature",
            "Thinking mode enabled",
            {"requestId": request_id, "nimModel": backend_model},
        )
    return outbound
