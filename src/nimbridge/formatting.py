"""Shape a complete backend response into the caller's chat.completion envelope."""

import time
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .diagnostics import DiagnosticSink
from .errors import BackendContractError
from .models import ChatCompletionResponse, Choice, ResponseMessage
from .utils import extract_reasoning, wrap_reasoning


def format_response_content(
    message: Dict[str, Any],
    show_reasoning: bool,
    sink: Optional[DiagnosticSink] = None,
) -> str:
    """
    Build the visible content of one backend message.

    When show_reasoning is set and the backend supplied reasoning, it is
    prepended as a <think> block; otherwise content is returned unchanged.
    """
    content = message.get("content") or ""
    reasoning = extract_reasoning(message)

    if not (show_reasoning and reasoning):
        return content

    full_content = wrap_reasoning(reasoning, content)
    if sink is not None:
        sink.emit(
            "debug",
            "formatting",
            "Added reasoning tags to response",
            {"reasoningLength": len(reasoning), "contentLength": len(full_content)},
        )
    return full_content


def format_completion(
    backend_response: Any,
    original_model: str,
    show_reasoning: bool,
    sink: Optional[DiagnosticSink] = None,
) -> Dict[str, Any]:
    """
    Convert a backend chat completion into the response the caller expects.

    The envelope always reports the caller's model name, never the backend id.

    Raises:
        BackendContractError: the backend body has no choices list, or a
            choice does not have the shape of a chat completion choice.
    """
    choices = (
        backend_response.get("choices")
        if isinstance(backend_response, dict)
        else None
    )
    if not isinstance(choices, list):
        raise BackendContractError(
            "Backend response is missing choices", detail=backend_response
        )

    try:
        formatted = []
        for position, choice in enumerate(choices):
            if not isinstance(choice, dict):
                raise BackendContractError(
                    "Backend choice is not an object", detail=backend_response
                )
            message = choice.get("message") or {}
            if not isinstance(message, dict):
                raise BackendContractError(
                    "Backend message is not an object", detail=backend_response
                )
            formatted.append(
                Choice(
                    index=choice.get("index", position),
                    message=ResponseMessage(
                        role=message.get("role") or "assistant",
                        content=format_response_content(message, show_reasoning, sink),
                    ),
                    finish_reason=choice.get("finish_reason"),
                )
            )

        now = time.time()
        response = ChatCompletionResponse(
            id=f"chatcmpl-{int(now * 1000)}",
            created=int(now),
            model=original_model,
            choices=formatted,
            usage=backend_response.get("usage"),
        )
    except ValidationError as e:
        raise BackendContractError(
            "Backend response has an unexpected shape", detail=backend_response
        ) from e
    return response.model_dump()
