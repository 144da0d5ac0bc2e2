"""FastAPI application and routes for the nimbridge proxy."""

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from .adapter import adapt_request
from .backends import open_backend, read_completion
from .config import ProxyConfig, load_config
from .diagnostics import DiagnosticLog
from .errors import ProxyError
from .formatting import format_completion
from .models import ChatCompletionRequest
from .resolver import resolve_model
from .streaming import StreamReassembler, reassemble_stream
from .utils import new_request_id

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int, message: str, error_type: str, details: Any = None
) -> Response:
    error = {"message": message, "type": error_type}
    if details is not None:
        error["details"] = details
    return Response(
        content=json.dumps({"error": error}),
        status_code=status_code,
        media_type="application/json",
    )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


async def chat_completions(request: Request) -> Response:
    """
    Translate an OpenAI-style chat completion into a backend call:
    - Resolves the caller's model name to a backend model id
    - Applies token budget and thinking-mode policy
    - Folds backend reasoning into <think> blocks, streaming or not
    """
    config: ProxyConfig = request.app.state.config
    diagnostics: DiagnosticLog = request.app.state.diagnostics
    client: httpx.AsyncClient = request.app.state.http_client

    request_start = time.monotonic()
    request_id = new_request_id()

    body = await request.body()
    try:
        request_data = json.loads(body)
    except json.JSONDecodeError:
        return _error_response(400, "Invalid JSON", "invalid_request_error")
    if not isinstance(request_data, dict):
        return _error_response(
            400, "Request body must be a JSON object", "invalid_request_error"
        )

    messages = request_data.get("messages")
    diagnostics.emit(
        "info",
        "request",
        "New chat completion request",
        {
            "requestId": request_id,
            "model": request_data.get("model"),
            "messageCount": len(messages) if isinstance(messages, list) else None,
            "stream": request_data.get("stream"),
            "temperature": request_data.get("temperature"),
        },
    )

    if not config.api_key:
        diagnostics.emit("error", "config", "NIM_API_KEY is missing")
        return _error_response(500, "NIM_API_KEY missing", "configuration_error")

    try:
        chat_request = ChatCompletionRequest.model_validate(request_data)
    except ValidationError as e:
        return _error_response(
            400,
            "Invalid chat completion request",
            "invalid_request_error",
            json.loads(e.json(include_url=False)),
        )

    backend_model = resolve_model(chat_request.model, config, diagnostics)
    outbound = adapt_request(chat_request, backend_model, config, diagnostics, request_id)

    try:
        response = await open_backend(client, outbound, config, diagnostics, request_id)

        if outbound.stream:
            diagnostics.emit(
                "info",
                "response",
                "Streaming response started",
                {"requestId": request_id, "responseTime": _elapsed_ms(request_start)},
            )
            reassembler = StreamReassembler(
                chat_request.model, config.show_reasoning, diagnostics, request_id
            )
            return StreamingResponse(
                reassemble_stream(response, reassembler, diagnostics),
                media_type="text/event-stream",
            )

        backend_response = read_completion(response)
        completion = format_completion(
            backend_response, chat_request.model, config.show_reasoning, diagnostics
        )
    except ProxyError as e:
        details = getattr(e, "detail", None)
        diagnostics.emit(
            "error",
            "api",
            "Request failed",
            {
                "requestId": request_id,
                "responseTime": _elapsed_ms(request_start),
                "error": e.message,
                "status": getattr(e, "backend_status", None),
                "details": details,
            },
        )
        return _error_response(e.status_code, e.message, e.error_type, details)

    diagnostics.emit(
        "success",
        "response",
        "Non-streaming response completed",
        {
            "requestId": request_id,
            "responseTime": _elapsed_ms(request_start),
            "usage": backend_response.get("usage"),
            "finishReason": (completion["choices"] or [{}])[0].get("finish_reason"),
        },
    )
    return JSONResponse(completion)


async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


async def get_logs(
    request: Request,
    level: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = 100,
):
    """Recent diagnostic entries, newest first."""
    diagnostics: DiagnosticLog = request.app.state.diagnostics
    entries = diagnostics.entries(level=level, category=category, limit=limit)
    return [entry.model_dump() for entry in entries]


async def clear_logs(request: Request):
    diagnostics: DiagnosticLog = request.app.state.diagnostics
    count = diagnostics.clear()
    diagnostics.emit("warning", "system", f"Cleared {count} log entries")
    return {"success": True, "cleared": count}


async def get_stats(request: Request):
    config: ProxyConfig = request.app.state.config
    diagnostics: DiagnosticLog = request.app.state.diagnostics
    stats = diagnostics.stats()
    stats["config"] = {
        "showReasoning": config.show_reasoning,
        "thinkingMode": config.enable_thinking_mode,
        "modelMappings": len(config.model_mapping),
    }
    return stats


def create_app(
    config: Optional[ProxyConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the proxy application.

    The config is loaded from config.yaml when not given. `transport` lets
    tests put an httpx.MockTransport in place of the real backend.
    """
    if config is None:
        config = load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        diagnostics = app.state.diagnostics
        diagnostics.emit("success", "system", f"Server active on port {config.port}")
        diagnostics.emit(
            "info",
            "config",
            "Configuration loaded",
            {
                "showReasoning": config.show_reasoning,
                "thinkingMode": config.enable_thinking_mode,
                "modelMappings": len(config.model_mapping),
            },
        )
        app.state.http_client = httpx.AsyncClient(transport=transport)
        try:
            yield
        finally:
            await app.state.http_client.aclose()

    app = FastAPI(title="nimbridge", lifespan=lifespan)
    app.state.config = config
    app.state.diagnostics = DiagnosticLog(config.max_log_entries)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.add_api_route("/v1/chat/completions", chat_completions, methods=["POST"])
    app.add_api_route("/health", health_check, methods=["GET"])
    app.add_api_route("/api/logs", get_logs, methods=["GET"])
    app.add_api_route("/api/logs/clear", clear_logs, methods=["POST"])
    app.add_api_route("/api/stats", get_stats, methods=["GET"])
    return app


app = create_app()


def main():
    import uvicorn

    config = app.state.config
    logger.info(f"Proxy server starting on port {config.port}")
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
