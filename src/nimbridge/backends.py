"""Backend handling for the nimbridge proxy."""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from .config import ProxyConfig
from .diagnostics import DiagnosticSink
from .errors import BackendContractError, ConfigurationError, TransportError
from .models import OutboundRequest

logger = logging.getLogger(__name__)


def backend_headers(config: ProxyConfig) -> Dict[str, str]:
    if not config.api_key:
        raise ConfigurationError("NIM_API_KEY missing")
    return {
        "Authorization": f"Bearer {config.api_key}",
        "Content-Type": "application/json",
    }


def _error_detail(content: bytes) -> Any:
    """Backend error body as JSON when possible, raw text otherwise."""
    text = content.decode(errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


async def open_backend(
    client: httpx.AsyncClient,
    outbound: OutboundRequest,
    config: ProxyConfig,
    sink: DiagnosticSink,
    request_id: Optional[str] = None,
) -> httpx.Response:
    """
    Send one request to the backend and return the successful response.

    Streaming requests come back with the body unread; the caller owns the
    response and must close it. Non-streaming responses are fully read.

    Raises:
        ConfigurationError: no backend credential is configured.
        BackendContractError: the backend answered with a non-2xx status.
        TransportError: the backend could not be reached or timed out.
    """
    headers = backend_headers(config)
    target_url = f"{config.api_base.rstrip('/')}/chat/completions"

    sink.emit(
        "info",
        "api",
        "Sending request to backend",
        {"requestId": request_id, "endpoint": target_url, "model": outbound.model},
    )

    request = client.build_request(
        "POST",
        target_url,
        json=outbound.to_payload(),
        headers=headers,
        timeout=config.timeout,
    )
    try:
        response = await client.send(request, stream=outbound.stream)
    except httpx.TimeoutException as e:
        raise TransportError(f"Backend timed out: {str(e)}", timed_out=True) from e
    except httpx.HTTPError as e:
        raise TransportError(f"Error calling backend: {str(e)}") from e

    if response.is_success:
        return response

    try:
        content = await response.aread()
    except httpx.HTTPError as e:
        raise TransportError(f"Error reading backend error body: {str(e)}") from e
    finally:
        await response.aclose()

    logger.error(f"Backend returned {response.status_code} for {outbound.model}")
    raise BackendContractError(
        f"Request failed with status code {response.status_code}",
        backend_status=response.status_code,
        detail=_error_detail(content),
    )


def read_completion(response: httpx.Response) -> Dict[str, Any]:
    """Decode a non-streaming backend body."""
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BackendContractError(
            "Backend returned a non-JSON body",
            detail=response.text,
        ) from e
