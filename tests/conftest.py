import json

import httpx
import pytest
from fastapi.testclient import TestClient

from nimbridge.api import create_app
from nimbridge.config import ProxyConfig

REASONING_MODEL = "deepseek-ai/deepseek-v3.2"
PLAIN_MODEL = "meta/llama-3.3-70b-instruct"

# Mock response payloads
MOCK_COMPLETION_RESPONSE = {
    "id": "cmpl-backend-1",
    "object": "chat.completion",
    "created": 1677652288,
    "model": PLAIN_MODEL,
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "Hello there, how may I assist you today?",
            },
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 9, "completion_tokens": 12, "total_tokens": 21},
}

MOCK_REASONING_RESPONSE = {
    "id": "cmpl-backend-2",
    "object": "chat.completion",
    "created": 1677652288,
    "model": REASONING_MODEL,
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "Hello",
                "reasoning_content": "thinking...",
            },
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 8, "completion_tokens": 20, "total_tokens": 28},
}


def chunk_event(
    content=None,
    reasoning=None,
    role=None,
    finish_reason=None,
    reasoning_field="reasoning_content",
    model=REASONING_MODEL,
):
    """One backend chat.completion.chunk payload."""
    delta = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta[reasoning_field] = reasoning
    return {
        "id": "chatcmpl-stream",
        "object": "chat.completion.chunk",
        "created": 1694268190,
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def sse(*events):
    """Encode payloads as backend SSE frames."""
    return b"".join(f"data: {json.dumps(e)}\n\n".encode() for e in events)


DONE = b"data: [DONE]\n\n"

MOCK_REASONING_STREAM = [
    sse(chunk_event(role="assistant", content="")),
    sse(chunk_event(reasoning="A")),
    sse(chunk_event(reasoning="B")),
    sse(chunk_event(content="C")),
    sse(chunk_event(content="D")),
    sse(chunk_event(finish_reason="stop")),
    DONE,
]


def parse_frames(lines):
    """Split caller SSE lines into decoded payloads and the raw [DONE] line."""
    payloads = []
    for line in lines:
        if not line.strip():
            continue
        if line == "data: [DONE]":
            payloads.append("[DONE]")
        else:
            payloads.append(json.loads(line[len("data: "):]))
    return payloads


class RecordingSink:
    """Diagnostic sink that keeps every event for assertions."""

    def __init__(self):
        self.events = []

    def emit(self, level, category, message, metadata=None):
        self.events.append((level, category, message, metadata or {}))

    def find(self, category=None, level=None):
        return [
            e
            for e in self.events
            if (category is None or e[1] == category)
            and (level is None or e[0] == level)
        ]


async def _aiter(chunks):
    for chunk in chunks:
        yield chunk


class MockBackend:
    """Stands in for the backend behind an httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.json_body = MOCK_COMPLETION_RESPONSE
        self.raw_body = None
        self.stream_chunks = None
        self.error = None

    def handler(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.stream_chunks is not None:
            return httpx.Response(
                self.status_code,
                headers={"content-type": "text/event-stream"},
                content=_aiter(self.stream_chunks),
            )
        if self.raw_body is not None:
            return httpx.Response(self.status_code, content=self.raw_body)
        return httpx.Response(self.status_code, json=self.json_body)

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


# Shared fixtures
@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def proxy_config():
    """Default configuration with a backend credential set"""
    return ProxyConfig(api_key="test-key", api_base="http://nim.example.com/v1")


@pytest.fixture
def mock_backend():
    return MockBackend()


@pytest.fixture
def test_client(proxy_config, mock_backend):
    """Create a test client whose backend calls go to mock_backend"""
    app = create_app(proxy_config, transport=httpx.MockTransport(mock_backend.handler))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def test_client_no_key(mock_backend):
    """Create a test client without a backend credential"""
    config = ProxyConfig(api_key=None, api_base="http://nim.example.com/v1")
    app = create_app(config, transport=httpx.MockTransport(mock_backend.handler))
    with TestClient(app) as client:
        yield client
