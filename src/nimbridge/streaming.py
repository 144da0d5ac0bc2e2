"""Streaming response handling for the nimbridge proxy."""

import asyncio
import codecs
import json
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx

from .diagnostics import DiagnosticSink
from .errors import DecodeError
from .utils import THINK_CLOSE, THINK_OPEN, extract_reasoning, strip_reasoning_fields


DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"
MAX_LINE_LENGTH = 1024 * 1024


def decode_event(payload: str) -> Dict[str, Any]:
    """Decode the JSON body of one `data:` line."""
    try:
        event = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON in stream event: {e.msg}") from e
    if not isinstance(event, dict):
        raise DecodeError(f"Stream event is a {type(event).__name__}, not an object")
    return event


def encode_event(event: Dict[str, Any]) -> bytes:
    return f"data: {json.dumps(event)}\n\n".encode()


class StreamReassembler:
    """
    Rewrites one backend SSE stream into the caller's SSE stream.

    Reasoning deltas are folded into `content`: the first reasoning delta
    opens a <think> block, the first content delta after it closes the block,
    so the caller sees exactly one open and one close tag per reasoning run.
    Each streaming request gets its own instance; nothing here is shared.
    """

    def __init__(
        self,
        original_model: str,
        show_reasoning: bool,
        sink: DiagnosticSink,
        request_id: Optional[str] = None,
        max_line_length: int = MAX_LINE_LENGTH,
    ):
        self.original_model = original_model
        self.show_reasoning = show_reasoning
        self.sink = sink
        self.request_id = request_id

        self.reasoning_open = False
        self.fragments = 0
        self.total_bytes = 0

        self.max_line_length = max_line_length
        self._pending = ""
        self._discarding = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes) -> List[bytes]:
        """
        Consume one transport fragment and return the frames to send.

        A line cut off at the end of the fragment is held back until the
        next fragment (or flush) completes it. A held line longer than
        max_line_length is dropped up to its terminating newline.
        """
        self.fragments += 1
        self.total_bytes += len(chunk)

        text = self._decoder.decode(chunk)
        if self._discarding:
            _, newline, text = text.partition("\n")
            if not newline:
                return []
            self._discarding = False

        lines = (self._pending + text).split("\n")
        self._pending = lines.pop()
        if len(self._pending) > self.max_line_length:
            self.sink.emit(
                "warning",
                "streaming",
                "Dropped oversized stream line",
                {"requestId": self.request_id, "length": len(self._pending)},
            )
            self._pending = ""
            self._discarding = True
        return self._process_lines(lines)

    def flush(self) -> List[bytes]:
        """Process whatever is left once the backend stops sending."""
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if self._discarding:
            self._discarding = False
            return []
        if not text:
            return []
        return self._process_lines([text])

    def next_content(self, reasoning: Optional[str], content: Optional[str]) -> str:
        """Advance the reasoning-block state for one delta and return its text."""
        if not self.show_reasoning:
            return content or ""

        if reasoning:
            if self.reasoning_open:
                return reasoning
            self.reasoning_open = True
            self.sink.emit(
                "debug",
                "streaming",
                "Reasoning block started",
                {"requestId": self.request_id},
            )
            return f"{THINK_OPEN}\n{reasoning}"

        if content:
            if not self.reasoning_open:
                return content
            self.reasoning_open = False
            self.sink.emit(
                "debug",
                "streaming",
                "Reasoning block ended",
                {"requestId": self.request_id},
            )
            return f"\n{THINK_CLOSE}\n\n{content}"

        return ""

    def _process_lines(self, lines: List[str]) -> List[bytes]:
        frames = []
        for line in lines:
            frame = self._process_line(line.rstrip("\r"))
            if frame is not None:
                frames.append(frame)
        return frames

    def _process_line(self, line: str) -> Optional[bytes]:
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_MARKER:
            self.sink.emit(
                "success",
                "streaming",
                "Stream completed",
                {
                    "requestId": self.request_id,
                    "chunks": self.fragments,
                    "totalBytes": self.total_bytes,
                },
            )
            return f"{line}\n\n".encode()

        try:
            event = decode_event(payload)
        except DecodeError as e:
            self.sink.emit(
                "warning",
                "streaming",
                "Failed to parse stream chunk",
                {"requestId": self.request_id, "error": e.message},
            )
            return None

        choices = event.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        delta = first.get("delta") if isinstance(first, dict) else None
        if not isinstance(delta, dict):
            return None

        text = self.next_content(extract_reasoning(delta), delta.get("content"))
        if not text:
            return None

        strip_reasoning_fields(delta)
        delta["content"] = text
        event["model"] = self.original_model
        return encode_event(event)


async def reassemble_stream(
    backend_response: httpx.Response,
    reassembler: StreamReassembler,
    sink: DiagnosticSink,
) -> AsyncGenerator[bytes, None]:
    """
    Pull fragments from the backend and yield caller frames.

    The next fragment is only read after the previous frames were consumed,
    so a slow caller slows the backend read instead of growing a buffer.
    The backend response is closed however the stream ends.
    """
    try:
        async for chunk in backend_response.aiter_bytes():
            for frame in reassembler.feed(chunk):
                yield frame
        for frame in reassembler.flush():
            yield frame
    except httpx.HTTPError as e:
        sink.emit(
            "error",
            "streaming",
            "Stream error",
            {"requestId": reassembler.request_id, "error": str(e)},
        )
    except (asyncio.CancelledError, GeneratorExit):
        sink.emit(
            "warning",
            "streaming",
            "Client disconnected, abandoning backend stream",
            {"requestId": reassembler.request_id, "chunks": reassembler.fragments},
        )
        raise
    finally:
        await backend_response.aclose()
