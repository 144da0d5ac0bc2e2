"""An OpenAI-compatible proxy that translates chat completions for NVIDIA NIM style backends."""

__version__ = "0.1.0"

from .config import ProxyConfig, load_config

from .resolver import resolve_model
from .adapter import adapt_request
from .formatting import format_completion, format_response_content
from .streaming import StreamReassembler, reassemble_stream
from .diagnostics import DiagnosticLog
