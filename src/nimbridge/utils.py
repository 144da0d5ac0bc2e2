"""Utility functions for the nimbridge proxy."""

import time
import uuid
from typing import Any, Dict, Optional

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

# Backends disagree on the key name; the first non-empty one wins.
REASONING_FIELDS = ("reasoning_content", "reasoning")


def extract_reasoning(message: Dict[str, Any]) -> Optional[str]:
    """Return the reasoning text carried by a message or delta, if any."""
    for field in REASONING_FIELDS:
        value = message.get(field)
        if value:
            return value
    return None


def strip_reasoning_fields(message: Dict[str, Any]) -> None:
    for field in REASONING_FIELDS:
        message.pop(field, None)


def wrap_reasoning(reasoning: str, content: str) -> str:
    """
    Fold reasoning into visible content.

    >>> wrap_reasoning("thinking...", "Hello")
    '<think>\\nthinking...\\n</think>\\n\\nHello'
    """
    return f"{THINK_OPEN}\n{reasoning}\n{THINK_CLOSE}\n\n{content}"


def new_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
