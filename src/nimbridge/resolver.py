"""Caller model name to backend model id resolution."""

from typing import Optional

from .config import ProxyConfig
from .diagnostics import DiagnosticSink


def resolve_model(
    requested: Optional[str], config: ProxyConfig, sink: DiagnosticSink
) -> str:
    """
    Map a caller-facing model name onto a backend model id.

    Unmapped names (including a missing name) resolve to the large fallback,
    so this never fails and never returns an empty id.
    """
    mapped = config.model_mapping.get(requested) if requested else None
    selected = mapped or config.fallback_models.large

    sink.emit(
        "info",
        "model",
        f"Model selection: {requested} → {selected}",
        {"requested": requested, "mapped": selected, "isFallback": not mapped},
    )
    return selected
