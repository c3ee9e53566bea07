"""
Observability: structured logging with run context correlation.

- Run context propagation via ContextVar
- JSON logging for production, human-readable logging for development
"""

from promptlab.observability.logging import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
]
