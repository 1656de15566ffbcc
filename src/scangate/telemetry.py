"""Structured logging and tracing for scangate.

Logs go through structlog. When an OpenTelemetry span is active, log records
carry its trace_id and span_id so gate decisions can be correlated with the
CI job that ran them. scangate only depends on opentelemetry-api: unless the
host process installs an SDK tracer provider, spans are no-ops.

Example:
    >>> from scangate.telemetry import configure_logging, create_span
    >>> configure_logging(log_level="DEBUG", json_output=True)
    >>> with create_span("scangate.gate.run", {"scangate.scanner": "trivy"}):
    ...     structlog.get_logger().info("processing")  # includes trace_id
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Generator, MutableMapping
from contextlib import contextmanager
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import INVALID_SPAN_ID, INVALID_TRACE_ID, Span, Status, StatusCode

EventDict = MutableMapping[str, Any]

TRACER_NAME = "scangate"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_trace_context() -> dict[str, str]:
    """Get the active span's trace context.

    Returns:
        Dict with trace_id and span_id if a valid span is active, empty dict otherwise.
    """
    ctx = trace.get_current_span().get_span_context()
    if ctx.trace_id == INVALID_TRACE_ID or ctx.span_id == INVALID_SPAN_ID:
        return {}
    return {
        "trace_id": format(ctx.trace_id, "032x"),
        "span_id": format(ctx.span_id, "016x"),
    }


def add_trace_context(
    logger: Any,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor injecting trace_id and span_id from the active span."""
    for key, value in get_trace_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def _stderr_logger_factory(*args: Any) -> structlog.PrintLogger:  # noqa: ARG001
    """Resolve sys.stderr at call time so redirected streams are honored."""
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True,
) -> None:
    """Configure structlog with trace context injection.

    Logs are written to stderr so stdout stays reserved for the verdict
    report.

    Args:
        log_level: Minimum level to emit (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: Emit JSON lines if True, human-readable console lines otherwise.

    Raises:
        ValueError: If log_level is not a known level name.
    """
    level_name = log_level.upper()
    if level_name not in _LOG_LEVELS:
        msg = f"Invalid log level {log_level!r}. Valid levels: {list(_LOG_LEVELS)}"
        raise ValueError(msg)

    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name)),
        context_class=dict,
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )


def get_tracer() -> trace.Tracer:
    """Get the scangate tracer from the globally configured provider."""
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def create_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Create a span as a context manager.

    Exceptions escaping the block mark the span as errored and are re-raised.

    Args:
        name: Span name.
        attributes: Optional span attributes.

    Yields:
        The active span, for setting further attributes.
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(
        name,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.set_attribute("exception.type", type(e).__name__)
            raise


__all__: list[str] = [
    "TRACER_NAME",
    "add_trace_context",
    "configure_logging",
    "create_span",
    "get_trace_context",
    "get_tracer",
]
