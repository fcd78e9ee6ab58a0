"""
Structured logging with automatic run/node context.

Key Features:
- Plain logger.info() calls pick up the current run and node automatically
- ContextVar-based propagation: each concurrently executing node task keeps
  its own node_id
- Dual output modes: JSON for production, human-readable for development

Architecture:
    WorkflowScheduler.start() → sets run_id and workflow once
        ↓ (ContextVar is copied into every task it creates)
    node task → adds node_id and node_kind
        ↓
    executor / provider code → logger.info("message") carries all of it
"""

import json
import logging
import os
import re
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")

_EXTRA_FIELDS = ("event", "latency_ms", "tokens_used", "node_id", "model")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each line carries timestamp, level, logger and message, the current
    trace context (run_id, workflow, node_id, node_kind) and any of the
    known extra fields passed via ``extra=``.
    """

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colourised single-line formatter for local development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}
        run_id = context.get("run_id", "")
        node_id = context.get("node_id", "")

        prefix_parts = []
        if run_id:
            prefix_parts.append(f"run:{run_id[:8]}")
        if node_id:
            prefix_parts.append(f"node:{node_id}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        event = ""
        record_event = getattr(record, "event", None)
        if record_event is not None:
            event = f" [{record_event}]"

        line = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}{event}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure logging for the application. Call once at startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "json", "human", or "auto" (JSON if LOG_FORMAT=json or
            ENV=production, else human)
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        _disable_third_party_colors()
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Route chatty client libraries through our formatter
    for logger_name in ("LiteLLM", "httpcore", "httpx", "openai"):
        logger = logging.getLogger(logger_name)
        logger.handlers.clear()
        logger.propagate = True
        if level.upper() != "DEBUG":
            logger.setLevel(logging.WARNING)


def _disable_third_party_colors() -> None:
    """Disable color output in third-party libraries for clean JSON logging."""
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"

    import litellm

    litellm.suppress_debug_info = True


def set_trace_context(**kwargs: Any) -> Token:
    """
    Add fields to the trace context of the current task.

    The scheduler sets run_id/workflow at run start and node_id/node_kind
    inside each node task; tasks created afterwards inherit a copy.

    Returns:
        Token for reset_trace_context()
    """
    current = trace_context.get() or {}
    return trace_context.set({**current, **kwargs})


def reset_trace_context(token: Token) -> None:
    """Restore the trace context that was current before set_trace_context()."""
    trace_context.reset(token)


def get_trace_context() -> dict:
    """Current trace context (empty dict if none)."""
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear trace context (useful between tests)."""
    trace_context.set(None)
