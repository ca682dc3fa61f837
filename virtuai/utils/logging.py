"""Structured logging setup using structlog.

The same shared processor chain (context vars, log level, secret redaction,
timestamps) feeds into either a coloured ConsoleRenderer for local
development or a JSONRenderer for production.  The renderer follows the
``APP_ENV`` environment variable unless ``json_output`` forces JSON.

Standard-library ``logging`` is routed through the same formatter so that
uvicorn, httpx and the openai SDK produce identically formatted lines.

Tenant API keys must never reach a log sink.  :func:`redact_secrets` masks
any event value stored under a sensitive key name before rendering.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

_SENSITIVE_KEYS = frozenset({"api_key", "authorization", "credential", "secret"})


def mask_secret(value: str) -> str:
    """Return a display-safe form of a secret, keeping 6 leading and 4 trailing chars."""
    if len(value) > 10:
        return f"{value[:6]}••••••••{value[-4:]}"
    return "••••••••"


def redact_secrets(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor that masks values stored under sensitive keys."""
    for key in list(event_dict):
        if key.lower() in _SENSITIVE_KEYS and isinstance(event_dict[key], str):
            event_dict[key] = mask_secret(event_dict[key])
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, uses console rendering in
                     development and JSON in production (detected via APP_ENV).

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    # contextvars first so per-request tenant/agent bindings reach every line.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger, configuring defaults on first use.

    Args:
        name: Logger name, typically the module name.

    Returns:
        A structlog BoundLogger bound with the given name.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
