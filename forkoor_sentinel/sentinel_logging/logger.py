"""
structlog setup shared by every sentinel module.

Lines carry event_type, level, an ISO UTC timestamp and the logger name, plus
whatever context the caller passes (mint=, platform=, risk_score=).
LOG_LEVEL filters, LOG_FORMAT=json (default) or console picks the renderer.

This module must not import other forkoor_sentinel modules: everything else
imports it.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

ROOT_LOGGER_NAME = "forkoor_sentinel"


def _add_timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _normalize_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type; message mirrors it."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "event_type" in event_dict:
        event_dict.setdefault("message", str(event_dict["event_type"]))
    return event_dict


def _renderer(fmt: str) -> Any:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_structlog(level: int = LOG_LEVEL_VALUE, fmt: str = LOG_FORMAT) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _add_timestamp,
            _normalize_event,
            _renderer(fmt),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Logger bound to a module name:

        logger = get_logger(__name__)
        logger.info("analyzer_assess_done", mint=mint, risk_score=60)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_mint(mint: str) -> structlog.BoundLogger:
    """Logger that stamps mint on every line of one assessment."""
    return get_logger(ROOT_LOGGER_NAME).bind(mint=mint)
