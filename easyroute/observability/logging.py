from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable

import structlog

from easyroute.config import get_settings


_CONFIGURED = False


def configure_logging(level: int | str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog + stdlib logging.

    Level and renderer default to ``Settings.log_level`` and ``Settings.log_json``:
    JSON lines, or a console renderer when ``json_output`` is false.
    Safe to call multiple times (no-op after first call).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    settings = get_settings()
    if level is None:
        level = settings.log_level
    if json_output is None:
        json_output = settings.log_json

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=pre_chain,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    _CONFIGURED = True


LogFunc = Callable[..., Any]


def _forward(name: str, level: str) -> LogFunc:
    # Resolved per call so configure_logging() may run after the Logger is built.
    def log(event: str, **fields: Any) -> None:
        getattr(structlog.get_logger(name), level)(event, **fields)

    return log


@dataclass(frozen=True)
class Logger:
    """Injectable logging functions, called as ``fn(event, **fields)``.

    Without ``info`` no per-request line is emitted.
    """

    info: LogFunc | None = None
    error: LogFunc | None = None
    debug: LogFunc | None = None

    @classmethod
    def from_structlog(cls, name: str = "easyroute") -> Logger:
        return cls(
            info=_forward(name, "info"),
            error=_forward(name, "error"),
            debug=_forward(name, "debug"),
        )
