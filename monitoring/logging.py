"""structlog setup for the API, the CLI and the tests."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE_NAME = "contract-sentinel"

# Every explorer and model request would otherwise be logged twice
_QUIET_LOGGERS = ("httpx", "httpcore", "anthropic")


def _service_adder(service: str) -> Processor:
    def add_service(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_logging(
    service: str = SERVICE_NAME,
    stream: TextIO | None = None,
    log_format: str | None = None,
    log_level: str | None = None,
) -> None:
    """Route structlog and stdlib logging through one handler.

    *log_format* (``json`` or ``console``) and *log_level* default to the
    LOG_FORMAT and LOG_LEVEL environment variables. The CLI passes stderr as
    *stream* so that stdout carries only the report.
    """
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()
    level_name = (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _service_adder(service),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


@contextmanager
def analysis_context(analysis_id: str, address: str, network: str) -> Iterator[None]:
    """Tag every log line emitted inside the block with the analysis it belongs to."""
    with structlog.contextvars.bound_contextvars(
        analysis_id=analysis_id, address=address, network=network,
    ):
        yield
