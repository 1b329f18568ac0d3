"""Logging for upcloud-builder.

Library code logs through stdlib module loggers and the structlog-backed
``LoggingUi``. ``CreateServerStep`` binds the server title as ``build_id``
with ``build_context`` for the duration of ``run`` and ``cleanup``.
``configure_logging`` routes both kinds of record through one structlog
pipeline, so the bound ``build_id`` shows up on every line.

Usage::

    from upcloud_builder import configure_logging

    configure_logging(json_output=True)  # once, in the host process
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Iterator, TextIO

import structlog

_configured = False

# Libraries whose INFO output would drown the build log.
_QUIET_LOGGERS = ("httpx", "httpcore")


@contextmanager
def build_context(build_id: str) -> Iterator[None]:
    """Bind ``build_id`` to every log record emitted inside the block."""
    with structlog.contextvars.bound_contextvars(build_id=build_id):
        yield


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
    stream: TextIO | None = None,
) -> None:
    """Install a single structlog-rendered handler on the root logger.

    Later calls are no-ops.

    Args:
        level: Log level name. Defaults to the LOG_LEVEL env var or INFO.
        json_output: Emit JSON lines instead of console output. Defaults to
            LOG_FORMAT == "json".
        stream: Destination, stderr by default.
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "console") == "json"

    pre_chain: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
