"""BuildUi implementations."""

from __future__ import annotations

import structlog

from .observability import get_logger


class LoggingUi:
    """BuildUi that forwards progress and errors to a structlog logger."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or get_logger("upcloud_builder.ui")

    def say(self, message: str) -> None:
        self._logger.info("build_progress", message=message)

    def error(self, message: str) -> None:
        self._logger.error("build_error", message=message)


class RecordingUi:
    """BuildUi that keeps every message in memory, in order."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def say(self, message: str) -> None:
        self.messages.append(("say", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    @property
    def errors(self) -> list[str]:
        return [m for kind, m in self.messages if kind == "error"]

    @property
    def said(self) -> list[str]:
        return [m for kind, m in self.messages if kind == "say"]
