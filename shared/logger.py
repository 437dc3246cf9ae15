"""
bingrep Logging
================

:class:`ToolLogger` binds a component name (``"engine"``, ``"cli"``) and an
optional operation scope to every record it emits.  Records go to a Rich
handler on stderr, so they never interleave with the report on stdout,
and optionally to a rotating log file as plain text or JSON lines.

References:
    - Python logging cookbook, "Adding contextual information to your
      logging output". https://docs.python.org/3/howto/logging-cookbook.html
    - Rich logging handler. https://rich.readthedocs.io/en/stable/logging.html
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator, MutableMapping

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme


_LOG_THEME = Theme({
    "log.level.debug": "dim cyan",
    "log.level.info": "bold bright_blue",
    "log.level.warning": "bold yellow",
    "log.level.error": "bold red",
    "log.level.critical": "bold white on red",
})

_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(operation)s | %(message)s"

#: Rotate the log file at 10 MiB, keeping five backups.
_MAX_LOG_BYTES: int = 10 * 1024 * 1024
_LOG_BACKUPS: int = 5


class _JSONLineFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, tool, operation, message."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "tool_name": getattr(record, "tool_name", None),
            "operation": getattr(record, "operation", None),
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.WARNING)


# ---------------------------------------------------------------------------
# ToolLogger
# ---------------------------------------------------------------------------

class ToolLogger(logging.LoggerAdapter):
    """Logger adapter stamping ``tool_name`` and ``operation`` on records.

    Usage::

        log = ToolLogger("engine", log_level="INFO")
        with log.operation("correlate"):
            log.info("Found %d matches", 3)
        with log.timed("elf parse"):
            parser.parse()

    Args:
        tool_name:      Component name; the stdlib logger is ``bingrep.<tool_name>``.
        log_level:      Minimum severity name (``DEBUG`` ... ``CRITICAL``).
        log_file:       Rotating log file; ``None`` disables file logging.
        json_logs:      Write JSON lines instead of plain text to *log_file*.
        console_output: Attach the Rich stderr handler.
    """

    def __init__(
        self,
        tool_name: str,
        *,
        log_level: str = "WARNING",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        console_output: bool = True,
    ) -> None:
        logger = logging.getLogger(f"bingrep.{tool_name}")
        logger.setLevel(_level(log_level))
        logger.propagate = False
        # Re-creating a logger for the same component replaces its handlers
        logger.handlers.clear()

        if console_output:
            logger.addHandler(RichHandler(
                console=Console(theme=_LOG_THEME, stderr=True),
                show_path=False,
                rich_tracebacks=True,
                markup=False,
            ))

        if log_file:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                path, maxBytes=_MAX_LOG_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8",
            )
            handler.setFormatter(
                _JSONLineFormatter() if json_logs else logging.Formatter(_TEXT_FORMAT)
            )
            logger.addHandler(handler)

        super().__init__(logger, {"tool_name": tool_name})
        self._operation: str | None = None

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any],
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, "operation": self._operation or "-"}
        return msg, kwargs

    @contextmanager
    def operation(self, name: str) -> Iterator[ToolLogger]:
        """Tag every record logged inside the block with ``operation=name``."""
        previous, self._operation = self._operation, name
        try:
            yield self
        finally:
            self._operation = previous

    @contextmanager
    def timed(self, label: str) -> Iterator[None]:
        """Log how long the block took, at INFO, under operation *label*."""
        start = time.perf_counter()
        with self.operation(label):
            yield
            self.info("Completed %s in %.3f s", label, time.perf_counter() - start)

    @classmethod
    def from_config(cls, tool_name: str, config: Any, *, verbose: bool = False) -> ToolLogger:
        """Build a logger from the ``[global]`` section of a bingrep config.

        ``verbose`` (or ``debug = true``) forces DEBUG.
        """
        settings = config.global_settings
        return cls(
            tool_name,
            log_level="DEBUG" if verbose or settings.debug else settings.log_level,
            log_file=settings.log_file or None,
            json_logs=settings.log_json,
        )
