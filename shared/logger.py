"""
ElfScope Structured Logger
==========================

:class:`ScopeLogger` sends ElfScope diagnostics to a Rich handler on
stderr and, when a log file is configured, to a rotating file as plain
text or JSON lines.  Records carry the component name and, inside an
:meth:`ScopeLogger.operation` block, the operation being performed.

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_LOG_THEME = Theme(
    {
        "log.level.debug": "dim cyan",
        "log.level.info": "bold bright_blue",
        "log.level.warning": "bold yellow",
        "log.level.error": "bold red",
    }
)

_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_MAX_LOG_BYTES = 10 * 1024 * 1024
_LOG_BACKUPS = 5


class _JSONLineFormatter(logging.Formatter):
    """One JSON object per record::

        {"timestamp": "...", "level": "DEBUG", "logger": "elfscope.engine",
         "component": "engine", "operation": "load",
         "message": "...", "elapsed_ms": 1.2}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": getattr(record, "component", None),
            "operation": getattr(record, "operation", None),
            "message": record.getMessage(),
        }
        elapsed = getattr(record, "elapsed_ms", None)
        if elapsed is not None:
            entry["elapsed_ms"] = round(elapsed, 3)
        if record.exc_info and record.exc_info[1] is not None:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _stderr_handler(level: int) -> RichHandler:
    return RichHandler(
        level=level,
        console=Console(theme=_LOG_THEME, stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )


def _file_handler(path: Path, level: int, json_lines: bool) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=_MAX_LOG_BYTES,
        backupCount=_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    if json_lines:
        handler.setFormatter(_JSONLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    return handler


class ScopeLogger:
    """Logger bound to one ElfScope component.

    Usage::

        log = ScopeLogger("engine", log_file="elfscope.log", json_logs=True)
        with log.operation("load"):
            log.debug("Read %d bytes", size)

    Args:
        component: Suffix of the ``elfscope.<component>`` logger name.
        log_level: Minimum severity name, e.g. ``"DEBUG"``.
        log_file:  Rotating log file, or ``None`` for stderr only.
        json_logs: Write the log file as JSON lines.
    """

    def __init__(
        self,
        component: str,
        *,
        log_level: str = "INFO",
        log_file: str | Path | None = None,
        json_logs: bool = False,
    ) -> None:
        self._component = component
        self._operation: str | None = None

        level = getattr(logging, log_level.upper(), logging.INFO)
        self._logger = logging.getLogger(f"elfscope.{component}")
        self._logger.setLevel(level)
        self._logger.propagate = False
        # A second ScopeLogger for the same component replaces the handlers.
        self._logger.handlers.clear()
        self._logger.addHandler(_stderr_handler(level))
        if log_file is not None:
            self._logger.addHandler(_file_handler(Path(log_file), level, json_logs))

    # ------------------------------------------------------------------ #
    #  Operation scope
    # ------------------------------------------------------------------ #

    class _OperationContext:
        def __init__(self, parent: ScopeLogger, operation: str) -> None:
            self._parent = parent
            self._operation = operation
            self._outer: str | None = None

        def __enter__(self) -> ScopeLogger:
            self._outer = self._parent._operation
            self._parent._operation = self._operation
            return self._parent

        def __exit__(self, *exc: Any) -> None:
            self._parent._operation = self._outer

    def operation(self, name: str) -> _OperationContext:
        """Tag every record logged inside the block with *name*."""
        return self._OperationContext(self, name)

    # ------------------------------------------------------------------ #
    #  Log methods
    # ------------------------------------------------------------------ #

    def _log(self, level: int, msg: str, args: tuple[Any, ...], **fields: Any) -> None:
        exc_info = fields.pop("exc_info", None)
        fields["component"] = self._component
        fields["operation"] = self._operation
        self._logger.log(level, msg, *args, exc_info=exc_info, extra=fields, stacklevel=3)

    def debug(self, msg: str, *args: Any) -> None:
        self._log(logging.DEBUG, msg, args)

    def info(self, msg: str, *args: Any) -> None:
        self._log(logging.INFO, msg, args)

    def warning(self, msg: str, *args: Any) -> None:
        self._log(logging.WARNING, msg, args)

    def error(self, msg: str, *args: Any) -> None:
        self._log(logging.ERROR, msg, args)

    def exception(self, msg: str, *args: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, args, exc_info=True)

    # ------------------------------------------------------------------ #
    #  Timing
    # ------------------------------------------------------------------ #

    class _TimingContext:
        def __init__(self, parent: ScopeLogger, label: str) -> None:
            self._parent = parent
            self._label = label
            self._start = 0.0

        def __enter__(self) -> ScopeLogger._TimingContext:
            self._start = time.perf_counter()
            return self

        def __exit__(self, *exc: Any) -> None:
            self._parent._log(
                logging.DEBUG, "%s took %.3f ms", (self._label, self.elapsed * 1000),
                elapsed_ms=self.elapsed * 1000,
            )

        @property
        def elapsed(self) -> float:
            """Seconds since the block was entered."""
            return time.perf_counter() - self._start

    def timed(self, label: str) -> _TimingContext:
        """Log how long the block took at DEBUG level.

        Usage::

            with log.timed("symbol index build"):
                image.build_symbol_index()
        """
        return self._TimingContext(self, label)
