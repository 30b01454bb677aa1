from __future__ import annotations

import json
import logging
import os
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from complisite.core.observability import get_correlation_id, get_operation_name
from complisite.core.redaction import LoggingSecretsFilter

DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 10
MAIN_LOG_NAME = "sync.log"
SYNC_EVENTS_LOG_NAME = "sync_events.log"
OPERATIONAL_ERROR_LOG_NAME = "error_operativo.log"
CRASH_LOG_NAME = "crash.log"


class JsonLinesFormatter(logging.Formatter):
    """Una línea JSON por registro.

    Los registros emitidos con ``log_event`` suben el nombre del evento al
    nivel superior para poder filtrar pasadas sin abrir ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "thread": record.threadName,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }
        operation = get_operation_name()
        if operation:
            event["operation"] = operation

        payload_extra = getattr(record, "extra", None)
        if isinstance(payload_extra, dict) and payload_extra:
            event["extra"] = payload_extra
            if "event" in payload_extra:
                event["event"] = payload_extra["event"]
        if record.exc_info:
            event["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(event, ensure_ascii=False, default=str)


class LevelBandFilter(logging.Filter):
    """Deja pasar los niveles en ``[min_level, max_level]``."""

    def __init__(self, min_level: int, max_level: int = logging.CRITICAL) -> None:
        super().__init__()
        self.min_level = min_level
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return self.min_level <= record.levelno <= self.max_level


class SyncEventFilter(logging.Filter):
    """Solo eventos estructurados de ``log_event`` (drain_started, drain_finished...)."""

    def filter(self, record: logging.LogRecord) -> bool:
        payload_extra = getattr(record, "extra", None)
        return isinstance(payload_extra, dict) and "event" in payload_extra


@dataclass(frozen=True)
class LogFileSpec:
    name: str
    level: int
    filters: tuple[logging.Filter, ...] = field(default_factory=tuple)


def default_log_files(level: int) -> tuple[LogFileSpec, ...]:
    return (
        LogFileSpec(MAIN_LOG_NAME, level),
        LogFileSpec(SYNC_EVENTS_LOG_NAME, logging.INFO, (SyncEventFilter(),)),
        LogFileSpec(OPERATIONAL_ERROR_LOG_NAME, logging.ERROR, (LevelBandFilter(logging.ERROR, logging.ERROR),)),
        LogFileSpec(CRASH_LOG_NAME, logging.CRITICAL),
    )


def _build_rotating_handler(log_path: Path, spec: LogFileSpec, *, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setLevel(spec.level)
    handler.setFormatter(JsonLinesFormatter())
    handler.addFilter(LoggingSecretsFilter())
    for log_filter in spec.filters:
        handler.addFilter(log_filter)
    return handler


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ[name])
    except (KeyError, ValueError):
        return default


def _env_level(default: int) -> int:
    raw_value = os.getenv("COMPLISITE_LOG_LEVEL", "").strip().upper()
    resolved = logging.getLevelName(raw_value) if raw_value else default
    return resolved if isinstance(resolved, int) else default


def configure_logging(
    log_dir: Path,
    *,
    max_bytes: int | None = None,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
    level: int | None = None,
    console: bool = False,
) -> None:
    """Sustituye los handlers raíz por los ficheros JSONL rotativos de ``log_dir``.

    ``COMPLISITE_LOG_LEVEL`` y ``COMPLISITE_LOG_MAX_BYTES`` cubren lo que no
    se pase explícitamente.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    resolved_max_bytes = max_bytes or _env_int("COMPLISITE_LOG_MAX_BYTES", DEFAULT_LOG_MAX_BYTES)
    resolved_level = level if level is not None else _env_level(logging.INFO)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(resolved_level)

    for spec in default_log_files(resolved_level):
        root_logger.addHandler(
            _build_rotating_handler(log_dir / spec.name, spec, max_bytes=resolved_max_bytes, backup_count=backup_count)
        )

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(logging.WARNING)
        stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        stream_handler.addFilter(LoggingSecretsFilter())
        root_logger.addHandler(stream_handler)


def write_crash_log(exc_type: type[BaseException], exc: BaseException, tb: Any, log_dir: Path) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.getLogger("complisite.crash").critical(
        "Excepción no controlada en %s",
        threading.current_thread().name,
        exc_info=(exc_type, exc, tb),
        extra={"extra": {"python": sys.version, "executable": sys.executable, "cwd": str(Path.cwd())}},
    )
    return log_dir / CRASH_LOG_NAME


def install_exception_hook(log_dir: Path) -> None:
    """Registra en ``crash.log`` lo que llegue a ``sys.excepthook``; Ctrl+C sigue el camino normal."""

    def _handler(exc_type, exc, tb) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc, tb)
            return
        try:
            write_crash_log(exc_type, exc, tb, log_dir)
        except OSError:
            sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _handler
