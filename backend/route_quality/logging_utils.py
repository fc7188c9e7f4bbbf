from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "route_quality"
LOG_FILE_NAME = "scoring.log.jsonl"

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _parse_level(name: str) -> int:
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _log_file_path(out_dir: str) -> Path | None:
    for base in (Path(out_dir), Path(gettempdir()) / "route-quality-router"):
        log_dir = base / "logs"
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            continue
        return log_dir / LOG_FILE_NAME
    return None


def _formatter() -> logging.Formatter:
    return jsonlogger.JsonFormatter(_FORMAT, rename_fields={"asctime": "ts", "levelname": "level"})


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)

    # Handlers are attached once per process (reloaders re-import modules).
    if getattr(logger, "_configured", False):
        return logger

    logger.setLevel(_parse_level(settings.log_level))
    logger.propagate = False
    formatter = _formatter()

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    path = _log_file_path(settings.out_dir)
    if path is not None:
        try:
            file_handler = logging.FileHandler(path, encoding="utf-8")
        except OSError as e:
            logger.warning(
                "log_file_unavailable",
                extra={"event": "log_file_unavailable", "path": str(path), "error": str(e)},
            )
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger._configured = True  # type: ignore[attr-defined]
    return logger


LOGGER: logging.Logger | None = None


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one structured record; ``event`` is both the message and a field."""
    global LOGGER
    if LOGGER is None:
        LOGGER = get_logger()
    LOGGER.log(level, event, extra={"event": event, **fields})


@contextmanager
def timed_event(event: str, **fields: Any) -> Iterator[dict[str, Any]]:
    """Log ``event`` with ``duration_ms`` when the block completes.

    The yielded dict may be updated inside the block to add fields known only
    at the end. Nothing is logged if the block raises.
    """
    extra: dict[str, Any] = dict(fields)
    t0 = time.perf_counter()
    yield extra
    extra["duration_ms"] = round((time.perf_counter() - t0) * 1000, 2)
    log_event(event, **extra)
