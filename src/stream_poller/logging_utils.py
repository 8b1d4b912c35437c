"""Logging helpers for the stream poller."""

from __future__ import annotations

import logging
import os
from pathlib import Path

_QUIET_LOGGERS = ("botocore", "boto3", "urllib3")


def log_format(consumer_key: str | None = None) -> str:
    if consumer_key:
        return f"%(asctime)s [%(levelname)s] %(name)s consumer={consumer_key}: %(message)s"
    return "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def resolve_level(level: int | str | None = None) -> int:
    """Explicit level, else STREAM_POLLER_LOG_LEVEL, else INFO."""
    value = level if level is not None else os.getenv("STREAM_POLLER_LOG_LEVEL")
    if value is None or value == "":
        return logging.INFO
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(str(value).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    log_paths: list[str] | None = None,
    consumer_key: str | None = None,
) -> None:
    """Configure default logging if no handlers are present."""
    root = logging.getLogger()
    if root.handlers:
        return
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    for entry in log_paths or []:
        path = Path(entry)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    logging.basicConfig(
        level=resolve_level(level),
        format=log_format(consumer_key),
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )
    # SDK request tracing drowns the per-cycle lines at DEBUG.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))
