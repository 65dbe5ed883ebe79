"""Logging configuration and redaction helpers."""

from __future__ import annotations

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from urllib.parse import urlsplit

from backup_core.app_config import get_logs_dir

LOG_FILE_NAME = "pxdesk.log"
MAX_LOG_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 5


def setup_logging(logs_dir: Path | None = None, *, level: int = logging.INFO) -> Path:
    logs_dir = logs_dir or get_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / LOG_FILE_NAME

    root = logging.getLogger()
    if root.handlers:
        return log_path

    root.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = RotatingFileHandler(
        log_path, maxBytes=MAX_LOG_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    return log_path


_URL_PATTERN = re.compile(r"\b[\w+.-]+://[^\s]+")


def _redact_url(match: re.Match[str]) -> str:
    raw = match.group(0)
    try:
        parsed = urlsplit(raw)
        port = f":{parsed.port}" if parsed.port else ""
    except ValueError:
        return "<redacted>"
    if not parsed.scheme or not parsed.hostname:
        return "<redacted>"
    return f"{parsed.scheme}://{parsed.hostname}{port}{parsed.path}"


def redact(text: str) -> str:
    """Strip credentials and query strings from any URL embedded in `text`."""
    if not text:
        return text
    return _URL_PATTERN.sub(_redact_url, text)
