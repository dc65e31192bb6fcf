"""Loguru setup: console + rotating file sinks, Slack alerts, secret redaction.

Every module gets its logger through :func:`get_logger`, which binds a short
area name (``ingestion.canvas``, ``token_service``...) shown in each line.
Provider credentials pass through log messages as part of URLs and error
bodies, so a patcher masks them before any sink sees the record.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from studysync.core.config import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[name]}:{function}:{line} | {message}"

_configured = False

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}
_VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}

_SECRET_PATTERNS = [
    re.compile(r"(Bearer\s+)[\w\-.~+/=]+", re.IGNORECASE),
    # form/query fields and JSON members
    re.compile(r"(\b(?:access_token|refresh_token|client_secret|code)(?:=|\"\s*:\s*\"))[\w\-.~+/]+"),
]


def redact(text: str) -> str:
    """Mask bearer tokens and OAuth form fields in a log message."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1***", text)
    return text


def _patch_record(record: Any) -> None:
    record["message"] = redact(record["message"])


class InterceptHandler(logging.Handler):
    """Route stdlib records (uvicorn, alembic, sqlalchemy) into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_name == "emit":
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _slack_sink(message: Any) -> None:
    record = message.record
    extra = record["extra"]
    text = f"[{record['level'].name}] {extra.get('name', 'studysync')}:{record['function']}:{record['line']}"
    if extra.get("user_id"):
        text += f" user={extra['user_id']}"
    text += f"\n{record['message']}"
    try:
        httpx.post(settings.SLACK_WEBHOOK_URL, json={"text": text}, timeout=5.0)
    except httpx.HTTPError:
        # Logging here would feed the sink again
        pass


def _resolve_level() -> str:
    level = (settings.effective_log_level or "INFO").strip().upper()
    level = _LEVEL_ALIASES.get(level, level)
    return level if level in _VALID_LEVELS else "INFO"


def _intercept_stdlib() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def configure_logging() -> None:
    global _configured

    if _configured:
        return
    _configured = True

    level = _resolve_level()
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.configure(extra={"name": "studysync"}, patcher=_patch_record)
    logger.add(sys.stdout, level=level, format=LOG_FORMAT, backtrace=False, diagnose=False)
    logger.add(
        log_dir / "studysync.log",
        level=level,
        format=LOG_FORMAT,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )
    if settings.SLACK_WEBHOOK_URL:
        logger.add(_slack_sink, level="ERROR", enqueue=True)

    _intercept_stdlib()


def get_logger(name: str) -> logger.__class__:
    return logger.bind(name=name)


configure_logging()
