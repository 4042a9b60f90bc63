from __future__ import annotations

import errno
import logging
import re
import sys
from typing import Any

import structlog


TELEGRAM_TOKEN_RE = re.compile(r"bot\d+:[A-Za-z0-9_-]+")
TELEGRAM_BARE_TOKEN_RE = re.compile(r"\b\d+:[A-Za-z0-9_-]{10,}\b")


def redact_token(text: str) -> str:
    redacted = TELEGRAM_TOKEN_RE.sub("bot[REDACTED]", text)
    return TELEGRAM_BARE_TOKEN_RE.sub("[REDACTED_TOKEN]", redacted)


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_token(value)
    if isinstance(value, dict):
        return {key: _redact_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(item) for item in value)
    return value


def redact_token_processor(_, __, event_dict):
    """Processor to redact Telegram tokens from log events."""
    for key, value in list(event_dict.items()):
        redacted = _redact_value(value)
        if redacted != value:
            event_dict[key] = redacted
    return event_dict


class RedactTokenFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_token(message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


class SafeStreamHandler(logging.StreamHandler):
    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        if isinstance(exc, BrokenPipeError) or (
            isinstance(exc, OSError) and exc.errno == errno.EPIPE
        ):
            try:
                self.stream.close()
            except OSError:
                pass
            return
        super().handleError(record)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def setup_logging(
    *, debug: bool = False, cache_logger_on_first_use: bool = True
) -> None:
    """Configure structlog with console output and token redaction."""

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_token_processor,
            structlog.dev.ConsoleRenderer(colors=True)
            if debug
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=cache_logger_on_first_use,
    )

    handler = SafeStreamHandler(sys.stdout)
    handler.addFilter(RedactTokenFilter())
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=logging.DEBUG if debug else logging.INFO,
        force=True,
    )

    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
