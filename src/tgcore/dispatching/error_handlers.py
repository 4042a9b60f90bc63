from __future__ import annotations

from typing import Any, Protocol

from ..logging import get_logger

logger = get_logger(__name__)


class ErrorHandler(Protocol):
    async def __call__(self, error: BaseException) -> None: ...


class LoggingErrorHandler:
    def __init__(self, text: str = "dispatcher.handler_error") -> None:
        self.text = text

    async def __call__(self, error: BaseException) -> None:
        logger.error(
            self.text,
            error=str(error),
            error_type=error.__class__.__name__,
            exc_info=error,
        )


class IgnoringErrorHandler:
    async def __call__(self, error: BaseException) -> None:
        return None


async def call_error_handler(handler: Any, error: BaseException) -> None:
    try:
        await handler(error)
    except Exception as exc:
        logger.error(
            "dispatcher.error_handler_failed",
            error=str(exc),
            error_type=exc.__class__.__name__,
            original_error=str(error),
        )
