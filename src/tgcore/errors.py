from __future__ import annotations

from typing import Any


class TgCoreError(Exception):
    """Base class for every error raised by tgcore."""


class RequestError(TgCoreError):
    retry_after: float | None = None
    migrate_to_chat_id: int | None = None


class ApiError(RequestError):
    """Structured rejection returned by the Bot API (``ok: false``)."""

    def __init__(self, error_code: int | None, description: str) -> None:
        super().__init__(f"{description} (code {error_code})")
        self.error_code = error_code
        self.description = description


class BadRequest(ApiError):
    pass


class Unauthorized(ApiError):
    pass


class Forbidden(ApiError):
    pass


class NotFound(ApiError):
    pass


class RetryAfter(ApiError):
    def __init__(
        self,
        retry_after: float,
        description: str | None = None,
        error_code: int | None = 429,
    ) -> None:
        super().__init__(error_code, description or f"retry after {retry_after}")
        self.retry_after = float(retry_after)


class MigrateToChatId(ApiError):
    def __init__(
        self,
        chat_id: int,
        description: str | None = None,
        error_code: int | None = 400,
    ) -> None:
        super().__init__(
            error_code,
            description or f"group migrated to supergroup {chat_id}",
        )
        self.migrate_to_chat_id = chat_id


class NetworkError(RequestError):
    def __init__(self, message: str, *, method: str | None = None) -> None:
        super().__init__(message)
        self.method = method


class InvalidJson(RequestError):
    def __init__(self, message: str, raw: str) -> None:
        super().__init__(f"{message} (raw: {raw!r})")
        self.raw = raw


class InvalidStatus(RequestError):
    def __init__(self, status_code: int, raw: str = "") -> None:
        super().__init__(f"unexpected HTTP status {status_code}")
        self.status_code = status_code
        self.raw = raw


class DownloadError(RequestError):
    pass


class QueueFull(RequestError):
    def __init__(self, pending: int) -> None:
        super().__init__(f"throttle queue is full ({pending} pending requests)")
        self.pending = pending


class WorkerGone(RequestError):
    def __init__(self, message: str = "throttle worker is gone") -> None:
        super().__init__(message)


class StorageError(TgCoreError):
    pass


class UpdateParseError(TgCoreError):
    def __init__(self, message: str, *, update_id: int | None, raw: str) -> None:
        super().__init__(message)
        self.update_id = update_id
        self.raw = raw


class MissingDependency(TgCoreError):
    def __init__(self, key: Any, target: str) -> None:
        super().__init__(f"{target} requires a dependency of type {key!r}")
        self.key = key
        self.target = target


def excerpt(text: str, limit: int = 500) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"
