from __future__ import annotations

import os
from collections.abc import AsyncIterator
from typing import Any

import anyio
import httpx
import msgspec

from .api_models import TelegramResponse
from .config import DEFAULT_API_URL, ENV_API_URL
from .errors import (
    ApiError,
    BadRequest,
    DownloadError,
    Forbidden,
    InvalidJson,
    InvalidStatus,
    MigrateToChatId,
    NetworkError,
    NotFound,
    RetryAfter,
    Unauthorized,
    excerpt,
)
from .logging import get_logger
from .payloads import InputFile

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 17.0
DEFAULT_CONNECT_TIMEOUT_S = 5.0

_RESPONSE_DECODER = msgspec.json.Decoder(TelegramResponse)
_ENCODER = msgspec.json.Encoder()


def api_url_from_env() -> str:
    return os.environ.get(ENV_API_URL) or DEFAULT_API_URL


def default_client(
    *, timeout_s: float = DEFAULT_TIMEOUT_S, proxy: str | None = None
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_s, connect=DEFAULT_CONNECT_TIMEOUT_S),
        proxy=proxy,
    )


def api_error(
    error_code: int | None,
    description: str,
    *,
    retry_after: float | None = None,
    migrate_to_chat_id: int | None = None,
) -> ApiError:
    if retry_after is not None:
        return RetryAfter(retry_after, description, error_code)
    if migrate_to_chat_id is not None:
        return MigrateToChatId(migrate_to_chat_id, description, error_code)
    if error_code == 401:
        return Unauthorized(error_code, description)
    if error_code == 403:
        return Forbidden(error_code, description)
    if error_code == 404:
        return NotFound(error_code, description)
    if error_code == 400:
        return BadRequest(error_code, description)
    return ApiError(error_code, description)


def decode_envelope(
    method: str, status_code: int, content: bytes, output: Any
) -> Any:
    """Decode a Bot API response envelope, raising on ``ok: false``."""
    try:
        envelope = _RESPONSE_DECODER.decode(content)
    except msgspec.DecodeError as exc:
        raw = excerpt(content.decode("utf-8", errors="replace"))
        if not 200 <= status_code < 300:
            raise InvalidStatus(status_code, raw) from exc
        logger.error("telegram.bad_response", method=method, error=str(exc), body=raw)
        raise InvalidJson(str(exc), raw) from exc

    if not envelope.ok:
        params = envelope.parameters
        error = api_error(
            envelope.error_code if envelope.error_code is not None else status_code,
            envelope.description or "",
            retry_after=params.retry_after if params is not None else None,
            migrate_to_chat_id=(
                params.migrate_to_chat_id if params is not None else None
            ),
        )
        if isinstance(error, RetryAfter):
            logger.info(
                "telegram.rate_limited",
                method=method,
                retry_after=error.retry_after,
            )
        else:
            logger.debug(
                "telegram.api_error",
                method=method,
                error_code=error.error_code,
                description=error.description,
            )
        raise error

    if not envelope.result:
        raise InvalidJson("response has no result", excerpt(content.decode()))
    try:
        return msgspec.json.decode(envelope.result, type=output)
    except msgspec.ValidationError as exc:
        raw = excerpt(bytes(envelope.result).decode("utf-8", errors="replace"))
        logger.error("telegram.bad_result", method=method, error=str(exc), body=raw)
        raise InvalidJson(str(exc), raw) from exc


def _form_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return _ENCODER.encode(value).decode()


class Transport:
    """Low level HTTP access to the Bot API.

    The token only ever appears in request URLs; log events carry the method
    name instead.
    """

    def __init__(
        self,
        token: str,
        *,
        api_url: str = DEFAULT_API_URL,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        proxy: str | None = None,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout_s = timeout_s
        self._client = client or default_client(timeout_s=timeout_s, proxy=proxy)
        self._owns_client = client is None

    @property
    def api_url(self) -> str:
        return self._api_url

    @property
    def token(self) -> str:
        return self._token

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _method_url(self, method: str) -> str:
        return f"{self._api_url}/bot{self._token}/{method}"

    def _file_url(self, file_path: str) -> str:
        return f"{self._api_url}/file/bot{self._token}/{file_path.lstrip('/')}"

    def _timeout(self, timeout: float | None) -> httpx.Timeout:
        seconds = self._timeout_s if timeout is None else max(self._timeout_s, timeout)
        return httpx.Timeout(seconds, connect=DEFAULT_CONNECT_TIMEOUT_S)

    async def _send(self, method: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.post(self._method_url(method), **kwargs)
        except httpx.HTTPError as exc:
            logger.error(
                "telegram.network_error",
                method=method,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            raise NetworkError(
                f"{exc.__class__.__name__} while calling {method}", method=method
            ) from None

    async def request_json(
        self,
        method: str,
        payload: dict[str, Any],
        *,
        output: Any,
        timeout: float | None = None,
    ) -> Any:
        logger.debug("telegram.request", method=method)
        response = await self._send(
            method,
            content=_ENCODER.encode(payload),
            headers={"Content-Type": "application/json"},
            timeout=self._timeout(timeout),
        )
        return decode_envelope(method, response.status_code, response.content, output)

    async def request_multipart(
        self,
        method: str,
        fields: dict[str, Any],
        files: dict[str, InputFile],
        *,
        output: Any,
        timeout: float | None = None,
    ) -> Any:
        logger.debug("telegram.request", method=method, files=sorted(files))
        data = {name: _form_value(value) for name, value in fields.items()}
        parts = {}
        for name, file in files.items():
            parts[name] = (file.filename or name, await file.read_bytes())
        response = await self._send(
            method,
            data=data,
            files=parts,
            timeout=self._timeout(timeout),
        )
        return decode_envelope(method, response.status_code, response.content, output)

    async def download_file(self, file_path: str) -> AsyncIterator[bytes]:
        """Stream the contents of ``file_path`` chunk by chunk."""
        try:
            async with self._client.stream("GET", self._file_url(file_path)) as resp:
                if resp.status_code != 200:
                    raise DownloadError(
                        f"download of {file_path!r} failed with HTTP {resp.status_code}"
                    )
                async for chunk in resp.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            logger.error(
                "telegram.download_error",
                file_path=file_path,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            raise DownloadError(
                f"{exc.__class__.__name__} while downloading {file_path!r}"
            ) from None

    async def download_file_bytes(self, file_path: str) -> bytes:
        chunks = [chunk async for chunk in self.download_file(file_path)]
        return b"".join(chunks)

    async def download_file_to(self, file_path: str, dst: str | os.PathLike[str]) -> int:
        written = 0
        async with await anyio.open_file(dst, "wb") as fh:
            async for chunk in self.download_file(file_path):
                await fh.write(chunk)
                written += len(chunk)
        return written
